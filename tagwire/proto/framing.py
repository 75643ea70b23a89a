"""Length-delimited framing for streams of tagwire messages."""

from collections.abc import Iterator

from .errors import EncodeError, FrameTooLarge, MalformedVarint, TruncatedVarint
from .wire import Buffer, decode_varint, encode_varint, read_length_delimited


def encode_delimited(payload: bytes) -> bytes:
    """Prefix payload with its length as a varint."""
    return encode_varint(len(payload)) + payload


def decode_delimited(data: Buffer, offset: int = 0) -> tuple[bytes, int]:
    """Read one length-prefixed payload.

    Returns:
        Tuple of (payload, bytes_consumed including the prefix).
    """
    payload, consumed = read_length_delimited(data, offset)
    return bytes(payload), consumed


class Framer:
    """Handles framing and deframing of a stream of delimited messages."""

    def __init__(self, max_length: int | None = None) -> None:
        self._max_length = max_length
        self._buffer = bytearray()

    def encode_frame(self, data: bytes) -> bytes:
        """Encode a frame with its length prefix."""
        if self._max_length is not None and len(data) > self._max_length:
            raise EncodeError(f"Frame of {len(data)} bytes exceeds maximum of {self._max_length}")
        return encode_delimited(data)

    def decode_frame(self) -> bytes | None:
        """Attempt to decode a complete frame from the buffer."""
        if not self._buffer:
            return None

        try:
            length, prefix = decode_varint(self._buffer)
        except TruncatedVarint:
            return None
        except MalformedVarint:
            # Frame boundary is lost
            self.clear_buffer()
            raise

        if self._max_length is not None and length > self._max_length:
            self.clear_buffer()
            raise FrameTooLarge(f"Frame of {length} bytes exceeds maximum of {self._max_length}")

        end = prefix + length
        if len(self._buffer) < end:
            return None

        frame = bytes(self._buffer[prefix:end])
        del self._buffer[:end]
        return frame

    def frames(self) -> Iterator[bytes]:
        """Yield every complete frame currently buffered."""
        while (frame := self.decode_frame()) is not None:
            yield frame

    def clear_buffer(self) -> None:
        """Clear the receive buffer."""
        self._buffer.clear()

    def append_buffer(self, data: bytes) -> None:
        """Append data to the receive buffer."""
        self._buffer.extend(data)
