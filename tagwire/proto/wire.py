"""Wire-level primitives: varints, tags, fixed-width and length-delimited values."""

from collections.abc import Iterator
from dataclasses import dataclass

from .errors import (
    DecodeError,
    EncodeError,
    InvalidFieldNumber,
    MalformedVarint,
    TruncatedInput,
    TruncatedVarint,
    UnsupportedWireType,
)
from .types import MAX_FIELD_NUMBER, WireType

MAX_VARINT_LEN = 10
# Deepest group or embedded message nesting accepted when reading
MAX_NESTING_DEPTH = 100
UINT64_MAX = (1 << 64) - 1

Buffer = bytes | bytearray | memoryview


def encode_varint(value: int) -> bytes:
    """Encode an unsigned 64-bit integer as a base-128 varint."""
    if value < 0 or value > UINT64_MAX:
        raise EncodeError(f"Varint value {value} outside 0..2**64-1")

    out = bytearray()
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def decode_varint(data: Buffer, offset: int = 0) -> tuple[int, int]:
    """Decode a varint starting at offset.

    Returns:
        Tuple of (value, bytes_consumed).
    """
    result = 0
    shift = 0
    pos = offset
    end = len(data)

    for _ in range(MAX_VARINT_LEN):
        if pos >= end:
            raise TruncatedVarint(f"Input ends inside varint at offset {offset}")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & UINT64_MAX, pos - offset
        shift += 7

    raise MalformedVarint(f"Varint at offset {offset} longer than {MAX_VARINT_LEN} bytes")


def varint_size(value: int) -> int:
    """Number of bytes encode_varint would produce."""
    size = 1
    while value > 0x7F:
        value >>= 7
        size += 1
    return size


def encode_zigzag(value: int) -> int:
    return (value << 1) ^ (value >> 63)


def decode_zigzag(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def to_signed(value: int, bits: int) -> int:
    """Interpret the low bits of value as a two's complement integer."""
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def encode_tag(number: int, wire_type: WireType) -> bytes:
    """Pack a field number and wire type into a varint tag."""
    if number < 1 or number > MAX_FIELD_NUMBER:
        raise InvalidFieldNumber(f"Field number {number} outside 1..{MAX_FIELD_NUMBER}")
    return encode_varint((number << 3) | wire_type)


def decode_tag(tag: int) -> tuple[int, WireType]:
    """Split a tag into (field_number, wire_type)."""
    raw_type = tag & 0x07
    try:
        wire_type = WireType(raw_type)
    except ValueError:
        raise UnsupportedWireType(f"Reserved wire type {raw_type}") from None

    number = tag >> 3
    if number == 0:
        raise DecodeError("Invalid tag: field number 0")
    return number, wire_type


def read_tag(data: Buffer, offset: int) -> tuple[int, WireType, int]:
    """Read a tag at offset.

    Returns:
        Tuple of (field_number, wire_type, bytes_consumed).
    """
    tag, consumed = decode_varint(data, offset)
    number, wire_type = decode_tag(tag)
    return number, wire_type, consumed


def encode_length_delimited(payload: bytes) -> bytes:
    return encode_varint(len(payload)) + payload


def read_fixed(data: Buffer, offset: int, size: int) -> tuple[memoryview, int]:
    """Slice a fixed-width value out of data without copying."""
    if offset + size > len(data):
        raise TruncatedInput(
            f"{size}-byte value at offset {offset} but only {len(data) - offset} bytes remain"
        )
    return memoryview(data)[offset : offset + size], size


def read_length_delimited(data: Buffer, offset: int) -> tuple[memoryview, int]:
    """Read a varint length prefix and the payload it announces.

    Returns:
        Tuple of (payload, bytes_consumed including the prefix).
    """
    length, prefix = decode_varint(data, offset)
    start = offset + prefix
    if start + length > len(data):
        raise TruncatedInput(
            f"Length-delimited value at offset {offset} claims {length} bytes "
            f"but only {len(data) - start} remain"
        )
    return memoryview(data)[start : start + length], prefix + length


def skip_field(data: Buffer, offset: int, wire_type: WireType, number: int) -> int:
    """Return the number of bytes occupied by a value of the given wire type."""
    if wire_type == WireType.VARINT:
        return decode_varint(data, offset)[1]
    if wire_type == WireType.FIXED64:
        return read_fixed(data, offset, 8)[1]
    if wire_type == WireType.FIXED32:
        return read_fixed(data, offset, 4)[1]
    if wire_type == WireType.LENGTH_DELIMITED:
        return read_length_delimited(data, offset)[1]
    if wire_type == WireType.START_GROUP:
        # Field numbers of the groups still open, innermost last
        open_groups = [number]
        pos = offset
        while open_groups:
            inner_number, inner_type, consumed = read_tag(data, pos)
            pos += consumed
            if inner_type == WireType.END_GROUP:
                expected = open_groups.pop()
                if inner_number != expected:
                    raise DecodeError(
                        f"Group {expected} closed by end-group tag for field {inner_number}"
                    )
            elif inner_type == WireType.START_GROUP:
                if len(open_groups) >= MAX_NESTING_DEPTH:
                    raise DecodeError(f"Groups nested deeper than {MAX_NESTING_DEPTH} levels")
                open_groups.append(inner_number)
            else:
                pos += skip_field(data, pos, inner_type, inner_number)
        return pos - offset

    raise DecodeError(f"Unexpected end-group tag for field {number}")


@dataclass(frozen=True, slots=True)
class RawField:
    """A field read without a schema."""

    number: int
    wire_type: WireType
    value: int | bytes
    offset: int


def iter_fields(data: Buffer) -> Iterator[RawField]:
    """Walk the top-level fields of an encoded message without a descriptor.

    Varints are yielded as ints, everything else as the raw value bytes (for
    groups: the bytes between the start and end tags).
    """
    offset = 0
    end = len(data)
    while offset < end:
        start = offset
        number, wire_type, consumed = read_tag(data, offset)
        offset += consumed

        value: int | bytes
        if wire_type == WireType.VARINT:
            value, consumed = decode_varint(data, offset)
        elif wire_type == WireType.LENGTH_DELIMITED:
            payload, consumed = read_length_delimited(data, offset)
            value = bytes(payload)
        elif wire_type == WireType.START_GROUP:
            consumed = skip_field(data, offset, wire_type, number)
            end_tag = len(encode_tag(number, WireType.END_GROUP))
            value = bytes(data[offset : offset + consumed - end_tag])
        elif wire_type == WireType.END_GROUP:
            raise DecodeError(f"Unexpected end-group tag for field {number}")
        else:
            size = 8 if wire_type == WireType.FIXED64 else 4
            raw, consumed = read_fixed(data, offset, size)
            value = bytes(raw)

        offset += consumed
        yield RawField(number, wire_type, value, start)
