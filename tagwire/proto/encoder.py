"""Descriptor-driven message encoder."""

import math
import struct
from collections.abc import Mapping
from typing import Any

from .errors import EncodeError
from .types import FieldDescriptor, FieldKind, MessageDescriptor, WireType
from .wire import UINT64_MAX, encode_length_delimited, encode_tag, encode_varint, encode_zigzag

_INT32 = (-(1 << 31), (1 << 31) - 1)
_INT64 = (-(1 << 63), (1 << 63) - 1)
_UINT32 = (0, (1 << 32) - 1)
_UINT64 = (0, UINT64_MAX)

INTEGER_RANGES: dict[FieldKind, tuple[int, int]] = {
    FieldKind.INT32: _INT32,
    FieldKind.INT64: _INT64,
    FieldKind.UINT32: _UINT32,
    FieldKind.UINT64: _UINT64,
    FieldKind.SINT32: _INT32,
    FieldKind.SINT64: _INT64,
    FieldKind.ENUM: _INT32,
    FieldKind.FIXED32: _UINT32,
    FieldKind.SFIXED32: _INT32,
    FieldKind.FIXED64: _UINT64,
    FieldKind.SFIXED64: _INT64,
}

# Little-endian struct formats for fixed-width kinds
FIXED_FORMATS: dict[FieldKind, str] = {
    FieldKind.FIXED32: "<I",
    FieldKind.SFIXED32: "<i",
    FieldKind.FLOAT: "<f",
    FieldKind.FIXED64: "<Q",
    FieldKind.SFIXED64: "<q",
    FieldKind.DOUBLE: "<d",
}


def _get(message: Any, name: str) -> Any:
    if isinstance(message, Mapping):
        return message.get(name)
    return getattr(message, name, None)


def _is_zero(fd: FieldDescriptor, value: Any) -> bool:
    """Check whether a singular value is the zero value omitted from the wire."""
    if fd.kind in (FieldKind.FLOAT, FieldKind.DOUBLE):
        # -0.0 is distinguishable, so it is written
        return value == 0 and math.copysign(1.0, value) > 0
    return not value


def _check_int(fd: FieldDescriptor, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodeError(f"{fd.name}: expected int for {fd.kind}, got {type(value).__name__}")
    low, high = INTEGER_RANGES[fd.kind]
    if not low <= value <= high:
        raise EncodeError(f"{fd.name}: {value} out of range for {fd.kind}")
    return int(value)


def _encode_scalar(fd: FieldDescriptor, value: Any) -> bytes:
    """Encode a single non-message value without its tag."""
    kind = fd.kind

    if kind == FieldKind.BOOL:
        if not isinstance(value, int):
            raise EncodeError(f"{fd.name}: expected bool, got {type(value).__name__}")
        return b"\x01" if value else b"\x00"

    if kind in (FieldKind.FLOAT, FieldKind.DOUBLE):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EncodeError(f"{fd.name}: expected float, got {type(value).__name__}")
    elif kind in FIXED_FORMATS:
        value = _check_int(fd, value)

    if kind in FIXED_FORMATS:
        try:
            return struct.pack(FIXED_FORMATS[kind], value)
        except (struct.error, OverflowError) as e:
            raise EncodeError(f"{fd.name}: cannot encode {value!r} as {kind}: {e}") from e

    if kind == FieldKind.STRING:
        if not isinstance(value, str):
            raise EncodeError(f"{fd.name}: expected str, got {type(value).__name__}")
        return encode_length_delimited(value.encode("utf-8"))

    if kind == FieldKind.BYTES:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EncodeError(f"{fd.name}: expected bytes, got {type(value).__name__}")
        return encode_length_delimited(bytes(value))

    value = _check_int(fd, value)
    if kind in (FieldKind.SINT32, FieldKind.SINT64):
        return encode_varint(encode_zigzag(value))
    # int32, int64 and enum negatives are sign-extended to 64 bits
    return encode_varint(value & UINT64_MAX)


def _use_packed(fd: FieldDescriptor, packed: bool) -> bool:
    if not fd.packable:
        return False
    if fd.packed is not None:
        return fd.packed
    return packed


def _encode_field(buf: bytearray, fd: FieldDescriptor, value: Any, packed: bool) -> None:
    if fd.repeated:
        if not isinstance(value, (list, tuple)):
            raise EncodeError(f"{fd.name}: expected a list, got {type(value).__name__}")
        if not value:
            return
        if _use_packed(fd, packed):
            payload = b"".join(_encode_scalar(fd, item) for item in value)
            buf.extend(encode_tag(fd.number, WireType.LENGTH_DELIMITED))
            buf.extend(encode_length_delimited(payload))
            return
        tag = encode_tag(fd.number, fd.wire_type)
        for item in value:
            buf.extend(tag)
            if fd.kind == FieldKind.MESSAGE:
                buf.extend(_encode_nested(fd, item, packed))
            else:
                buf.extend(_encode_scalar(fd, item))
        return

    if fd.kind == FieldKind.MESSAGE:
        buf.extend(encode_tag(fd.number, fd.wire_type))
        buf.extend(_encode_nested(fd, value, packed))
        return

    encoded = _encode_scalar(fd, value)
    if _is_zero(fd, value):
        return
    buf.extend(encode_tag(fd.number, fd.wire_type))
    buf.extend(encoded)


def _check_message(name: str, value: Any, descriptor: MessageDescriptor) -> None:
    """Accept a mapping or an instance of the descriptor's record class."""
    expected = descriptor.message_type
    if isinstance(value, Mapping):
        return
    if expected is not None and isinstance(value, expected):
        return
    wanted = expected.__name__ if expected is not None else "a mapping"
    raise EncodeError(f"{name}: expected {wanted}, got {type(value).__name__}")


def _encode_nested(fd: FieldDescriptor, value: Any, packed: bool) -> bytes:
    assert fd.message is not None
    _check_message(fd.name, value, fd.message)
    sub = bytearray()
    _encode_into(sub, value, fd.message, packed)
    return encode_length_delimited(bytes(sub))


def _encode_into(buf: bytearray, message: Any, descriptor: MessageDescriptor, packed: bool) -> None:
    for fd in descriptor.fields:
        value = _get(message, fd.name)
        if value is None:
            continue
        _encode_field(buf, fd, value, packed)


def encode(
    message: Any, descriptor: MessageDescriptor | None = None, *, packed: bool = True
) -> bytes:
    """Encode a message to bytes.

    Args:
        message: A generated message instance, or a mapping of field name to value.
        descriptor: Descriptor to encode with. Defaults to the message class's own.
        packed: Pack repeated numeric fields whose descriptor leaves it unspecified.

    Returns:
        The encoded bytes. A message whose fields all hold zero values encodes
        to b"".

    Raises:
        EncodeError: A field holds a value of the wrong type or out of range.
    """
    if descriptor is None:
        descriptor = type(message).descriptor()
    _check_message(descriptor.name, message, descriptor)

    buf = bytearray()
    _encode_into(buf, message, descriptor, packed)
    return bytes(buf)
