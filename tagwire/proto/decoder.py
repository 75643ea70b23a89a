"""Descriptor-driven message decoder.

Decoding is tag driven: each field is looked up by number in the descriptor.
Unknown numbers, and known numbers arriving with a wire type the field cannot
accept, are skipped so that readers built from older or newer schemas keep
working.
"""

import logging
import struct
from typing import Any

from .encoder import FIXED_FORMATS
from .errors import DecodeError
from .types import FieldDescriptor, FieldKind, MessageDescriptor, WireType
from .wire import (
    Buffer,
    decode_varint,
    decode_zigzag,
    read_fixed,
    read_length_delimited,
    read_tag,
    skip_field,
    to_signed,
)

logger = logging.getLogger(__name__)

_FIXED_SIZES = {kind: struct.calcsize(fmt) for kind, fmt in FIXED_FORMATS.items()}


def _from_varint(fd: FieldDescriptor, raw: int) -> Any:
    kind = fd.kind
    if kind == FieldKind.BOOL:
        return raw != 0
    if kind == FieldKind.UINT64:
        return raw
    if kind == FieldKind.UINT32:
        return raw & 0xFFFFFFFF
    if kind == FieldKind.INT64:
        return to_signed(raw, 64)
    if kind == FieldKind.SINT64:
        return decode_zigzag(raw)
    if kind == FieldKind.SINT32:
        return decode_zigzag(raw & 0xFFFFFFFF)

    value = to_signed(raw, 32)
    if kind == FieldKind.ENUM and fd.enum_type is not None:
        try:
            return fd.enum_type(value)
        except ValueError:
            # Open enum: keep numbers this schema does not know
            return value
    return value


def _read_scalar(fd: FieldDescriptor, data: Buffer, offset: int) -> tuple[Any, int]:
    """Read one non-message value of fd's kind at offset."""
    if fd.kind in FIXED_FORMATS:
        raw, consumed = read_fixed(data, offset, _FIXED_SIZES[fd.kind])
        return struct.unpack(FIXED_FORMATS[fd.kind], raw)[0], consumed

    if fd.kind == FieldKind.STRING:
        payload, consumed = read_length_delimited(data, offset)
        try:
            return bytes(payload).decode("utf-8"), consumed
        except UnicodeDecodeError as e:
            raise DecodeError(f"{fd.name}: invalid UTF-8 in string field") from e

    if fd.kind == FieldKind.BYTES:
        payload, consumed = read_length_delimited(data, offset)
        return bytes(payload), consumed

    raw, consumed = decode_varint(data, offset)
    return _from_varint(fd, raw), consumed


def _read_packed(fd: FieldDescriptor, payload: memoryview) -> list[Any]:
    if fd.kind in FIXED_FORMATS:
        size = _FIXED_SIZES[fd.kind]
        if len(payload) % size:
            raise DecodeError(
                f"{fd.name}: packed payload of {len(payload)} bytes is not a multiple of {size}"
            )
        fmt = FIXED_FORMATS[fd.kind]
        return [item[0] for item in struct.iter_unpack(fmt, payload)]

    values = []
    offset = 0
    while offset < len(payload):
        value, consumed = _read_scalar(fd, payload, offset)
        values.append(value)
        offset += consumed
    return values


def _accepts(fd: FieldDescriptor, wire_type: WireType) -> bool:
    if wire_type == fd.wire_type:
        return True
    return fd.repeated and fd.packable and wire_type == WireType.LENGTH_DELIMITED


def _read_field(
    values: dict[str, Any], fd: FieldDescriptor, wire_type: WireType, data: Buffer, offset: int
) -> int:
    """Decode one field value into values and return the bytes consumed."""
    if fd.kind == FieldKind.MESSAGE:
        assert fd.message is not None
        payload, consumed = read_length_delimited(data, offset)
        if fd.repeated:
            sub: dict[str, Any] = {}
            values.setdefault(fd.name, []).append(sub)
        else:
            # A repeated occurrence of a singular message merges into the first
            sub = values.setdefault(fd.name, {})
        _merge_from(sub, payload, fd.message)
        return consumed

    if fd.repeated and wire_type == WireType.LENGTH_DELIMITED and fd.packable:
        payload, consumed = read_length_delimited(data, offset)
        values.setdefault(fd.name, []).extend(_read_packed(fd, payload))
        return consumed

    value, consumed = _read_scalar(fd, data, offset)
    if fd.repeated:
        values.setdefault(fd.name, []).append(value)
    else:
        values[fd.name] = value
    return consumed


def _merge_from(values: dict[str, Any], data: Buffer, descriptor: MessageDescriptor) -> None:
    """Decode data field by field into a dict of raw values."""
    offset = 0
    end = len(data)

    while offset < end:
        number, wire_type, consumed = read_tag(data, offset)
        offset += consumed

        fd = descriptor.field_by_number(number)
        if fd is None or not _accepts(fd, wire_type):
            skipped = skip_field(data, offset, wire_type, number)
            logger.debug(
                "%s: skipped field %d (wire type %s, %d bytes)",
                descriptor.name,
                number,
                wire_type.name,
                skipped,
            )
            offset += skipped
            continue

        offset += _read_field(values, fd, wire_type, data, offset)


def _build(values: dict[str, Any], descriptor: MessageDescriptor) -> Any:
    """Turn decoded raw values into a message, filling in zero values."""
    result: dict[str, Any] = {}
    for fd in descriptor.fields:
        if fd.name not in values:
            result[fd.name] = fd.default()
            continue

        value = values[fd.name]
        if fd.kind == FieldKind.MESSAGE:
            assert fd.message is not None
            if fd.repeated:
                value = [_build(item, fd.message) for item in value]
            else:
                value = _build(value, fd.message)
        result[fd.name] = value

    if descriptor.message_type is None:
        return result
    return descriptor.message_type(**result)


def decode(data: Buffer, descriptor: MessageDescriptor) -> Any:
    """Decode bytes into a new message.

    Args:
        data: The encoded message. All of it is consumed.
        descriptor: Descriptor of the expected message type.

    Returns:
        An instance of descriptor.message_type, or a dict when it has none.

    Raises:
        TruncatedInput: A value runs past the end of the input.
        MalformedVarint: A varint does not terminate within 10 bytes.
        DecodeError: The input is otherwise not a valid encoding.
    """
    values: dict[str, Any] = {}
    _merge_from(values, memoryview(data), descriptor)
    return _build(values, descriptor)
