"""Message and enum base classes for generated tagwire types."""

from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Self

from .decoder import decode
from .encoder import encode
from .errors import SerializationError
from .framing import decode_delimited, encode_delimited
from .types import FieldDescriptor, FieldKind, MessageDescriptor, zero_value
from .wire import Buffer

__all__ = [
    "Message",
    "ProtoEnum",
    "ProtoFieldInfo",
    "SerializationError",
    "proto_field",
]


@dataclass(frozen=True)
class ProtoFieldInfo:
    """Metadata for a tagwire message field."""

    number: int
    kind: FieldKind
    repeated: bool = False
    packed: bool | None = None
    message_type: "type[Message] | None" = None
    enum_type: type[IntEnum] | None = None


# Sentinel for missing default
_MISSING: Any = object()


def proto_field(
    number: int,
    type: str,
    *,
    repeated: bool = False,
    packed: bool | None = None,
    message_type: "type[Message] | None" = None,
    enum_type: type[IntEnum] | None = None,
    default: Any = _MISSING,
    default_factory: Any = _MISSING,
) -> Any:
    """Define a message field with serialization metadata.

    Args:
        number: The field number written on the wire.
        type: The field kind (e.g., "int32", "string", "message").
        repeated: Whether the field holds a list of values.
        packed: Force packed (True) or unpacked (False) encoding of a repeated
            numeric field. None follows the encoder default.
        message_type: The Message subclass of a "message" field.
        enum_type: The ProtoEnum subclass of an "enum" field.
        default: Default value. Defaults to the kind's zero value.
        default_factory: Factory function for default value.

    Returns:
        A dataclass field with tagwire metadata attached.
    """
    kind = FieldKind(type)
    metadata = {"tagwire": ProtoFieldInfo(number, kind, repeated, packed, message_type, enum_type)}

    if default is not _MISSING:
        return field(default=default, metadata=metadata)
    if default_factory is not _MISSING:
        return field(default_factory=default_factory, metadata=metadata)
    if repeated:
        return field(default_factory=list, metadata=metadata)
    return field(default=zero_value(kind, enum_type), metadata=metadata)


class Message:
    """Base class for generated message types.

    Subclasses should be @dataclass decorated and define every field with
    proto_field(). The descriptor is derived from that metadata the first
    time it is needed and cached on the class.

    Example:
        @dataclass
        class Color(Message):
            name: str = proto_field(1, "string")
            r: int = proto_field(3, "uint32")

        @dataclass
        class Point(Message):
            x: float = proto_field(3, "double")
            color: Color | None = proto_field(7, "message", message_type=Color)
    """

    @classmethod
    def descriptor(cls) -> MessageDescriptor:
        """Return the descriptor for this message type."""
        cached = cls.__dict__.get("_tagwire_descriptor")
        if cached is not None:
            return cached

        field_descriptors = []
        for f in fields(cls):  # type: ignore[arg-type]
            info = f.metadata.get("tagwire")
            if info is None:
                continue
            nested = info.message_type.descriptor() if info.message_type is not None else None
            field_descriptors.append(
                FieldDescriptor(
                    number=info.number,
                    name=f.name,
                    kind=info.kind,
                    repeated=info.repeated,
                    packed=info.packed,
                    message=nested,
                    enum_type=info.enum_type,
                )
            )

        descriptor = MessageDescriptor(cls.__name__, tuple(field_descriptors), message_type=cls)
        cls._tagwire_descriptor = descriptor
        return descriptor

    def pack(self, *, packed: bool = True) -> bytes:
        """Encode this message to bytes."""
        return encode(self, self.descriptor(), packed=packed)

    @classmethod
    def unpack(cls, data: Buffer) -> Self:
        """Decode a message that occupies all of data."""
        return decode(data, cls.descriptor())

    def pack_delimited(self, *, packed: bool = True) -> bytes:
        """Encode this message prefixed with its length."""
        return encode_delimited(self.pack(packed=packed))

    @classmethod
    def unpack_delimited(cls, data: Buffer, offset: int = 0) -> tuple[Self, int]:
        """Decode a length-prefixed message.

        Args:
            data: The bytes to unpack from.
            offset: Starting offset in data.

        Returns:
            Tuple of (instance, bytes_consumed).
        """
        payload, consumed = decode_delimited(data, offset)
        return cls.unpack(payload), consumed


class ProtoEnum(IntEnum):
    """Base class for generated enums.

    Example:
        class Status(ProtoEnum):
            STATUS_UNSPECIFIED = 0
            STATUS_OK = 1
    """
