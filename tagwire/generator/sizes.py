"""Encoded size calculation for schema messages."""

from dataclasses import dataclass
from enum import StrEnum, auto

from tagwire.proto.wire import varint_size

from .types import ProtoEnum, ProtoField, ProtoMessage

# Largest encoding of a single value, without its tag
VARINT_MAX_SIZES: dict[str, int] = {
    "int32": 10,  # Negative values are sign-extended to 64 bits
    "int64": 10,
    "uint32": 5,
    "uint64": 10,
    "sint32": 5,
    "sint64": 10,
    "bool": 1,
}

FIXED_SIZES: dict[str, int] = {
    "fixed32": 4,
    "sfixed32": 4,
    "float": 4,
    "fixed64": 8,
    "sfixed64": 8,
    "double": 8,
}

ENUM_MAX_SIZE = 10


class SizeKind(StrEnum):
    """Classification of size characteristics."""

    BOUNDED = auto()  # Largest encoding is known
    UNBOUNDED = auto()  # Contains strings, bytes or repeated fields


@dataclass(frozen=True)
class SizeInfo:
    """Size information for a field or message."""

    min_size: int
    max_size: int | None  # None means unbounded
    kind: SizeKind

    @property
    def is_bounded(self) -> bool:
        return self.kind == SizeKind.BOUNDED


@dataclass(frozen=True)
class MessageSizeInfo:
    """Complete size information for a message."""

    name: str
    field_count: int
    size: SizeInfo

    @property
    def max_delimited_size(self) -> int | None:
        """Largest length-prefixed frame holding this message."""
        if self.size.max_size is None:
            return None
        return delimited_size(self.size.max_size)


@dataclass(frozen=True)
class SchemaSizeInfo:
    """Size information for an entire schema."""

    messages: dict[str, MessageSizeInfo]
    max_message_size: int | None  # None if any message is unbounded
    max_delimited_size: int | None


def delimited_size(size: int) -> int:
    """Size of a payload once prefixed with its varint length."""
    return varint_size(size) + size


def tag_size(number: int) -> int:
    """Size of the tag of a field with this number."""
    return varint_size(number << 3)


_UNBOUNDED = SizeInfo(0, None, SizeKind.UNBOUNDED)


class SizeCalculator:
    """Calculate encoded sizes for schema messages."""

    def __init__(self, enums: list[ProtoEnum], messages: list[ProtoMessage]):
        self.enums = {e.name: e for e in enums}
        self.messages = {m.name: m for m in messages}
        self._cache: dict[str, SizeInfo] = {}

    def calc_value_size(self, type_name: str) -> SizeInfo:
        """Calculate the size of one value of a type, without its tag."""
        if type_name in VARINT_MAX_SIZES:
            return SizeInfo(1, VARINT_MAX_SIZES[type_name], SizeKind.BOUNDED)

        if type_name in FIXED_SIZES:
            size = FIXED_SIZES[type_name]
            return SizeInfo(size, size, SizeKind.BOUNDED)

        if type_name in ("string", "bytes"):
            return SizeInfo(1, None, SizeKind.UNBOUNDED)

        if type_name in self.enums:
            return SizeInfo(1, ENUM_MAX_SIZE, SizeKind.BOUNDED)

        if type_name in self.messages:
            nested = self.calc_message_size(type_name).size
            if nested.max_size is None:
                return SizeInfo(1, None, SizeKind.UNBOUNDED)
            return SizeInfo(1, delimited_size(nested.max_size), SizeKind.BOUNDED)

        raise ValueError(f"Unknown type: {type_name}")

    def calc_field_size(self, f: ProtoField) -> SizeInfo:
        """Calculate size for a field (zero values and empty lists encode to nothing)."""
        if f.repeated:
            return _UNBOUNDED

        value = self.calc_value_size(f.type.name)
        if value.max_size is None:
            return _UNBOUNDED
        return SizeInfo(0, tag_size(f.number) + value.max_size, SizeKind.BOUNDED)

    def calc_message_size(self, name: str) -> MessageSizeInfo:
        """Calculate size for a message (with caching)."""
        message = self.messages[name]
        if name in self._cache:
            return MessageSizeInfo(name, len(message.fields), self._cache[name])

        total_max: int | None = 0
        for f in message.fields:
            size = self.calc_field_size(f)
            if total_max is not None and size.max_size is not None:
                total_max += size.max_size
            else:
                total_max = None

        kind = SizeKind.BOUNDED if total_max is not None else SizeKind.UNBOUNDED
        message_size = SizeInfo(0, total_max, kind)
        self._cache[name] = message_size

        return MessageSizeInfo(name, len(message.fields), message_size)

    def calc_schema_info(self) -> SchemaSizeInfo:
        """Calculate complete schema size information."""
        infos = {name: self.calc_message_size(name) for name in self.messages}

        max_sizes = [info.size.max_size for info in infos.values()]
        if all(m is not None for m in max_sizes):
            max_msg: int | None = max((m for m in max_sizes if m is not None), default=0)
        else:
            max_msg = None

        return SchemaSizeInfo(
            messages=infos,
            max_message_size=max_msg,
            max_delimited_size=delimited_size(max_msg) if max_msg is not None else None,
        )


def calculate_sizes(enums: list[ProtoEnum], messages: list[ProtoMessage]) -> SchemaSizeInfo:
    """Calculate size information for a schema definition."""
    calc = SizeCalculator(enums, messages)
    return calc.calc_schema_info()
