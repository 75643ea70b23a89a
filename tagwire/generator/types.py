"""Type definitions for schema parsing and code generation."""

from dataclasses import dataclass
from typing import Any

from dataclasses_json import DataClassJsonMixin


@dataclass
class ProtoType(DataClassJsonMixin):
    """Represents a scalar or user-defined field type."""

    name: str


@dataclass
class ProtoOption(DataClassJsonMixin):
    """Represents a `name = value` option on a file, message, field or enum."""

    name: str
    value: Any


@dataclass
class ProtoReservedRange(DataClassJsonMixin):
    """An inclusive range of reserved field numbers or enum values."""

    start: int
    end: int

    def __contains__(self, number: int) -> bool:
        return self.start <= number <= self.end


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    """Represents a single enum value."""

    name: str
    value: int
    comment: str | None
    options: list[ProtoOption]


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """Represents an enum type definition."""

    name: str
    values: list[ProtoEnumValue]
    reserved_ranges: list[ProtoReservedRange]
    reserved_names: list[str]
    comment: str | None
    options: list[ProtoOption]


@dataclass
class ProtoField(DataClassJsonMixin):
    """Represents a field of a message.

    type.name is either a scalar type name (see SCALAR_TYPES) or the name of a
    message or enum declared in the same definition set.
    """

    name: str
    type: ProtoType
    number: int
    repeated: bool
    comment: str | None
    options: list[ProtoOption]

    @property
    def packed(self) -> bool | None:
        for option in self.options:
            if option.name == "packed":
                return bool(option.value)
        return None


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """Represents a message type definition."""

    name: str
    fields: list[ProtoField]
    reserved_ranges: list[ProtoReservedRange]
    reserved_names: list[str]
    comment: str | None
    options: list[ProtoOption]


@dataclass
class ProtoFile(DataClassJsonMixin):
    """Represents file-level declarations of one or more schema files."""

    syntax: str | None
    package: str | None
    imports: list[str]
    options: list[ProtoOption]


SCALAR_TYPES = frozenset(
    [
        "double",
        "float",
        "int32",
        "int64",
        "uint32",
        "uint64",
        "sint32",
        "sint64",
        "fixed32",
        "fixed64",
        "sfixed32",
        "sfixed64",
        "bool",
        "string",
        "bytes",
    ]
)

# Scalars that may use packed encoding when repeated
PACKABLE_SCALARS = SCALAR_TYPES - {"string", "bytes"}
