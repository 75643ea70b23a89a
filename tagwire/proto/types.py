"""Runtime descriptors for tagwire message serialization.

These dataclasses describe the structure of message types at runtime and drive
the table-based encoder and decoder. They are immutable once built.
"""

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum, auto
from typing import Any

from .errors import InvalidFieldNumber, SchemaError

MIN_FIELD_NUMBER = 1
MAX_FIELD_NUMBER = (1 << 29) - 1
RESERVED_FIELD_NUMBERS = range(19000, 20000)


class WireType(IntEnum):
    """Low three bits of a tag."""

    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3  # Legacy, skipped only
    END_GROUP = 4  # Legacy, skipped only
    FIXED32 = 5


class FieldKind(StrEnum):
    """Value kind of a field, independent of repetition."""

    INT32 = auto()
    INT64 = auto()
    UINT32 = auto()
    UINT64 = auto()
    SINT32 = auto()
    SINT64 = auto()
    BOOL = auto()
    ENUM = auto()
    FIXED32 = auto()
    SFIXED32 = auto()
    FLOAT = auto()
    FIXED64 = auto()
    SFIXED64 = auto()
    DOUBLE = auto()
    STRING = auto()
    BYTES = auto()
    MESSAGE = auto()


KIND_WIRE_TYPES: dict[FieldKind, WireType] = {
    FieldKind.INT32: WireType.VARINT,
    FieldKind.INT64: WireType.VARINT,
    FieldKind.UINT32: WireType.VARINT,
    FieldKind.UINT64: WireType.VARINT,
    FieldKind.SINT32: WireType.VARINT,
    FieldKind.SINT64: WireType.VARINT,
    FieldKind.BOOL: WireType.VARINT,
    FieldKind.ENUM: WireType.VARINT,
    FieldKind.FIXED32: WireType.FIXED32,
    FieldKind.SFIXED32: WireType.FIXED32,
    FieldKind.FLOAT: WireType.FIXED32,
    FieldKind.FIXED64: WireType.FIXED64,
    FieldKind.SFIXED64: WireType.FIXED64,
    FieldKind.DOUBLE: WireType.FIXED64,
    FieldKind.STRING: WireType.LENGTH_DELIMITED,
    FieldKind.BYTES: WireType.LENGTH_DELIMITED,
    FieldKind.MESSAGE: WireType.LENGTH_DELIMITED,
}

PACKABLE_KINDS = frozenset(
    kind for kind, wire_type in KIND_WIRE_TYPES.items() if wire_type != WireType.LENGTH_DELIMITED
)

_ZERO_VALUES: dict[FieldKind, Any] = {
    FieldKind.BOOL: False,
    FieldKind.FLOAT: 0.0,
    FieldKind.DOUBLE: 0.0,
    FieldKind.STRING: "",
    FieldKind.BYTES: b"",
    FieldKind.MESSAGE: None,
}


def check_field_number(number: int) -> None:
    """Raise InvalidFieldNumber unless number can be used for a field."""
    if not MIN_FIELD_NUMBER <= number <= MAX_FIELD_NUMBER:
        raise InvalidFieldNumber(
            f"Field number {number} outside {MIN_FIELD_NUMBER}..{MAX_FIELD_NUMBER}"
        )
    if number in RESERVED_FIELD_NUMBERS:
        raise InvalidFieldNumber(f"Field number {number} is reserved for the wire format")


def zero_value(kind: FieldKind, enum_type: type[IntEnum] | None = None) -> Any:
    """Return the value a singular field of this kind has when absent."""
    if kind == FieldKind.ENUM and enum_type is not None:
        try:
            return enum_type(0)
        except ValueError:
            return 0
    return _ZERO_VALUES.get(kind, 0)


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Describes one field of a message type.

    The field number is what goes on the wire; it must never change once data
    has been written with it.
    """

    number: int
    name: str
    kind: FieldKind
    repeated: bool = False
    packed: bool | None = None  # None = follow the encoder default
    message: "MessageDescriptor | None" = None
    enum_type: type[IntEnum] | None = None

    def __post_init__(self) -> None:
        check_field_number(self.number)
        if self.kind == FieldKind.MESSAGE and self.message is None:
            raise SchemaError(f"Message field {self.name} has no message descriptor")
        if self.packed is not None and not (self.repeated and self.packable):
            raise SchemaError(f"Field {self.name} cannot be packed")

    @property
    def wire_type(self) -> WireType:
        return KIND_WIRE_TYPES[self.kind]

    @property
    def packable(self) -> bool:
        return self.kind in PACKABLE_KINDS

    def default(self) -> Any:
        """Return a fresh zero value for this field."""
        if self.repeated:
            return []
        return zero_value(self.kind, self.enum_type)


@dataclass(frozen=True, slots=True)
class MessageDescriptor:
    """Describes a message type: its fields in declaration order.

    message_type is the record class the decoder builds. When it is None the
    decoder produces a plain dict keyed by field name.
    """

    name: str
    fields: tuple[FieldDescriptor, ...]
    message_type: type | None = None
    _by_number: dict[int, FieldDescriptor] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        by_number: dict[int, FieldDescriptor] = {}
        names: set[str] = set()
        for fd in self.fields:
            if fd.number in by_number:
                raise InvalidFieldNumber(
                    f"{self.name}: field number {fd.number} used by both "
                    f"{by_number[fd.number].name} and {fd.name}"
                )
            if fd.name in names:
                raise SchemaError(f"{self.name}: duplicate field name {fd.name}")
            by_number[fd.number] = fd
            names.add(fd.name)
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "_by_number", by_number)

    def field_by_number(self, number: int) -> FieldDescriptor | None:
        return self._by_number.get(number)

    def __iter__(self):
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)
