"""Schema parser using Lark."""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, TypeVar

from lark import Lark, Token
from lark.visitors import Transformer

from tagwire.proto.types import MAX_FIELD_NUMBER, RESERVED_FIELD_NUMBERS

from .types import (
    PACKABLE_SCALARS,
    SCALAR_TYPES,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoOption,
    ProtoReservedRange,
    ProtoType,
)

logger = logging.getLogger(__name__)

_g_parser: Lark | None = None

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}


class ValidationError(RuntimeError):
    """Raised when schema validation fails."""


@dataclass
class _Name:
    value: str
    line: int


@dataclass
class _Number:
    value: int


@dataclass
class _Value:
    value: Any


@dataclass
class _Repeated:
    pass


@dataclass
class _FieldOptions:
    options: list[ProtoOption]


@dataclass
class _Reserved:
    ranges: list[ProtoReservedRange]
    names: list[str]


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _Import:
    value: str


@dataclass
class _Comments:
    """`//` comments of a schema file, keyed by line number."""

    standalone: dict[int, str] = field(default_factory=dict)
    trailing: dict[int, str] = field(default_factory=dict)
    header: list[str] = field(default_factory=list)

    def for_line(self, line: int) -> str | None:
        """Comment for a declaration on line: trailing, else the block above it."""
        if line in self.trailing:
            return self.trailing[line]

        block: list[str] = []
        n = line - 1
        while n in self.standalone:
            block.insert(0, self.standalone[n])
            n -= 1
        return "\n".join(block) if block else None


def _split_comment(line: str) -> tuple[str, str] | None:
    """Split a line into (code, comment text) if it has a // comment."""
    quote: str | None = None
    i = 0
    while i < len(line):
        ch = line[i]
        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif line.startswith("//", i):
            return line[:i], line[i + 2 :].strip()
        i += 1
    return None


def _collect_comments(text: str) -> _Comments:
    comments = _Comments()
    in_header = True

    for number, line in enumerate(text.splitlines(), start=1):
        split = _split_comment(line)
        if split is None:
            if line.strip():
                in_header = False
            continue

        code, comment = split
        if code.strip():
            comments.trailing[number] = comment
            in_header = False
        else:
            comments.standalone[number] = comment
            if in_header:
                comments.header.append(comment)

    return comments


def _unquote(token: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), str(token)[1:-1])


TFilter = TypeVar("TFilter", bound=object)


def _find_many(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[TFilter]) -> TFilter | None:
    filtered = _find_many(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise ValidationError(f"Found more than one {class_type.__name__.strip('_').lower()}")
    return filtered[0]


class TreeTransformer(Transformer):
    """Transform parse tree into schema types."""

    def __init__(self, comments: _Comments) -> None:
        super().__init__()
        self._comments = comments

    def start(self, args: list[Any]) -> list[Any]:
        return list(args)

    def name(self, args: list[Any]) -> _Name:
        return _Name(value=str(args[0]), line=args[0].line)

    def number(self, args: list[Any]) -> _Number:
        return _Number(value=int(args[0]))

    def label(self, _args: list[Any]) -> _Repeated:
        return _Repeated()

    def full_ident(self, args: list[Any]) -> str:
        return ".".join(str(arg) for arg in args)

    def option_name(self, args: list[Any]) -> str:
        return args[0]

    def type_ref(self, args: list[Any]) -> ProtoType:
        return ProtoType(name=args[0])

    def const_ident(self, args: list[Any]) -> _Value:
        return _Value(value={"true": True, "false": False}.get(args[0], args[0]))

    def const_int(self, args: list[Any]) -> _Value:
        return _Value(value=int(args[0]))

    def const_float(self, args: list[Any]) -> _Value:
        return _Value(value=float(args[0]))

    def const_string(self, args: list[Any]) -> _Value:
        return _Value(value=_unquote(args[0]))

    def option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=args[0], value=args[1].value)

    def field_option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=args[0], value=args[1].value)

    def field_options(self, args: list[Any]) -> _FieldOptions:
        return _FieldOptions(options=list(args))

    def field(self, args: list[Any]) -> ProtoField:
        name = _find_one(args, _Name)
        number = _find_one(args, _Number)
        options = _find_one(args, _FieldOptions)
        assert name is not None and number is not None
        return ProtoField(
            name=name.value,
            type=_find_one(args, ProtoType),
            number=number.value,
            repeated=_find_one(args, _Repeated) is not None,
            comment=self._comments.for_line(name.line),
            options=options.options if options else [],
        )

    def reserved_range(self, args: list[Any]) -> ProtoReservedRange:
        start = int(args[0])
        if len(args) == 1:
            return ProtoReservedRange(start=start, end=start)
        end = MAX_FIELD_NUMBER if args[1].type == "MAX" else int(args[1])
        return ProtoReservedRange(start=start, end=end)

    def reserved(self, args: list[Any]) -> _Reserved:
        return _Reserved(
            ranges=_find_many(args, ProtoReservedRange),
            names=[_unquote(arg) for arg in args if isinstance(arg, Token)],
        )

    def message(self, args: list[Any]) -> ProtoMessage:
        name = _find_one(args, _Name)
        assert name is not None
        reserved = _find_many(args, _Reserved)
        return ProtoMessage(
            name=name.value,
            fields=_find_many(args, ProtoField),
            reserved_ranges=[r for res in reserved for r in res.ranges],
            reserved_names=[n for res in reserved for n in res.names],
            comment=self._comments.for_line(name.line),
            options=_find_many(args, ProtoOption),
        )

    def enum_value(self, args: list[Any]) -> ProtoEnumValue:
        name = args[0]
        options = _find_one(args, _FieldOptions)
        return ProtoEnumValue(
            name=name.value,
            value=int(args[1]),
            comment=self._comments.for_line(name.line),
            options=options.options if options else [],
        )

    def enum(self, args: list[Any]) -> ProtoEnum:
        name = _find_one(args, _Name)
        assert name is not None
        reserved = _find_many(args, _Reserved)
        return ProtoEnum(
            name=name.value,
            values=_find_many(args, ProtoEnumValue),
            reserved_ranges=[r for res in reserved for r in res.ranges],
            reserved_names=[n for res in reserved for n in res.names],
            comment=self._comments.for_line(name.line),
            options=_find_many(args, ProtoOption),
        )

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(value=_unquote(args[0]))

    def package(self, args: list[Any]) -> _Package:
        return _Package(value=args[0])

    def import_stmt(self, args: list[Any]) -> _Import:
        return _Import(value=_unquote(args[0]))


def _resolve(type_name: str, package: str | None) -> str:
    """Strip the file's own package from a qualified type name."""
    if package and type_name.startswith(f"{package}."):
        return type_name[len(package) + 1 :]
    return type_name


def _check_cycles(messages: list[ProtoMessage]) -> None:
    """Reject messages that contain themselves, directly or transitively."""
    message_map = {m.name: m for m in messages}
    done: set[str] = set()

    def visit(message: ProtoMessage, path: list[str]) -> None:
        if message.name in done:
            return
        if message.name in path:
            cycle = " -> ".join([*path[path.index(message.name) :], message.name])
            raise ValidationError(f"Message {message.name} contains itself: {cycle}")
        for f in message.fields:
            if f.type.name in message_map:
                visit(message_map[f.type.name], [*path, message.name])
        done.add(message.name)

    for message in messages:
        visit(message, [])


def _validate_message(
    message: ProtoMessage, enum_names: set[str], message_names: set[str]
) -> None:
    numbers: dict[int, str] = {}
    names: set[str] = set()

    for f in message.fields:
        where = f"{message.name}.{f.name}"

        if f.name in names:
            raise ValidationError(f"{where} declared more than once")
        if f.number in numbers:
            raise ValidationError(
                f"{where} reuses field number {f.number} of {message.name}.{numbers[f.number]}"
            )
        if not 1 <= f.number <= MAX_FIELD_NUMBER:
            raise ValidationError(f"{where} field number {f.number} is out of range")
        if f.number in RESERVED_FIELD_NUMBERS:
            raise ValidationError(
                f"{where} field number {f.number} is reserved for the wire format"
            )
        if any(f.number in r for r in message.reserved_ranges):
            raise ValidationError(f"{where} uses reserved field number {f.number}")
        if f.name in message.reserved_names:
            raise ValidationError(f"{where} uses a reserved field name")

        type_name = f.type.name
        if type_name not in SCALAR_TYPES | enum_names | message_names:
            raise ValidationError(f"{where} has unknown type {type_name}")

        packable = type_name in PACKABLE_SCALARS or type_name in enum_names
        if f.packed is not None and not (f.repeated and packable):
            raise ValidationError(f"{where} cannot be packed")

        names.add(f.name)
        numbers[f.number] = f.name


def validate(
    enums: list[ProtoEnum],
    messages: list[ProtoMessage],
    proto_file: ProtoFile,
    _comments: list[str],
) -> None:
    """Validate a parsed schema definition."""
    if proto_file.syntax is not None and proto_file.syntax != "proto3":
        raise ValidationError(f'Unsupported syntax "{proto_file.syntax}", only proto3 is supported')

    declared: set[str] = set()
    for decl in [*enums, *messages]:
        if decl.name in declared:
            raise ValidationError(f"{decl.name} declared more than once")
        declared.add(decl.name)

    for enum in enums:
        if not enum.values:
            raise ValidationError(f"Enum {enum.name} has no values")
        if enum.values[0].value != 0:
            raise ValidationError(f"First value of enum {enum.name} must be 0")
        value_names: set[str] = set()
        for value in enum.values:
            if value.name in value_names:
                raise ValidationError(f"{enum.name}.{value.name} declared more than once")
            if any(value.value in r for r in enum.reserved_ranges):
                raise ValidationError(
                    f"{enum.name}.{value.name} uses reserved value {value.value}"
                )
            if value.name in enum.reserved_names:
                raise ValidationError(f"{enum.name}.{value.name} uses a reserved name")
            value_names.add(value.name)

    enum_names = {e.name for e in enums}
    message_names = {m.name for m in messages}
    for message in messages:
        _validate_message(message, enum_names, message_names)

    _check_cycles(messages)


def _parse_one(text: str) -> tuple[list[ProtoEnum], list[ProtoMessage], ProtoFile, list[str]]:
    """Parse a single schema file without validating it."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/protodef.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar, parser="lalr")

    comments = _collect_comments(text)
    tree = _g_parser.parse(text)
    items = TreeTransformer(comments).transform(tree)

    syntax = _find_one(items, _Syntax)
    package = _find_one(items, _Package)
    proto_file = ProtoFile(
        syntax=syntax.value if syntax else None,
        package=package.value if package else None,
        imports=[i.value for i in _find_many(items, _Import)],
        options=_find_many(items, ProtoOption),
    )
    enums = _find_many(items, ProtoEnum)
    messages = _find_many(items, ProtoMessage)
    return enums, messages, proto_file, comments.header


def parse_files(
    texts: list[str],
) -> tuple[list[ProtoEnum], list[ProtoMessage], ProtoFile, list[str]]:
    """Parse several schema files into one validated definition set.

    Types may reference each other across files. All files must share the
    same syntax and package.
    """
    enums: list[ProtoEnum] = []
    messages: list[ProtoMessage] = []
    comments: list[str] = []
    merged = ProtoFile(syntax=None, package=None, imports=[], options=[])

    for text in texts:
        file_enums, file_messages, proto_file, file_comments = _parse_one(text)

        for attr in ("syntax", "package"):
            value = getattr(proto_file, attr)
            current = getattr(merged, attr)
            if value is not None and current is not None and value != current:
                raise ValidationError(f"Conflicting {attr}: {current} and {value}")
            if current is None:
                setattr(merged, attr, value)

        enums.extend(file_enums)
        messages.extend(file_messages)
        comments.extend(file_comments)
        merged.imports.extend(proto_file.imports)
        merged.options.extend(proto_file.options)

    for message in messages:
        for f in message.fields:
            f.type.name = _resolve(f.type.name, merged.package)

    validate(enums, messages, merged, comments)
    logger.debug(
        "Parsed %d file(s): %d enums, %d messages", len(texts), len(enums), len(messages)
    )

    return enums, messages, merged, comments


def parse(text: str) -> tuple[list[ProtoEnum], list[ProtoMessage], ProtoFile, list[str]]:
    """Parse a schema file."""
    return parse_files([text])
