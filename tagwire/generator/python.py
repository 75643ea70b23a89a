"""Python code generator for tagwire schemas."""

import keyword
from collections.abc import Collection
from importlib import resources

from jinja2 import Environment, PackageLoader

from .parser import ValidationError
from .types import ProtoEnum, ProtoField, ProtoFile, ProtoMessage

RUNTIME_FILES = [
    "__init__.py",
    "errors.py",
    "types.py",
    "wire.py",
    "encoder.py",
    "decoder.py",
    "framing.py",
    "serialization.py",
]

env = Environment(
    loader=PackageLoader("tagwire.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")

# Map schema scalar types to Python type annotations
PRIMITIVE_TYPE_MAP = {
    "double": "float",
    "float": "float",
    "int32": "int",
    "int64": "int",
    "uint32": "int",
    "uint64": "int",
    "sint32": "int",
    "sint64": "int",
    "fixed32": "int",
    "fixed64": "int",
    "sfixed32": "int",
    "sfixed64": "int",
    "bool": "bool",
    "string": "str",
    "bytes": "bytes",
}

# Attributes of the Message base class that fields must not shadow
_RESERVED_ATTRIBUTES = frozenset(
    ["descriptor", "pack", "unpack", "pack_delimited", "unpack_delimited"]
)

# Names a generated class body reads in its field declarations
_CLASS_BODY_NAMES = frozenset(["int", "float", "bool", "str", "bytes", "list", "proto_field"])


def safe_name(name: str, shadowed: Collection[str] = ()) -> str:
    """Return a Python attribute name for a schema field name.

    Keywords, Message methods and names in shadowed get a trailing underscore.
    """
    if keyword.iskeyword(name) or name in _RESERVED_ATTRIBUTES or name in shadowed:
        return f"{name}_"
    return name


def dependency_order(messages: list[ProtoMessage]) -> list[ProtoMessage]:
    """Order messages so every message comes after the messages it contains.

    Declaration order is kept wherever dependencies allow. The schema has
    already been checked for cycles.
    """
    message_map = {m.name: m for m in messages}
    ordered: list[ProtoMessage] = []
    seen: set[str] = set()

    def visit(message: ProtoMessage) -> None:
        if message.name in seen:
            return
        seen.add(message.name)
        for f in message.fields:
            if f.type.name in message_map:
                visit(message_map[f.type.name])
        ordered.append(message)

    for message in messages:
        visit(message)
    return ordered


def _field_kind(f: ProtoField, enum_names: set[str], message_names: set[str]) -> str:
    if f.type.name in enum_names:
        return "enum"
    if f.type.name in message_names:
        return "message"
    return f.type.name


def _map_type(f: ProtoField, enum_names: set[str], message_names: set[str]) -> str:
    """Map a schema field to a Python type annotation."""
    type_name = PRIMITIVE_TYPE_MAP.get(f.type.name, f.type.name)

    if f.repeated:
        return f"list[{type_name}]"
    if f.type.name in message_names:
        return f"{type_name} | None"
    return type_name


def _field_decl(f: ProtoField, enum_names: set[str], message_names: set[str]) -> str:
    """Generate the proto_field() call declaring a field."""
    kind = _field_kind(f, enum_names, message_names)
    args = [str(f.number), f'"{kind}"']

    if f.repeated:
        args.append("repeated=True")
    if f.packed is not None:
        args.append(f"packed={f.packed}")
    if kind == "message":
        args.append(f"message_type={f.type.name}")
    if kind == "enum":
        args.append(f"enum_type={f.type.name}")
    return f"proto_field({', '.join(args)})"


def _docstring(text: str) -> str:
    text = text.replace("\\", "\\\\").replace('"""', "'''")
    # A trailing quote would run into the closing delimiter
    return f"{text} " if text.endswith('"') else text


def _check_field_names(messages: list[ProtoMessage], shadowed: Collection[str]) -> None:
    for message in messages:
        seen: set[str] = set()
        for f in message.fields:
            name = safe_name(f.name, shadowed)
            if name in seen:
                raise ValidationError(
                    f"{message.name}.{f.name} clashes with another field named {name}"
                )
            seen.add(name)


def render(
    enums: list[ProtoEnum],
    messages: list[ProtoMessage],
    proto: ProtoFile | None,
    comments: list[str],
    runtime_import: str = "tagwire_runtime",
) -> str:
    """Render a schema definition to Python source code."""
    enum_names = {e.name for e in enums}
    message_names = {m.name for m in messages}
    shadowed = _CLASS_BODY_NAMES | enum_names | message_names
    _check_field_names(messages, shadowed)

    return template.render(
        enums=enums,
        messages=dependency_order(messages),
        proto=proto,
        comments=comments,
        field_name=lambda f: safe_name(f.name, shadowed),
        map_type=lambda f: _map_type(f, enum_names, message_names),
        field_decl=lambda f: _field_decl(f, enum_names, message_names),
        docstring=_docstring,
        one_line=lambda text: " ".join(text.splitlines()),
        runtime_import=runtime_import,
    )


def runtime() -> dict[str, str]:
    """Return the Python runtime files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("tagwire.proto").joinpath(filename).read_text()
        result[filename] = content
    return result
