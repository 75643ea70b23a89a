"""Command-line interface for tagwire code generation."""

from __future__ import annotations

import json
import logging
import struct
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from lark.exceptions import UnexpectedInput
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from tagwire.generator import parse_files, python
from tagwire.generator.parser import ValidationError
from tagwire.generator.sizes import SchemaSizeInfo, calculate_sizes
from tagwire.proto.errors import DecodeError
from tagwire.proto.types import WireType
from tagwire.proto.wire import MAX_NESTING_DEPTH, iter_fields

if TYPE_CHECKING:
    from tagwire.generator.types import ProtoEnum, ProtoFile, ProtoMessage


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """tagwire schema compiler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load(input_files: tuple[str, ...]) -> tuple[list, list, ProtoFile, list[str]]:
    """Read and parse schema files, exiting with a message on failure."""
    texts = []
    for input_file in input_files:
        with open(input_file, encoding="utf-8") as f:
            texts.append(f.read())

    try:
        return parse_files(texts)
    except UnexpectedInput as e:
        print(f"Syntax error: {e}")
    except ValidationError as e:
        print(f"Invalid schema: {e}")
    sys.exit(1)


@cli.command()
@click.option("--language", "-l", required=True, help="Target language (python)")
@click.option(
    "--input", "-i", "input_files", required=True, multiple=True, help="Input schema file(s)"
)
@click.option("--output", "-o", "output_file", required=True, help="Output file")
@click.option(
    "--runtime-import",
    "runtime_import",
    is_flag=False,
    flag_value="tagwire.proto",
    default=None,
    help="Import path for runtime. No value=tagwire.proto, omit=tagwire_runtime",
)
def gen(
    language: str, input_files: tuple[str, ...], output_file: str, runtime_import: str | None
) -> None:
    """Generate message code from schema files."""
    if language != "python":
        print(f"Unknown language: {language}")
        sys.exit(1)

    schema = _load(input_files)

    # Default to "tagwire_runtime" (vendored runtime) if not specified
    import_path = runtime_import if runtime_import is not None else "tagwire_runtime"
    try:
        generated_file = python.render(*schema, runtime_import=import_path)
    except ValidationError as e:
        print(f"Invalid schema: {e}")
        sys.exit(1)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write(generated_file)


@cli.command()
@click.option("--language", "-l", required=True, help="Target language (python)")
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--name", default="tagwire_runtime", help="Runtime folder name")
def runtime(language: str, output_path: str, name: str) -> None:
    """Generate runtime support code."""
    if language != "python":
        print(f"Unknown language: {language}")
        sys.exit(1)

    runtime_dir = Path(output_path) / name
    runtime_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in python.runtime().items():
        (runtime_dir / filename).write_text(content)
    print(f"Generated Python runtime in {runtime_dir}")


@cli.command()
@click.option(
    "--input", "-i", "input_files", required=True, multiple=True, help="Input schema file(s)"
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_files: tuple[str, ...], output_json: bool) -> None:
    """Display schema information and encoded size limits."""
    enums, messages, proto_file, _comments = _load(input_files)
    size_info = calculate_sizes(enums, messages)

    if output_json:
        _output_json(size_info, proto_file, enums, messages)
    else:
        _output_plain(size_info, proto_file, enums)


def _format_size(size: int | None) -> str:
    """Format a size value, handling None for unbounded."""
    return "unbounded" if size is None else str(size)


def _output_json(
    size_info: SchemaSizeInfo,
    proto_file: ProtoFile,
    enums: list[ProtoEnum],
    messages: list[ProtoMessage],
) -> None:
    """Output schema info as JSON."""
    data: dict = {
        "file": proto_file.to_dict(),
        "enums": [enum.to_dict() for enum in enums],
        "messages": {},
        "sizes": {
            "max_message_size": size_info.max_message_size,
            "max_delimited_size": size_info.max_delimited_size,
        },
    }

    for message in messages:
        message_info = size_info.messages[message.name]
        data["messages"][message.name] = {
            "definition": message.to_dict(),
            "min_size": message_info.size.min_size,
            "max_size": message_info.size.max_size,
            "max_delimited_size": message_info.max_delimited_size,
            "kind": message_info.size.kind.value,
        }

    print(json.dumps(data, indent=2))


def _output_plain(size_info: SchemaSizeInfo, proto_file: ProtoFile, enums: list[ProtoEnum]) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    console.print("[bold cyan]Schema[/bold cyan]")
    file_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
    file_table.add_column("Label", style="dim")
    file_table.add_column("Value", style="white")
    file_table.add_row("Syntax", proto_file.syntax or "proto3")
    file_table.add_row("Package", proto_file.package or "-")
    file_table.add_row("Enums", str(len(enums)))
    file_table.add_row("Messages", str(len(size_info.messages)))
    console.print(file_table)
    console.print()

    console.print("[bold cyan]Messages[/bold cyan]")
    message_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    message_table.add_column("Name", style="white")
    message_table.add_column("Fields", style="green", justify="right")
    message_table.add_column("Size", style="yellow", justify="right")
    message_table.add_column("Delimited", style="yellow", justify="right")
    message_table.add_column("Kind", style="dim")

    for name, message_info in size_info.messages.items():
        size = message_info.size
        message_table.add_row(
            name,
            str(message_info.field_count),
            f"{size.min_size}-{_format_size(size.max_size)} bytes",
            f"{_format_size(message_info.max_delimited_size)} bytes",
            size.kind.value,
        )

    console.print(message_table)
    console.print()

    console.print("[bold cyan]Buffers[/bold cyan]")
    buffer_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
    buffer_table.add_column("Label", style="dim")
    buffer_table.add_column("Value", style="white")
    buffer_table.add_row("Largest message", f"{_format_size(size_info.max_message_size)} bytes")
    buffer_table.add_row("Largest frame", f"{_format_size(size_info.max_delimited_size)} bytes")
    console.print(buffer_table)


def _as_message(data: bytes) -> list | None:
    """Return the raw fields of data if it parses completely as a message."""
    if not data:
        return None
    try:
        return list(iter_fields(data))
    except DecodeError:
        return None


def _describe_bytes(data: bytes) -> str:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return f"bytes {data.hex()}"
    if text.isprintable():
        return escape(repr(text))
    return f"bytes {data.hex()}"


def _add_raw_fields(tree: Tree, data: bytes, depth: int = 0) -> None:
    """Add every field of data to tree, descending into embedded messages.

    Payloads nested MAX_NESTING_DEPTH levels deep are shown as bytes instead of expanded.
    """
    for raw in iter_fields(data):
        label = f"[green]{raw.number}[/green] [dim]{raw.wire_type.name.lower()}[/dim]"
        value = raw.value

        if raw.wire_type == WireType.VARINT:
            tree.add(f"{label} {value}")
        elif raw.wire_type == WireType.FIXED32:
            assert isinstance(value, bytes)
            (as_int,) = struct.unpack("<I", value)
            (as_float,) = struct.unpack("<f", value)
            tree.add(f"{label} {as_int} [dim](float {as_float:g})[/dim]")
        elif raw.wire_type == WireType.FIXED64:
            assert isinstance(value, bytes)
            (as_int,) = struct.unpack("<Q", value)
            (as_double,) = struct.unpack("<d", value)
            tree.add(f"{label} {as_int} [dim](double {as_double!r})[/dim]")
        else:
            assert isinstance(value, bytes)
            if depth + 1 >= MAX_NESTING_DEPTH:
                tree.add(f"{label} bytes {value.hex()}")
                continue
            nested = _as_message(value)
            if raw.wire_type == WireType.START_GROUP or nested is not None:
                branch = tree.add(f"{label} ({len(value)} bytes)")
                _add_raw_fields(branch, value, depth + 1)
            else:
                tree.add(f"{label} {_describe_bytes(value)}")


@cli.command("decode-raw")
@click.argument("hex_data", required=False)
@click.option("--input", "-i", "input_file", default=None, help="Binary file holding the message")
def decode_raw(hex_data: str | None, input_file: str | None) -> None:
    """Dump an encoded message without a schema."""
    if input_file is not None:
        with open(input_file, "rb") as f:
            data = f.read()
    elif hex_data is not None:
        try:
            data = bytes.fromhex(hex_data)
        except ValueError:
            print(f"Invalid hex input: {hex_data}")
            sys.exit(1)
    else:
        print("Provide HEX_DATA or --input")
        sys.exit(1)

    tree = Tree(f"[bold cyan]message[/bold cyan] ({len(data)} bytes)")
    try:
        _add_raw_fields(tree, data)
    except DecodeError as e:
        print(f"Decode error: {e}")
        sys.exit(1)

    Console().print(tree)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
