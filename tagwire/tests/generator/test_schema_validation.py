"""Tests for schema validation"""

# pylint: disable=redefined-outer-name,unused-variable,expression-not-assigned,singleton-comparison

import pytest

from tagwire.generator import parse, parse_files
from tagwire.generator.parser import ValidationError


def describe_validation():
    def test_simple_valid(expect):
        enums, messages, _, _ = parse(
            """
            syntax = "proto3";
            enum Kind { KIND_NONE = 0; KIND_SOME = 1; }
            message Item {
              Kind kind = 1;
              repeated Kind history = 2 [packed = true];
              Item2 other = 3;
            }
            message Item2 { bytes data = 536870911; }
        """
        )
        expect(len(enums)) == 1
        expect(len(messages)) == 2

    def test_proto2_rejected():
        with pytest.raises(ValidationError, match="only proto3"):
            parse('syntax = "proto2"; message A { int32 x = 1; }')

    def test_duplicate_field_number():
        with pytest.raises(ValidationError, match="reuses field number 1"):
            parse("message A { int32 x = 1; int32 y = 1; }")

    def test_duplicate_field_name():
        with pytest.raises(ValidationError, match="A.x declared more than once"):
            parse("message A { int32 x = 1; string x = 2; }")

    def test_field_number_zero():
        with pytest.raises(ValidationError, match="out of range"):
            parse("message A { int32 x = 0; }")

    def test_field_number_too_large():
        with pytest.raises(ValidationError, match="out of range"):
            parse("message A { int32 x = 536870912; }")

    def test_wire_format_reserved_number():
        with pytest.raises(ValidationError, match="reserved for the wire format"):
            parse("message A { int32 x = 19500; }")

    def test_reserved_number():
        with pytest.raises(ValidationError, match="uses reserved field number 10"):
            parse("message A { reserved 9 to 11; int32 x = 10; }")

    def test_reserved_name():
        with pytest.raises(ValidationError, match="reserved field name"):
            parse('message A { reserved "x"; int32 x = 1; }')

    def test_unknown_type():
        with pytest.raises(ValidationError, match="unknown type Missing"):
            parse("message A { Missing x = 1; }")

    def test_packed_string():
        with pytest.raises(ValidationError, match="cannot be packed"):
            parse("message A { repeated string x = 1 [packed = true]; }")

    def test_packed_singular():
        with pytest.raises(ValidationError, match="cannot be packed"):
            parse("message A { int32 x = 1 [packed = true]; }")

    def test_duplicate_type_name():
        with pytest.raises(ValidationError, match="A declared more than once"):
            parse("message A { int32 x = 1; } enum A { A_NONE = 0; }")

    def test_enum_first_value_not_zero():
        with pytest.raises(ValidationError, match="First value of enum Kind must be 0"):
            parse("enum Kind { KIND_ONE = 1; KIND_ZERO = 0; }")

    def test_empty_enum():
        with pytest.raises(ValidationError, match="has no values"):
            parse("enum Kind { }")

    def test_duplicate_enum_value():
        with pytest.raises(ValidationError, match="Kind.KIND_NONE declared more than once"):
            parse("enum Kind { KIND_NONE = 0; KIND_NONE = 1; }")

    def test_enum_reserved_value():
        with pytest.raises(ValidationError, match="Kind.KIND_OLD uses reserved value 3"):
            parse("enum Kind { reserved 2 to 4; KIND_NONE = 0; KIND_OLD = 3; }")

    def test_enum_reserved_name():
        with pytest.raises(ValidationError, match="uses a reserved name"):
            parse('enum Kind { reserved "KIND_OLD"; KIND_NONE = 0; KIND_OLD = 1; }')

    def test_self_containing_message():
        with pytest.raises(ValidationError, match="Node contains itself: Node -> Node"):
            parse("message Node { Node next = 1; }")

    def test_indirect_cycle():
        with pytest.raises(ValidationError, match="contains itself: A -> B -> A"):
            parse("message A { B b = 1; } message B { repeated A a = 1; }")

    def test_duplicate_package():
        with pytest.raises(ValidationError, match="Found more than one package"):
            parse("package a; package b; message A { int32 x = 1; }")

    def test_conflicting_packages_across_files():
        with pytest.raises(ValidationError, match="Conflicting package"):
            parse_files(["package a; message A { int32 x = 1; }", "package b;"])

    def test_cross_file_duplicate():
        with pytest.raises(ValidationError, match="declared more than once"):
            parse_files(["message A { int32 x = 1; }", "message A { int32 y = 1; }"])
