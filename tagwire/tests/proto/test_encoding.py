"""Tests for message serialization"""

# pylint: disable=redefined-outer-name,unused-variable,expression-not-assigned,singleton-comparison

import struct
from dataclasses import dataclass

import pytest

from tagwire.proto import encode
from tagwire.proto.errors import EncodeError, SchemaError, TruncatedInput
from tagwire.proto.serialization import Message, ProtoEnum, proto_field


class Shade(ProtoEnum):
    SHADE_UNSPECIFIED = 0
    SHADE_LIGHT = 1
    SHADE_DARK = 2


@dataclass
class Color(Message):
    name: str = proto_field(1, "string")
    guid: str = proto_field(2, "string")
    r: int = proto_field(3, "uint32")
    g: int = proto_field(4, "uint32")
    b: int = proto_field(5, "uint32")
    a: int = proto_field(6, "uint32")


@dataclass
class Point(Message):
    guid: str = proto_field(1, "string")
    name: str = proto_field(2, "string")
    x: float = proto_field(3, "double")
    y: float = proto_field(4, "double")
    z: float = proto_field(5, "double")
    width: float = proto_field(6, "double")
    color: Color | None = proto_field(7, "message", message_type=Color)


@dataclass
class Scalars(Message):
    i32: int = proto_field(1, "int32")
    i64: int = proto_field(2, "int64")
    u64: int = proto_field(3, "uint64")
    s32: int = proto_field(4, "sint32")
    s64: int = proto_field(5, "sint64")
    flag: bool = proto_field(6, "bool")
    f32: int = proto_field(7, "fixed32")
    sf64: int = proto_field(8, "sfixed64")
    ratio: float = proto_field(9, "float")
    data: bytes = proto_field(10, "bytes")
    shade: Shade = proto_field(11, "enum", enum_type=Shade)


@dataclass
class Lists(Message):
    numbers: list[int] = proto_field(4, "int32", repeated=True)
    weights: list[float] = proto_field(5, "float", repeated=True)
    tags: list[str] = proto_field(6, "string", repeated=True)
    legacy: list[int] = proto_field(7, "uint32", repeated=True, packed=False)
    colors: list[Color] = proto_field(8, "message", repeated=True, message_type=Color)


COLOR_BYTES = (
    b"\x0a\x0aBright Red" + b"\x12\x09color-001" + b"\x18\xff\x01" + b"\x30\xff\x01"
)


def make_color():
    return Color(name="Bright Red", guid="color-001", r=255, g=0, b=0, a=255)


def describe_color_in_point():
    def encodes_color_without_zero_channels(expect):
        packed = make_color().pack()
        expect(packed) == COLOR_BYTES
        expect(len(packed)) == 29

    def embeds_color_as_length_delimited_field(expect):
        point = Point(
            guid="point-001", name="Start", x=1.5, y=-2.25, z=0.0, width=10.0, color=make_color()
        )
        packed = point.pack()

        expect(packed.startswith(b"\x0a\x09point-001\x12\x05Start")) == True
        expect(packed.endswith(b"\x3a\x1d" + COLOR_BYTES)) == True
        # z is zero and omitted
        expect(b"\x29" + struct.pack("<d", 0.0) in packed) == False
        expect(len(packed)) == 76

    def restores_omitted_fields_on_decode(expect):
        point = Point(
            guid="point-001", name="Start", x=1.5, y=-2.25, z=0.0, width=10.0, color=make_color()
        )
        recovered = Point.unpack(point.pack())
        expect(recovered) == point
        expect(recovered.color.g) == 0
        expect(recovered.color.b) == 0
        expect(recovered.z) == 0.0

    def round_trips_literal_point(expect):
        color = make_color()
        point = Point(
            guid="point-001", name="Origin Point", x=10.5, y=20.3, z=30.7, width=2.5, color=color
        )
        packed = point.pack()
        recovered = Point.unpack(packed)

        expect(packed.endswith(b"\x3a\x1d" + COLOR_BYTES)) == True
        expect(recovered) == point
        expect(recovered.name) == "Origin Point"
        expect(recovered.y) == 20.3
        expect(recovered.z) == 30.7
        expect(recovered.color.name) == "Bright Red"
        expect(recovered.color.g) == 0
        expect(recovered.color.b) == 0


def describe_zero_values():
    def encodes_default_message_to_nothing(expect):
        expect(Scalars().pack()) == b""
        expect(Point().pack()) == b""
        expect(Lists().pack()) == b""

    def decodes_empty_input_to_defaults(expect):
        recovered = Scalars.unpack(b"")
        expect(recovered) == Scalars()
        expect(recovered.shade) == Shade.SHADE_UNSPECIFIED
        expect(recovered.data) == b""
        expect(Point.unpack(b"").color) == None

    def writes_present_empty_submessage(expect):
        expect(Point(color=Color()).pack()) == b"\x3a\x00"
        expect(Point.unpack(b"\x3a\x00").color) == Color()

    def writes_negative_zero(expect):
        expect(Point(x=-0.0).pack()) == b"\x19" + struct.pack("<d", -0.0)


def describe_scalars():
    def sign_extends_negative_int32(expect):
        expect(Scalars(i32=-1).pack()) == b"\x08" + b"\xff" * 9 + b"\x01"
        expect(Scalars.unpack(b"\x08" + b"\xff" * 9 + b"\x01").i32) == -1

    def zigzags_signed_kinds(expect):
        expect(Scalars(s32=-1).pack()) == b"\x20\x01"
        expect(Scalars(s32=64).pack()) == b"\x20\x80\x01"
        expect(Scalars(s64=-64).pack()) == b"\x28\x7f"

    def writes_fixed_width_little_endian(expect):
        expect(Scalars(f32=1).pack()) == b"\x3d\x01\x00\x00\x00"
        expect(Scalars(sf64=-2).pack()) == b"\x41" + struct.pack("<q", -2)

    def round_trips_every_kind(expect):
        message = Scalars(
            i32=-(2**31),
            i64=-(2**63),
            u64=2**64 - 1,
            s32=2**31 - 1,
            s64=-(2**63),
            flag=True,
            f32=2**32 - 1,
            sf64=2**63 - 1,
            ratio=0.5,
            data=b"\x00\xff",
            shade=Shade.SHADE_DARK,
        )
        expect(Scalars.unpack(message.pack())) == message

    def keeps_unknown_enum_numbers(expect):
        recovered = Scalars.unpack(b"\x58\x07")
        expect(recovered.shade) == 7
        expect(isinstance(recovered.shade, Shade)) == False

    def decodes_known_enum_numbers_as_members(expect):
        expect(Scalars.unpack(b"\x58\x02").shade is Shade.SHADE_DARK) == True

    def rejects_out_of_range_integers():
        with pytest.raises(EncodeError):
            Color(r=-1).pack()
        with pytest.raises(EncodeError):
            Scalars(i32=2**31).pack()
        with pytest.raises(EncodeError):
            Scalars(u64=2**64).pack()

    def rejects_wrong_python_types():
        with pytest.raises(EncodeError):
            Color(name=5).pack()
        with pytest.raises(EncodeError):
            Scalars(data="text").pack()
        with pytest.raises(EncodeError):
            Scalars(f32=1.5).pack()

    def rejects_wrong_type_before_zero_check():
        with pytest.raises(EncodeError):
            Color(name=0).pack()
        with pytest.raises(EncodeError):
            Scalars(data="").pack()

    def rejects_bool_for_numeric_kinds():
        with pytest.raises(EncodeError):
            Scalars(i32=True).pack()
        with pytest.raises(EncodeError):
            Scalars(u64=False).pack()
        with pytest.raises(EncodeError):
            Scalars(ratio=True).pack()
        with pytest.raises(EncodeError):
            Scalars(f32=True).pack()

    def accepts_int_for_bool_and_float(expect):
        expect(Scalars(flag=1).pack()) == b"\x30\x01"
        expect(Scalars(ratio=2).pack()) == b"\x4d" + struct.pack("<f", 2.0)


def describe_repeated_fields():
    def packs_numeric_fields_by_default(expect):
        expect(Lists(numbers=[1, 2, 300]).pack()) == b"\x22\x04\x01\x02\xac\x02"

    def writes_one_tag_per_element_when_unpacked(expect):
        packed = Lists(numbers=[1, 2, 300]).pack(packed=False)
        expect(packed) == b"\x20\x01\x20\x02\x20\xac\x02"

    def field_setting_wins_over_call_default(expect):
        expect(Lists(legacy=[1, 2]).pack(packed=True)) == b"\x38\x01\x38\x02"

    def never_packs_strings_or_messages(expect):
        message = Lists(tags=["a", "b"], colors=[Color(r=1), Color()])
        expect(message.pack()) == b"\x32\x01a\x32\x01b" + b"\x42\x02\x18\x01" + b"\x42\x00"

    def decodes_either_encoding(expect):
        message = Lists(numbers=[1, -5, 300], weights=[0.5, 2.0], legacy=[3])
        expect(Lists.unpack(message.pack(packed=True))) == message
        expect(Lists.unpack(message.pack(packed=False))) == message

    def concatenates_split_packed_runs(expect):
        expect(Lists.unpack(b"\x22\x01\x01\x20\x02\x22\x01\x03").numbers) == [1, 2, 3]

    def rejects_strings_in_place_of_lists():
        with pytest.raises(EncodeError):
            Lists(numbers="abc").pack()
        with pytest.raises(EncodeError):
            Lists(tags="ab").pack()
        with pytest.raises(EncodeError):
            Lists(colors=Color()).pack()

    def accepts_tuples(expect):
        expect(Lists(numbers=(1, 2)).pack()) == b"\x22\x02\x01\x02"

    def rejects_truncated_packed_payload():
        with pytest.raises(TruncatedInput):
            Lists.unpack(b"\x22\x05\x01\x02")


def describe_nested_messages():
    def rejects_non_message_values():
        with pytest.raises(EncodeError):
            Point(color=5).pack()
        with pytest.raises(EncodeError):
            Point(color="red").pack()

    def rejects_instances_of_other_message_classes():
        with pytest.raises(EncodeError):
            Point(color=Point(name="x")).pack()
        with pytest.raises(EncodeError):
            Lists(colors=[Color(), Point()]).pack()

    def rejects_wrong_top_level_message():
        with pytest.raises(EncodeError):
            encode(Point(), Color.descriptor())

    def accepts_mappings_for_nested_messages(expect):
        data = encode({"color": {"r": 1}}, Point.descriptor())
        expect(data) == b"\x3a\x02\x18\x01"
        expect(Point.unpack(data).color) == Color(r=1)


def describe_merging():
    def merges_repeated_singular_message(expect):
        data = b"\x3a\x02\x18\x01" + b"\x3a\x02\x20\x02"
        expect(Point.unpack(data).color) == Color(r=1, g=2)

    def keeps_last_scalar_value(expect):
        expect(Color.unpack(b"\x18\x01\x18\x02").r) == 2


def describe_delimited():
    def prefixes_length(expect):
        packed = make_color().pack_delimited()
        expect(packed) == b"\x1d" + COLOR_BYTES

    def reads_consecutive_messages(expect):
        stream = Color(r=1).pack_delimited() + make_color().pack_delimited()
        first, consumed = Color.unpack_delimited(stream)
        second, consumed2 = Color.unpack_delimited(stream, consumed)
        expect(first) == Color(r=1)
        expect(second) == make_color()
        expect(consumed + consumed2) == len(stream)


def describe_descriptor():
    def is_derived_from_field_metadata(expect):
        descriptor = Point.descriptor()
        expect(descriptor.name) == "Point"
        expect([f.number for f in descriptor]) == [1, 2, 3, 4, 5, 6, 7]
        expect(descriptor.field_by_number(7).message) == Color.descriptor()
        expect(descriptor.message_type is Point) == True

    def is_cached(expect):
        expect(Color.descriptor() is Color.descriptor()) == True

    def encodes_mappings_with_explicit_descriptor(expect):
        expect(encode({"r": 255, "a": 255}, Color.descriptor())) == b"\x18\xff\x01\x30\xff\x01"

    def rejects_duplicate_field_numbers():
        @dataclass
        class Broken(Message):
            a: int = proto_field(1, "int32")
            b: int = proto_field(1, "int32")

        with pytest.raises(SchemaError):
            Broken.descriptor()

    def rejects_packed_singular_fields():
        @dataclass
        class Broken(Message):
            a: int = proto_field(1, "int32", packed=True)

        with pytest.raises(SchemaError):
            Broken.descriptor()
