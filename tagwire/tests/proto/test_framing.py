"""Tests for length-delimited framing"""

# pylint: disable=redefined-outer-name,unused-variable,expression-not-assigned,singleton-comparison

import pytest

from tagwire.proto.errors import EncodeError, FrameTooLarge, MalformedVarint, TruncatedInput
from tagwire.proto.framing import Framer, decode_delimited, encode_delimited


def describe_delimited():
    def prefixes_payload_with_length(expect):
        expect(encode_delimited(b"abc")) == b"\x03abc"
        expect(encode_delimited(b"")) == b"\x00"
        expect(encode_delimited(b"x" * 200)[:2]) == b"\xc8\x01"

    def reads_payload_at_offset(expect):
        expect(decode_delimited(b"\xff\x02hi", 1)) == (b"hi", 3)

    def rejects_short_payload():
        with pytest.raises(TruncatedInput):
            decode_delimited(b"\x04ab")


def describe_framer():
    def encodes_frames(expect):
        framer = Framer()
        expect(framer.encode_frame(b"\x08\x01")) == b"\x02\x08\x01"

    def decodes_frame_split_across_reads(expect):
        framer = Framer()
        framer.append_buffer(b"\x03a")
        expect(framer.decode_frame()) == None
        framer.append_buffer(b"bc\x01")
        expect(framer.decode_frame()) == b"abc"
        expect(framer.decode_frame()) == None
        framer.append_buffer(b"z")
        expect(framer.decode_frame()) == b"z"

    def waits_for_complete_length_prefix(expect):
        framer = Framer()
        framer.append_buffer(b"\xc8")
        expect(framer.decode_frame()) == None
        framer.append_buffer(b"\x01" + b"x" * 200)
        expect(framer.decode_frame()) == b"x" * 200

    def yields_all_buffered_frames(expect):
        framer = Framer()
        framer.append_buffer(b"\x01a\x00\x02bc\x05d")
        expect(list(framer.frames())) == [b"a", b"", b"bc"]

    def rejects_oversized_outgoing_frame():
        framer = Framer(max_length=4)
        with pytest.raises(EncodeError):
            framer.encode_frame(b"12345")

    def drops_buffer_on_oversized_incoming_frame(expect):
        framer = Framer(max_length=4)
        framer.append_buffer(b"\x05hello")
        with pytest.raises(FrameTooLarge):
            framer.decode_frame()
        framer.append_buffer(b"\x02ok")
        expect(framer.decode_frame()) == b"ok"

    def recovers_after_malformed_length_prefix(expect):
        framer = Framer()
        framer.append_buffer(b"\x80" * 11)
        with pytest.raises(MalformedVarint):
            framer.decode_frame()
        framer.append_buffer(b"\x02ok")
        expect(framer.decode_frame()) == b"ok"

    def clears_buffer(expect):
        framer = Framer()
        framer.append_buffer(b"\x03ab")
        framer.clear_buffer()
        framer.append_buffer(b"\x01q")
        expect(framer.decode_frame()) == b"q"
