"""tagwire runtime: descriptors, wire codec, encoder and decoder."""

from .decoder import decode
from .encoder import encode
from .errors import (
    DecodeError,
    EncodeError,
    FrameTooLarge,
    InvalidFieldNumber,
    MalformedVarint,
    SchemaError,
    SerializationError,
    TruncatedInput,
    TruncatedVarint,
    UnsupportedWireType,
)
from .framing import Framer, decode_delimited, encode_delimited
from .serialization import Message, ProtoEnum, proto_field
from .types import FieldDescriptor, FieldKind, MessageDescriptor, WireType
from .wire import decode_tag, decode_varint, encode_tag, encode_varint

__all__ = [
    "DecodeError",
    "EncodeError",
    "FieldDescriptor",
    "FieldKind",
    "FrameTooLarge",
    "Framer",
    "InvalidFieldNumber",
    "MalformedVarint",
    "Message",
    "MessageDescriptor",
    "ProtoEnum",
    "SchemaError",
    "SerializationError",
    "TruncatedInput",
    "TruncatedVarint",
    "UnsupportedWireType",
    "WireType",
    "decode",
    "decode_delimited",
    "decode_tag",
    "decode_varint",
    "encode",
    "encode_delimited",
    "encode_tag",
    "encode_varint",
    "proto_field",
]
