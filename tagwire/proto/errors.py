"""Exception hierarchy for tagwire serialization.

Everything derives from SerializationError so callers can catch broadly at an
application boundary and still tell schema, encode and decode failures apart.
"""


class SerializationError(RuntimeError):
    """Raised when serialization or deserialization fails."""


class SchemaError(SerializationError):
    """A descriptor is malformed (duplicate names, missing nested descriptor, ...)."""


class InvalidFieldNumber(SchemaError):
    """A field number is 0, exceeds 29 bits, is reserved, or is used twice."""


class EncodeError(SerializationError):
    """A field value cannot be represented on the wire."""


class DecodeError(SerializationError):
    """Input bytes are not a valid encoding."""


class MalformedVarint(DecodeError):
    """A varint did not terminate within 10 bytes."""


class TruncatedInput(DecodeError):
    """A value claims more bytes than remain in the input."""


class TruncatedVarint(MalformedVarint, TruncatedInput):
    """The input ended in the middle of a varint."""


class UnsupportedWireType(DecodeError):
    """A tag carries a reserved wire type (6 or 7)."""


class FrameTooLarge(DecodeError):
    """A delimited frame is longer than the configured maximum."""
