"""tagwire - Schema-driven tag/length/value serialization, wire compatible with protobuf."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tagwire")
except PackageNotFoundError:
    __version__ = "(local)"
