"""tagwire schema compiler and code generator."""

from .parser import *
from .sizes import MessageSizeInfo as MessageSizeInfo
from .sizes import SchemaSizeInfo as SchemaSizeInfo
from .sizes import SizeCalculator as SizeCalculator
from .sizes import SizeInfo as SizeInfo
from .sizes import SizeKind as SizeKind
from .sizes import calculate_sizes as calculate_sizes
from .types import *
