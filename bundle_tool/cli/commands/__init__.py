"""CLI commands"""

from . import package
from . import watch
from . import clean

__all__ = [
    "package",
    "watch",
    "clean",
]
