"""API layer for bundle-tool"""

from .exceptions import (
    BundleToolError,
    ConfigError,
    EntryNotFoundError,
    BundleError,
    DependencyTreeUnavailableError,
    DependencyConflictError,
    SpawnError,
    PackagerError,
    ArchiveError,
    PluginError,
)
from .builder import Builder, package

__all__ = [
    # Main classes
    "Builder",

    # Convenience functions
    "package",

    # Exceptions
    "BundleToolError",
    "ConfigError",
    "EntryNotFoundError",
    "BundleError",
    "DependencyTreeUnavailableError",
    "DependencyConflictError",
    "SpawnError",
    "PackagerError",
    "ArchiveError",
    "PluginError",
]
