"""Bundle Tool - bundle and package Node.js serverless functions.

Every function's handler is bundled with esbuild, the external packages it
actually imports are installed into a per-function staging folder, and the
result is written to one deterministic zip archive per function.
"""

from .__version__ import __version__, __version_info__, __license__

# Core API
from .api.builder import Builder, package

# Data models
from .models import (
    Configuration,
    FunctionDefinition,
    FunctionEntry,
    ArchiveFile,
    ArchiveResult,
    DependencyTree,
    FunctionArtifact,
    BuildReport,
)

# Exceptions
from .api.exceptions import (
    BundleToolError,
    ConfigError,
    EntryNotFoundError,
    BundleError,
    DependencyTreeUnavailableError,
    DependencyConflictError,
    PackagerError,
    ArchiveError,
    PluginError,
)

# Building blocks
from .core import (
    BundleOrchestrator,
    DependencyResolver,
    extract_function_entries,
    resolve_dependencies,
    zip_files,
)
from .services import BuildCoordinator

__all__ = [
    # Version information
    "__version__",
    "__version_info__",
    "__license__",

    # Main classes
    "Builder",
    "BuildCoordinator",
    "BundleOrchestrator",
    "DependencyResolver",

    # Core API functions
    "package",
    "extract_function_entries",
    "resolve_dependencies",
    "zip_files",

    # Data models
    "Configuration",
    "FunctionDefinition",
    "FunctionEntry",
    "ArchiveFile",
    "ArchiveResult",
    "DependencyTree",
    "FunctionArtifact",
    "BuildReport",

    # Exceptions
    "BundleToolError",
    "ConfigError",
    "EntryNotFoundError",
    "BundleError",
    "DependencyTreeUnavailableError",
    "DependencyConflictError",
    "PackagerError",
    "ArchiveError",
    "PluginError",
]
