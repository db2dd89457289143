# bundle_tool/models/__init__.py
"""Data models for bundle-tool"""

from .config import Configuration, PackagerOptions, WatchConfiguration, NodeExternalsOptions
from .build import FunctionDefinition, FunctionEntry, FunctionBuildResult, FileBuildResult, BundlerResult
from .dependency import (
    DependencyTree,
    DependencyMap,
    DependencyConflict,
    ResolvedDependencies,
    dependency_map_from_dict,
)
from .archive import ArchiveFile, ArchiveResult
from .result import FunctionArtifact, BuildReport

__all__ = [
    # Config models
    "Configuration",
    "PackagerOptions",
    "WatchConfiguration",
    "NodeExternalsOptions",

    # Build models
    "FunctionDefinition",
    "FunctionEntry",
    "FunctionBuildResult",
    "FileBuildResult",
    "BundlerResult",

    # Dependency models
    "DependencyTree",
    "DependencyMap",
    "DependencyConflict",
    "ResolvedDependencies",
    "dependency_map_from_dict",

    # Archive models
    "ArchiveFile",
    "ArchiveResult",

    # Result models
    "FunctionArtifact",
    "BuildReport",
]
