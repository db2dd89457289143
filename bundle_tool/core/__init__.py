"""Core functionality for bundle-tool"""

from .entry_resolver import resolve_function_entry, extract_function_entries
from .bundler import Bundler, BuildContext, EsbuildBundler, EsbuildContext
from .bundle_orchestrator import BundleOrchestrator
from .dependency_resolver import (
    DependencyResolver,
    collect_externals,
    find_used_externals,
    resolve_dependencies,
)
from .packagers import Packager, detect_packager, get_packager
from .archiver import zip_files

__all__ = [
    "resolve_function_entry",
    "extract_function_entries",
    "Bundler",
    "BuildContext",
    "EsbuildBundler",
    "EsbuildContext",
    "BundleOrchestrator",
    "DependencyResolver",
    "collect_externals",
    "find_used_externals",
    "resolve_dependencies",
    "Packager",
    "detect_packager",
    "get_packager",
    "zip_files",
]
