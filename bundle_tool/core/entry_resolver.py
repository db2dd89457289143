"""Function to source-entry resolution"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from ..api.exceptions import EntryNotFoundError
from ..constants import GOOGLE_PROVIDER
from ..models import Configuration, FunctionDefinition, FunctionEntry
from ..utils.file_utils import file_exists, to_posix

logger = logging.getLogger(__name__)


def handler_file_stem(handler: str) -> str:
    """
    Drop the exported name from a handler path

    ``src/hello.handler`` becomes ``src/hello``. Only the last occurrence of
    the export name is removed, so a file may share its handler's name.
    """
    export = os.path.splitext(handler)[1]
    if not export:
        return handler
    return handler[:handler.rindex(export)]


def _project_relative(function_alias: str, path: str, cwd: Path) -> str:
    """Normalized POSIX path of an entry, which must lie inside the project"""
    relative = os.path.relpath(os.path.normpath(os.path.join(str(cwd), path)), str(cwd))
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise EntryNotFoundError(
            function_alias,
            f"Entry '{path}' of function {function_alias} is outside the project directory {cwd}",
        )
    return to_posix(relative)


def resolve_function_entry(function_alias: str,
                           func: FunctionDefinition,
                           cwd: Path,
                           config: Configuration) -> Optional[FunctionEntry]:
    """
    Map one function definition to its source entry

    Args:
        function_alias: Function name in the host configuration
        func: Function definition
        cwd: Project directory handler paths are relative to
        config: Build configuration

    Returns:
        FunctionEntry, or None when the function is flagged ``skip_esbuild``

    Raises:
        EntryNotFoundError: Neither an override nor a handler file exists, or
            the file lies outside ``cwd``
    """
    if func.skip_esbuild:
        logger.debug(f"Skipping {function_alias}: skip_esbuild is set")
        return None

    if func.esbuild_entrypoint:
        if not file_exists(cwd / func.esbuild_entrypoint):
            raise EntryNotFoundError(
                function_alias,
                f"Entrypoint '{func.esbuild_entrypoint}' of function {function_alias} does not exist",
            )
        return FunctionEntry(
            entry=_project_relative(function_alias, func.esbuild_entrypoint, cwd),
            func=func,
            function_alias=function_alias,
        )

    if not func.handler:
        raise EntryNotFoundError(function_alias, f"Function {function_alias} has no handler")

    stem = handler_file_stem(func.handler)
    for extension in config.resolve_extensions:
        candidate = stem + extension
        if file_exists(cwd / candidate):
            return FunctionEntry(
                entry=_project_relative(function_alias, candidate, cwd),
                func=func,
                function_alias=function_alias,
            )

    raise EntryNotFoundError(function_alias)


def _google_entry(cwd: Path, config: Configuration) -> FunctionEntry:
    """Google functions share one entry: package.json ``main`` or an index file"""
    package_json = cwd / config.package_path
    if file_exists(package_json):
        main = json.loads(package_json.read_text(encoding='utf-8')).get("main")
        if main and file_exists(cwd / main):
            return FunctionEntry(entry=_project_relative(GOOGLE_PROVIDER, main, cwd), func=None)

    for extension in config.resolve_extensions:
        if file_exists(cwd / f"index{extension}"):
            return FunctionEntry(entry=f"index{extension}", func=None)

    raise EntryNotFoundError(GOOGLE_PROVIDER)


def extract_function_entries(cwd: Path,
                             functions: Dict[str, FunctionDefinition],
                             config: Configuration,
                             provider: Optional[str] = None) -> List[FunctionEntry]:
    """
    Resolve entries for every function that is not skipped

    Args:
        cwd: Project directory
        functions: Function definitions keyed by alias
        config: Build configuration
        provider: Cloud provider name

    Returns:
        Entries in declaration order
    """
    if provider == GOOGLE_PROVIDER:
        return [_google_entry(cwd, config)]

    entries = []
    for function_alias, func in functions.items():
        entry = resolve_function_entry(function_alias, func, cwd, config)
        if entry is not None:
            entries.append(entry)
    return entries
