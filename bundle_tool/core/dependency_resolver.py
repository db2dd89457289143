"""External dependency resolution over the package manager's tree"""

import asyncio
import json
import logging
import re
from collections import deque
from pathlib import Path
from typing import Deque, Iterable, List, Optional, Sequence, Set, Tuple

from packaging.version import InvalidVersion, Version

from ..api.exceptions import DependencyConflictError, DependencyTreeUnavailableError
from ..constants import DEFAULT_DEPENDENCY_DEPTH
from ..models import (
    Configuration,
    DependencyConflict,
    DependencyMap,
    DependencyTree,
    ResolvedDependencies,
)
from .packagers.base import Packager

logger = logging.getLogger(__name__)

# require("x"), import("x"), import ... from "x", import "x", export ... from "x"
_SPECIFIER_RE = re.compile(
    r"""(?:\brequire\s*\(\s*|\bimport\s*\(\s*|\bfrom\s*|\bimport\s+)(['"])([^'"\s]+)\1"""
)


def collect_externals(config: Configuration, cwd: Path) -> List[str]:
    """
    Package names left unbundled

    With ``node_externals`` every dependency in the root package.json is
    external except the allow-listed ones.

    Args:
        config: Build configuration
        cwd: Project directory

    Returns:
        Ordered, de-duplicated package names
    """
    externals = list(config.external)

    if config.node_externals is not None:
        package_json = cwd / config.package_path
        if package_json.exists():
            dependencies = json.loads(package_json.read_text(encoding="utf-8")).get("dependencies") or {}
            allow = set(config.node_externals.allow_list)
            externals.extend(name for name in dependencies if name not in allow)
        else:
            logger.warning(f"node_externals is set but {package_json} does not exist")

    return list(dict.fromkeys(externals))


def package_name_of(specifier: str) -> str:
    """``@scope/pkg/sub`` -> ``@scope/pkg``; ``pkg/sub`` -> ``pkg``"""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def find_used_externals(bundle_path: Path, externals: Sequence[str]) -> List[str]:
    """
    Externals the bundle actually imports

    Args:
        bundle_path: Bundled output file
        externals: Candidate external package names

    Returns:
        Used externals, in ``externals`` order
    """
    if not externals:
        return []

    source = bundle_path.read_text(encoding="utf-8", errors="replace")
    imported = {package_name_of(match.group(2)) for match in _SPECIFIER_RE.finditer(source)}
    return [name for name in externals if name in imported]


def hoisted_packages(tree: DependencyMap) -> Set[str]:
    """Names carrying ``is_root_dep`` anywhere in the tree"""
    hoisted = set()
    seen = set()
    stack: List[Tuple[str, DependencyTree]] = list(tree.items())

    while stack:
        name, node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        if node.is_root_dep:
            hoisted.add(name)
        if node.dependencies:
            stack.extend(node.dependencies.items())

    return hoisted


def _compare_versions(kept: str, requested: str) -> str:
    try:
        kept_version, requested_version = Version(kept), Version(requested)
    except InvalidVersion:
        return "not comparable"
    if kept_version > requested_version:
        return "newer"
    if kept_version < requested_version:
        return "older"
    return "equivalent"


def resolve_dependencies(externals: Sequence[str],
                         tree: Optional[DependencyMap],
                         strict: bool = False,
                         provided: Iterable[str] = ()) -> ResolvedDependencies:
    """
    Compute the packages one function must install

    Breadth-first from the function's direct externals. Hoisted packages
    (``is_root_dep``, or listed in ``provided``) are excluded and not
    descended into. A package already resolved is not visited again; a
    different version of it is a conflict, kept first-wins unless strict.
    Nested nodes without version or children fall back to the root node.

    Args:
        externals: Direct external packages of the function
        tree: Root dependency map reported by the packager
        strict: Fail on version conflicts
        provided: Extra names satisfied by the root install

    Returns:
        ResolvedDependencies in visiting order

    Raises:
        DependencyTreeUnavailableError: No tree
        DependencyConflictError: Conflict in strict mode
    """
    if tree is None:
        raise DependencyTreeUnavailableError("No dependency tree available")

    hoisted = hoisted_packages(tree) | set(provided)
    resolved = ResolvedDependencies()
    queue: Deque[Tuple[str, DependencyTree, Optional[str]]] = deque()

    for name in externals:
        node = tree.get(name)
        if node is None:
            if name not in hoisted:
                logger.warning(f"External package {name} is not in the dependency tree")
                resolved.missing.append(name)
            continue
        queue.append((name, node, None))

    while queue:
        name, node, parent = queue.popleft()
        if name in hoisted:
            continue

        root_node = tree.get(name)
        version = node.version or (root_node.version if root_node else None)
        if version is None:
            if name not in resolved.missing:
                resolved.missing.append(name)
            continue

        if name in resolved.dependencies:
            kept = resolved.dependencies[name]
            if kept != version:
                if strict:
                    raise DependencyConflictError(name, kept, version)
                conflict = DependencyConflict(name=name, kept=kept, requested=version, required_by=parent)
                resolved.conflicts.append(conflict)
                logger.warning(
                    f"{parent or 'function'} requires {name}@{version}, keeping {kept} "
                    f"({_compare_versions(kept, version)})"
                )
            continue

        resolved.dependencies[name] = version

        children = node.dependencies
        if children is None and root_node is not None and root_node.version == version:
            children = root_node.dependencies
        for child_name, child in (children or {}).items():
            queue.append((child_name, child, name))

    return resolved


class DependencyResolver:
    """Fetches the project's dependency tree once per session and resolves against it"""

    def __init__(self,
                 packager: Packager,
                 cwd: Optional[Path],
                 depth: int = DEFAULT_DEPENDENCY_DEPTH,
                 strict: bool = False,
                 provided: Iterable[str] = ()):
        """
        Initialize resolver

        Args:
            packager: Packager reporting the tree
            cwd: Directory holding the lockfile (None if none was found)
            depth: Maximum tree depth to request
            strict: Fail on version conflicts
            provided: Names satisfied by the root install
        """
        self.packager = packager
        self.cwd = cwd
        self.depth = depth
        self.strict = strict
        self.provided = list(provided)
        self._tree: Optional[DependencyMap] = None
        self._lock: Optional[asyncio.Lock] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    async def get_tree(self) -> DependencyMap:
        """
        Dependency tree of the project, fetched on first use

        Raises:
            DependencyTreeUnavailableError: No lockfile or unreadable listing
        """
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._tree is None:
                if self.cwd is None:
                    raise DependencyTreeUnavailableError(
                        "No lockfile found (package-lock.json, yarn.lock or pnpm-lock.yaml)"
                    )
                self.logger.debug(f"Fetching dependency tree with {self.packager.name} in {self.cwd}")
                self._tree = await self.packager.get_prod_dependencies(self.cwd, self.depth)
            return self._tree

    async def resolve(self, externals: Sequence[str]) -> ResolvedDependencies:
        """
        Resolve the packages to install for a function's externals

        Args:
            externals: Externals used by the function

        Returns:
            ResolvedDependencies (empty without touching the packager if no externals)
        """
        if not externals:
            return ResolvedDependencies()
        tree = await self.get_tree()
        return resolve_dependencies(externals, tree, strict=self.strict, provided=self.provided)
