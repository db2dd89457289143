"""Dependency tree data models"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class DependencyTree:
    """One node of the package manager's resolved dependency graph

    ``is_root_dep`` marks a package satisfied by the hoisted root install.
    """

    version: Optional[str] = None
    dependencies: Optional[Dict[str, 'DependencyTree']] = None
    is_root_dep: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DependencyTree':
        """Create from a nested ``{version, dependencies, isRootDep}`` record"""
        children = data.get("dependencies")
        return cls(
            version=data.get("version"),
            dependencies=dependency_map_from_dict(children) if children else None,
            is_root_dep=bool(data.get("isRootDep", data.get("is_root_dep", False))),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data: Dict[str, Any] = {}
        if self.version is not None:
            data["version"] = self.version
        if self.dependencies:
            data["dependencies"] = {name: dep.to_dict() for name, dep in self.dependencies.items()}
        if self.is_root_dep:
            data["isRootDep"] = True
        return data


DependencyMap = Dict[str, DependencyTree]


def dependency_map_from_dict(data: Dict[str, Any]) -> DependencyMap:
    """Build a DependencyMap from plain nested dictionaries"""
    return {name: DependencyTree.from_dict(node or {}) for name, node in (data or {}).items()}


@dataclass(frozen=True)
class DependencyConflict:
    """Same package reached at two versions; the first one was kept"""
    name: str
    kept: str
    requested: str
    required_by: Optional[str] = None


@dataclass
class ResolvedDependencies:
    """Packages to install into one function's staging folder"""
    dependencies: Dict[str, str] = field(default_factory=dict)
    conflicts: List[DependencyConflict] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.dependencies)

    def install_specs(self) -> List[str]:
        """``name@version`` pairs in resolution order"""
        return [f"{name}@{version}" for name, version in self.dependencies.items()]
