"""npm adapter; deduped entries resolve through the root node, nothing is hoist-marked"""

from typing import Any, Dict, List, Sequence

from ...constants import PackagerId
from ...models import DependencyMap, DependencyTree
from .base import Packager, load_json


def convert_npm_tree(dependencies: Dict[str, Any]) -> DependencyMap:
    """
    Convert ``npm ls --json`` dependencies

    Deduped entries come back without children; missing ones without a
    version and are left out.
    """
    tree: DependencyMap = {}
    for name, node in (dependencies or {}).items():
        if not isinstance(node, dict) or node.get("missing"):
            continue
        children = node.get("dependencies")
        tree[name] = DependencyTree(
            version=node.get("version"),
            dependencies=convert_npm_tree(children) if children else None,
        )
    return tree


class NpmPackager(Packager):
    """npm"""

    packager_id = PackagerId.NPM

    def list_args(self, depth: int) -> List[str]:
        return ["ls", "--json", "--omit=dev", "--long", f"--depth={depth}"]

    def parse_dependency_tree(self, output: str) -> DependencyMap:
        data = load_json(output)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return convert_npm_tree(data.get("dependencies") or {})

    def install_args(self,
                     specs: Sequence[str],
                     extra_args: Sequence[str] = (),
                     ignore_lockfile: bool = False) -> List[str]:
        args = ["install", "--save-exact", "--omit=dev", "--no-audit", "--no-fund"]
        if ignore_lockfile:
            args.append("--no-package-lock")
        return args + list(extra_args) + list(specs)
