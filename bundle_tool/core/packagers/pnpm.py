"""pnpm adapter; nodes are never hoist-marked"""

from typing import Any, Dict, List, Sequence

from ...constants import PackagerId
from ...models import DependencyMap, DependencyTree
from .base import Packager, load_json


def convert_pnpm_tree(dependencies: Dict[str, Any]) -> DependencyMap:
    tree: DependencyMap = {}
    for name, node in (dependencies or {}).items():
        if not isinstance(node, dict):
            continue
        children = node.get("dependencies")
        tree[name] = DependencyTree(
            version=node.get("version"),
            dependencies=convert_pnpm_tree(children) if children else None,
        )
    return tree


class PnpmPackager(Packager):
    """pnpm; ``pnpm ls --json`` prints one record per workspace project"""

    packager_id = PackagerId.PNPM

    def list_args(self, depth: int) -> List[str]:
        return ["ls", "--prod", "--json", "--depth", str(depth)]

    def parse_dependency_tree(self, output: str) -> DependencyMap:
        data = load_json(output)
        if isinstance(data, list):
            if not data:
                return {}
            data = data[0]
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object or array")
        return convert_pnpm_tree(data.get("dependencies") or {})

    def install_args(self,
                     specs: Sequence[str],
                     extra_args: Sequence[str] = (),
                     ignore_lockfile: bool = False) -> List[str]:
        args = ["add", "--save-exact", "--prod"]
        if ignore_lockfile:
            args.append("--config.lockfile=false")
        return args + list(extra_args) + list(specs)
