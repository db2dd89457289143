"""yarn (classic) adapter; shadow entries are pointers, not hoist marks"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...constants import PackagerId
from ...models import DependencyMap, DependencyTree
from .base import Packager


def split_name_version(name: str) -> Tuple[str, Optional[str]]:
    """``@scope/pkg@1.0.0`` -> (``@scope/pkg``, ``1.0.0``)"""
    index = name.rfind("@")
    if index <= 0:
        return name, None
    return name[:index], name[index + 1:] or None


def convert_yarn_trees(trees: List[Dict[str, Any]]) -> DependencyMap:
    """
    Convert the ``trees`` of ``yarn list --json``

    Shadow entries point at a package listed elsewhere; they keep their
    version but no children so lookups fall back to the root entry.
    """
    tree: DependencyMap = {}
    for item in trees or []:
        name, version = split_name_version(item.get("name", ""))
        if not name:
            continue
        children = item.get("children")
        if item.get("shadow") or not children:
            tree[name] = DependencyTree(version=version)
        else:
            tree[name] = DependencyTree(version=version, dependencies=convert_yarn_trees(children))
    return tree


class YarnPackager(Packager):
    """yarn classic; the listing is a stream of JSON lines"""

    packager_id = PackagerId.YARN

    def list_args(self, depth: int) -> List[str]:
        return ["list", f"--depth={depth}", "--json", "--production"]

    def parse_dependency_tree(self, output: str) -> DependencyMap:
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            if isinstance(record, dict) and record.get("type") == "tree":
                return convert_yarn_trees((record.get("data") or {}).get("trees") or [])
        raise ValueError("no tree record in yarn output")

    def install_args(self,
                     specs: Sequence[str],
                     extra_args: Sequence[str] = (),
                     ignore_lockfile: bool = False) -> List[str]:
        args = ["add", "--exact", "--production", "--non-interactive"]
        if ignore_lockfile:
            args.append("--no-lockfile")
        return args + list(extra_args) + list(specs)
