from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from bundle_tool.api.exceptions import DependencyConflictError, DependencyTreeUnavailableError
from bundle_tool.core.dependency_resolver import (
    DependencyResolver,
    collect_externals,
    find_used_externals,
    hoisted_packages,
    package_name_of,
    resolve_dependencies,
)
from bundle_tool.models import Configuration, DependencyTree, dependency_map_from_dict

from conftest import FakePackager, write


def test_hoisted_external_resolves_to_nothing() -> None:
    tree = dependency_map_from_dict({"lodash": {"version": "4.17.21", "isRootDep": True}})

    resolved = resolve_dependencies(["lodash"], tree)

    assert resolved.dependencies == {}
    assert not resolved


def test_hoisted_packages_are_not_descended() -> None:
    tree = dependency_map_from_dict({
        "express": {
            "version": "4.18.2",
            "dependencies": {
                "debug": {"version": "2.6.9", "isRootDep": True},
                "qs": {"version": "6.11.0", "dependencies": {"side-channel": {"version": "1.0.4"}}},
            },
        },
        "debug": {"version": "2.6.9", "dependencies": {"ms": {"version": "2.0.0"}}},
    })

    resolved = resolve_dependencies(["express"], tree)

    assert resolved.dependencies == {"express": "4.18.2", "qs": "6.11.0", "side-channel": "1.0.4"}
    assert hoisted_packages(tree) == {"debug"}


def test_transitive_dependencies_in_breadth_first_order() -> None:
    tree = dependency_map_from_dict({
        "a": {"version": "1.0.0", "dependencies": {"b": {"version": "2.0.0", "dependencies": {"d": {"version": "4.0.0"}}}}},
        "c": {"version": "3.0.0"},
    })

    resolved = resolve_dependencies(["a", "c"], tree)

    assert list(resolved.dependencies) == ["a", "c", "b", "d"]
    assert resolved.install_specs() == ["a@1.0.0", "c@3.0.0", "b@2.0.0", "d@4.0.0"]


def test_deduped_nodes_fall_back_to_root_entry() -> None:
    tree = dependency_map_from_dict({
        "a": {"version": "1.0.0", "dependencies": {"shared": {}}},
        "shared": {"version": "5.0.0", "dependencies": {"leaf": {"version": "0.1.0"}}},
    })

    resolved = resolve_dependencies(["a"], tree)

    assert resolved.dependencies == {"a": "1.0.0", "shared": "5.0.0", "leaf": "0.1.0"}


def test_cycles_terminate() -> None:
    ping = DependencyTree(version="1.0.0", dependencies={"pong": DependencyTree(version="1.0.0")})
    pong = DependencyTree(version="1.0.0", dependencies={"ping": DependencyTree(version="1.0.0")})
    tree = {"ping": ping, "pong": pong}

    resolved = resolve_dependencies(["ping"], tree)

    assert resolved.dependencies == {"ping": "1.0.0", "pong": "1.0.0"}


def test_conflicts_keep_first_version() -> None:
    tree = dependency_map_from_dict({
        "a": {"version": "1.0.0", "dependencies": {"shared": {"version": "1.0.0"}}},
        "b": {"version": "1.0.0", "dependencies": {"shared": {"version": "2.0.0"}}},
        "shared": {"version": "1.0.0"},
    })

    resolved = resolve_dependencies(["a", "b"], tree)

    assert resolved.dependencies["shared"] == "1.0.0"
    assert len(resolved.conflicts) == 1
    conflict = resolved.conflicts[0]
    assert (conflict.name, conflict.kept, conflict.requested, conflict.required_by) == ("shared", "1.0.0", "2.0.0", "b")


def test_conflicts_fail_in_strict_mode() -> None:
    tree = dependency_map_from_dict({
        "a": {"version": "1.0.0", "dependencies": {"shared": {"version": "1.0.0"}}},
        "b": {"version": "1.0.0", "dependencies": {"shared": {"version": "2.0.0"}}},
    })

    with pytest.raises(DependencyConflictError) as info:
        resolve_dependencies(["a", "b"], tree, strict=True)
    assert info.value.name == "shared"


def test_missing_externals_are_reported() -> None:
    resolved = resolve_dependencies(["left-pad"], {})
    assert resolved.missing == ["left-pad"]
    assert resolved.dependencies == {}


def test_provided_packages_count_as_hoisted() -> None:
    tree = dependency_map_from_dict({"aws-sdk": {"version": "2.1.0"}, "uuid": {"version": "9.0.0"}})
    resolved = resolve_dependencies(["aws-sdk", "uuid"], tree, provided=["aws-sdk"])
    assert resolved.dependencies == {"uuid": "9.0.0"}


def test_no_tree_is_unavailable() -> None:
    with pytest.raises(DependencyTreeUnavailableError):
        resolve_dependencies(["lodash"], None)


def test_package_name_of_scoped_and_subpaths() -> None:
    assert package_name_of("lodash/isEqual") == "lodash"
    assert package_name_of("@aws-sdk/client-s3") == "@aws-sdk/client-s3"
    assert package_name_of("@aws-sdk/client-s3/dist/index.js") == "@aws-sdk/client-s3"


def test_find_used_externals_scans_requires_and_imports(tmp_path: Path) -> None:
    bundle = write(tmp_path / "bundle.js", "\n".join([
        'const _ = require("lodash/fp");',
        "import { S3 } from '@aws-sdk/client-s3';",
        'const later = () => import("pg");',
        "// axios is mentioned but never imported",
    ]))

    used = find_used_externals(bundle, ["axios", "pg", "lodash", "@aws-sdk/client-s3"])

    assert used == ["pg", "lodash", "@aws-sdk/client-s3"]


def test_collect_externals_with_node_externals(tmp_path: Path) -> None:
    write(tmp_path / "package.json", json.dumps({"dependencies": {"lodash": "^4", "uuid": "^9", "pg": "^8"}}))
    config = Configuration.from_dict({"external": ["sharp"], "nodeExternals": {"allowList": ["uuid"]}})

    assert collect_externals(config, tmp_path) == ["sharp", "lodash", "pg"]


def test_resolver_fetches_tree_once() -> None:
    packager = FakePackager({"lodash": {"version": "4.17.21"}})
    resolver = DependencyResolver(packager, Path("."))

    async def scenario():
        return await asyncio.gather(resolver.resolve(["lodash"]), resolver.resolve(["lodash"]))

    first, second = asyncio.run(scenario())

    assert first.dependencies == second.dependencies == {"lodash": "4.17.21"}
    assert packager.tree_requests == 1


def test_resolver_without_externals_never_asks_for_tree() -> None:
    packager = FakePackager()
    resolver = DependencyResolver(packager, None)

    resolved = asyncio.run(resolver.resolve([]))

    assert resolved.dependencies == {}
    assert packager.tree_requests == 0


def test_resolver_without_lockfile_is_unavailable() -> None:
    resolver = DependencyResolver(FakePackager({"lodash": {"version": "1.0.0"}}), None)
    with pytest.raises(DependencyTreeUnavailableError):
        asyncio.run(resolver.resolve(["lodash"]))
