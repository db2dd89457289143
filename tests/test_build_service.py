from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path
from typing import Dict, List

import pytest

from bundle_tool.api.exceptions import (
    DependencyTreeUnavailableError,
    EntryNotFoundError,
    PackagerError,
    PluginError,
)
from bundle_tool.constants import FunctionStatus
from bundle_tool.models import ArchiveFile, Configuration, FunctionDefinition
from bundle_tool.plugins import HookPoint, Plugin, PluginContext, PluginInfo, PluginManager
from bundle_tool.services.build_service import BuildCoordinator

from conftest import FakeBundler, FakePackager, write


def _functions(*names: str, **extra) -> Dict[str, FunctionDefinition]:
    return {name: FunctionDefinition(name=name, handler=f"{name}.handler", **extra) for name in names}


def _coordinator(cwd: Path, packager: FakePackager = None, functions=None, plugin_manager=None,
                 **config) -> BuildCoordinator:
    return BuildCoordinator(
        Configuration.from_dict(config),
        functions or _functions("hello1", "hello2"),
        cwd=cwd,
        bundler=FakeBundler(cwd),
        packager=packager or FakePackager(),
        plugin_manager=plugin_manager,
    )


def _build(coordinator: BuildCoordinator, *names: str):
    async def run():
        async with coordinator:
            return await coordinator.build(names or None)
    return asyncio.run(run())


def _members(path: Path) -> List[str]:
    with zipfile.ZipFile(path) as archive:
        return archive.namelist()


def test_functions_without_externals_get_their_own_archive(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    write(tmp_path / "hello2.ts", "export const handler = () => 2;\n")
    packager = FakePackager()
    coordinator = _coordinator(tmp_path, packager, concurrency=1)

    report = _build(coordinator)

    assert report.success
    artifacts = report.artifacts
    assert set(artifacts) == {"hello1", "hello2"}
    assert artifacts["hello1"] != artifacts["hello2"]
    assert _members(artifacts["hello1"]) == ["hello1.js"]
    assert _members(artifacts["hello2"]) == ["hello2.js"]
    assert not list(artifacts["hello1"].parent.glob("*.partial"))
    assert packager.tree_requests == 0
    assert packager.installs == []


def test_hoisted_external_installs_nothing(project: Path) -> None:
    packager = FakePackager({"lodash": {"version": "4.17.21", "isRootDep": True}})
    coordinator = _coordinator(project, packager, external=["lodash"])

    report = _build(coordinator, "hello1")

    assert report.success
    assert packager.installs == []
    assert _members(report.artifacts["hello1"]) == ["hello1.js"]
    assert report.get("hello1").dependencies == {}


def test_externals_are_installed_into_the_archive(project: Path) -> None:
    packager = FakePackager({
        "lodash": {"version": "4.17.21", "dependencies": {"tslib": {"version": "2.6.0"}}},
    })
    coordinator = _coordinator(project, packager, external=["lodash"])

    report = _build(coordinator)

    assert report.success
    assert packager.tree_requests == 1
    assert packager.installs == [
        {"lodash": "4.17.21", "tslib": "2.6.0"},
        {"lodash": "4.17.21", "tslib": "2.6.0"},
    ]
    assert _members(report.artifacts["hello2"]) == [
        "hello2.js",
        "node_modules/lodash/index.js",
        "node_modules/lodash/package.json",
        "node_modules/tslib/index.js",
        "node_modules/tslib/package.json",
    ]
    assert report.get("hello1").dependencies == {"lodash": "4.17.21", "tslib": "2.6.0"}


def test_excluded_externals_are_not_installed(project: Path) -> None:
    packager = FakePackager({"lodash": {"version": "4.17.21"}})
    coordinator = _coordinator(project, packager, external=["lodash"], exclude=["lodash"])

    report = _build(coordinator)

    assert report.success
    assert packager.tree_requests == 0
    assert packager.installs == []


def test_missing_lockfile_fails_only_functions_with_externals(project: Path) -> None:
    (project / "package-lock.json").unlink()
    write(project / "hello2.ts", "export const handler = () => 2;\n")
    coordinator = _coordinator(project, FakePackager({"lodash": {"version": "4.17.21"}}), external=["lodash"])

    report = _build(coordinator)

    assert not report.success
    assert set(report.failures) == {"hello1"}
    assert isinstance(report.failures["hello1"], DependencyTreeUnavailableError)
    assert report.get("hello1").status is FunctionStatus.FAILED
    assert _members(report.artifacts["hello2"]) == ["hello2.js"]


def test_strict_build_raises_first_failure(project: Path) -> None:
    (project / "package-lock.json").unlink()
    coordinator = _coordinator(project, FakePackager(), external=["lodash"], strict=True)

    with pytest.raises(DependencyTreeUnavailableError):
        _build(coordinator)


def test_install_failure_is_reported(project: Path) -> None:
    packager = FakePackager({"lodash": {"version": "4.17.21"}}, fail_install=True)
    coordinator = _coordinator(project, packager, external=["lodash"])

    report = _build(coordinator, "hello1")

    assert isinstance(report.failures["hello1"], PackagerError)
    assert not (project / ".esbuild" / "artifacts" / "hello1.zip").exists()


def test_no_install_copies_from_project_modules(project: Path) -> None:
    write(project / "node_modules" / "lodash" / "index.js", "module.exports = {};\n")
    packager = FakePackager({"lodash": {"version": "4.17.21"}})
    coordinator = _coordinator(project, packager, external=["lodash"], packagerOptions={"noInstall": True})

    report = _build(coordinator, "hello1")

    assert packager.installs == []
    assert _members(report.artifacts["hello1"]) == ["hello1.js", "node_modules/lodash/index.js"]


def test_package_patterns_add_project_files(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    write(tmp_path / "static" / "index.html", "<p>hi</p>\n")
    write(tmp_path / "static" / "draft.html", "<p>wip</p>\n")
    functions = _functions("hello1", package_patterns=["static/**", "!static/draft.html"])
    coordinator = _coordinator(tmp_path, functions=functions)

    report = _build(coordinator)

    assert _members(report.artifacts["hello1"]) == ["hello1.js", "static/index.html"]


class ExtraFilePlugin(Plugin):
    def __init__(self, extra: Path, fail: bool = False):
        super().__init__()
        self.extra = extra
        self.fail = fail

    def get_info(self) -> PluginInfo:
        return PluginInfo(name="extra-file", hook_points=[HookPoint.ARCHIVE_PRE])

    async def on_archive_pre(self, context: PluginContext) -> PluginContext:
        if self.fail:
            context.fail("refused")
        context.data["files"].append(ArchiveFile(local_path="config/extra.json", root_path=self.extra))
        return context


def test_archive_plugin_adds_files(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    extra = write(tmp_path / "extra.json", "{}")
    manager = PluginManager()
    manager.register(ExtraFilePlugin(extra))
    coordinator = _coordinator(tmp_path, functions=_functions("hello1"), plugin_manager=manager)

    report = _build(coordinator)

    assert _members(report.artifacts["hello1"]) == ["config/extra.json", "hello1.js"]


def test_archive_plugin_errors_fail_the_function(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    manager = PluginManager()
    manager.register(ExtraFilePlugin(tmp_path / "extra.json", fail=True))
    coordinator = _coordinator(tmp_path, functions=_functions("hello1"), plugin_manager=manager)

    report = _build(coordinator)

    assert isinstance(report.failures["hello1"], PluginError)


def test_bundle_failures_are_reported(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    write(tmp_path / "hello2.ts", "export const handler = () => 2;\n")
    coordinator = BuildCoordinator(
        Configuration.from_dict({"allowPartialBundle": True}),
        _functions("hello1", "hello2"),
        cwd=tmp_path,
        bundler=FakeBundler(tmp_path, fail=["hello2.ts"]),
        packager=FakePackager(),
    )

    report = _build(coordinator)

    assert set(report.artifacts) == {"hello1"}
    assert set(report.failures) == {"hello2"}


def test_unknown_function_name(tmp_path: Path) -> None:
    coordinator = _coordinator(tmp_path)

    with pytest.raises(Exception, match="not defined"):
        _build(coordinator, "missing")


def test_cleanup_keeps_archives(project: Path) -> None:
    coordinator = _coordinator(project, FakePackager({"lodash": {"version": "4.17.21"}}), external=["lodash"])
    report = _build(coordinator)

    coordinator.cleanup()

    assert not coordinator.build_dir.exists()
    assert not coordinator.staging_dir.exists()
    assert report.artifacts["hello1"].exists()
    assert report.artifacts["hello2"].exists()


def test_unresolvable_entry_fails_only_its_function(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    functions = _functions("hello1")
    functions["ghost"] = FunctionDefinition(name="ghost", handler="nope/ghost.handler")
    coordinator = _coordinator(tmp_path, functions=functions)

    report = _build(coordinator)

    assert set(report.artifacts) == {"hello1"}
    assert set(report.failures) == {"ghost"}
    assert isinstance(report.failures["ghost"], EntryNotFoundError)
    assert report.get("ghost").status is FunctionStatus.FAILED


def test_unresolvable_entry_raises_in_strict_mode(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "export const handler = () => 1;\n")
    functions = _functions("hello1")
    functions["ghost"] = FunctionDefinition(name="ghost", handler="nope/ghost.handler")
    coordinator = _coordinator(tmp_path, functions=functions, strict=True)

    with pytest.raises(EntryNotFoundError):
        _build(coordinator)


def test_entry_outside_the_project_is_reported(tmp_path: Path) -> None:
    project = tmp_path / "service"
    write(project / "hello1.ts", "export const handler = () => 1;\n")
    write(tmp_path / "shared" / "h.ts", "export const handler = () => 2;\n")
    functions = _functions("hello1")
    functions["shared"] = FunctionDefinition(name="shared", esbuild_entrypoint="../shared/h.ts")
    coordinator = _coordinator(project, functions=functions)

    report = _build(coordinator)

    assert set(report.artifacts) == {"hello1"}
    assert "outside the project" in str(report.failures["shared"])


def test_function_named_like_the_artifact_folder_keeps_sibling_archives(project: Path) -> None:
    write(project / "artifacts.ts", "const _ = require('lodash');\nexport const handler = () => _;\n")
    packager = FakePackager({"lodash": {"version": "4.17.21"}})
    coordinator = _coordinator(project, packager, functions=_functions("hello1", "artifacts"),
                               external=["lodash"], zipConcurrency=1)

    report = _build(coordinator)

    assert report.success
    for alias in ("hello1", "artifacts"):
        assert report.artifacts[alias].exists()
        assert "node_modules/lodash/index.js" in _members(report.artifacts[alias])
    assert (coordinator.staging_dir / "artifacts" / "node_modules").is_dir()
