from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from bundle_tool.api.exceptions import BundleError
from bundle_tool.core.bundle_orchestrator import FINGERPRINT_FILE, BundleOrchestrator
from bundle_tool.models import Configuration, FunctionDefinition, FunctionEntry
from bundle_tool.plugins import HookPoint, Plugin, PluginContext, PluginInfo, PluginManager

from conftest import FakeBundler, write


def _entries(*names: str):
    return [
        FunctionEntry(entry=f"{name}.ts", func=FunctionDefinition(name=name, handler=f"{name}.handler"),
                      function_alias=name)
        for name in names
    ]


def _orchestrator(tmp_path: Path, bundler: FakeBundler, **config) -> BundleOrchestrator:
    return BundleOrchestrator(
        bundler,
        Configuration.from_dict(config),
        cwd=tmp_path,
        build_dir=tmp_path / ".esbuild" / ".build",
    )


def test_bundles_each_unique_entry_once(tmp_path: Path) -> None:
    write(tmp_path / "hello.ts", "export const handler = 1;\n")
    bundler = FakeBundler(tmp_path)
    orchestrator = _orchestrator(tmp_path, bundler)
    shared = FunctionEntry(entry="hello.ts", func=FunctionDefinition(name="other", handler="hello.handler"),
                           function_alias="other")

    results = asyncio.run(orchestrator.bundle_all(_entries("hello") + [shared]))

    assert bundler.builds == ["hello.ts"]
    assert results[0].bundle_path == tmp_path / ".esbuild" / ".build" / "hello.js"
    assert results[0].bundle_path.read_text() == "export const handler = 1;\n"
    functions = orchestrator.function_results(_entries("hello") + [shared])
    assert [f.function_alias for f in functions] == ["hello", "other"]


def test_concurrency_bound_is_respected(tmp_path: Path) -> None:
    for name in ("a", "b", "c", "d"):
        write(tmp_path / f"{name}.ts", name)
    bundler = FakeBundler(tmp_path, delay=0.02)

    asyncio.run(_orchestrator(tmp_path, bundler, concurrency=2).bundle_all(_entries("a", "b", "c", "d")))

    assert bundler.max_in_flight == 2
    assert sorted(bundler.builds) == ["a.ts", "b.ts", "c.ts", "d.ts"]


def test_bundler_options_carry_externals(tmp_path: Path) -> None:
    write(tmp_path / "a.ts", "a")
    bundler = FakeBundler(tmp_path)
    orchestrator = BundleOrchestrator(
        bundler,
        Configuration.from_dict({"exclude": ["aws-sdk"], "minify": True}),
        cwd=tmp_path,
        build_dir=tmp_path / "build",
        externals=["lodash"],
    )

    asyncio.run(orchestrator.bundle_all(_entries("a")))

    options = bundler.options[0]
    assert options["external"] == ["lodash", "aws-sdk"]
    assert options["minify"] is True


def test_failure_fails_the_batch(tmp_path: Path) -> None:
    write(tmp_path / "good.ts", "ok")
    write(tmp_path / "bad.ts", "nope")
    orchestrator = _orchestrator(tmp_path, FakeBundler(tmp_path, fail=["bad.ts"]))

    with pytest.raises(BundleError) as info:
        asyncio.run(orchestrator.bundle_all(_entries("good", "bad")))

    assert info.value.entry == "bad.ts"


def test_partial_bundles_record_failures(tmp_path: Path) -> None:
    write(tmp_path / "good.ts", "ok")
    write(tmp_path / "bad.ts", "nope")
    orchestrator = _orchestrator(tmp_path, FakeBundler(tmp_path, fail=["bad.ts"]), allowPartialBundle=True)

    results = asyncio.run(orchestrator.bundle_all(_entries("good", "bad")))

    assert [r.entry for r in results] == ["good.ts"]
    assert set(orchestrator.failures) == {"bad.ts"}
    assert [f.function_alias for f in orchestrator.function_results(_entries("good", "bad"))] == ["good"]


def test_incremental_builds_keep_one_context_per_entry(tmp_path: Path) -> None:
    write(tmp_path / "hello1.ts", "1")
    write(tmp_path / "hello2.ts", "2")
    bundler = FakeBundler(tmp_path)
    orchestrator = _orchestrator(tmp_path, bundler, incremental=True)

    async def scenario():
        await orchestrator.bundle_all(_entries("hello1", "hello2"), keep_contexts=True)
        await asyncio.gather(*(orchestrator.bundle("hello1.ts") for _ in range(5)))
        await orchestrator.rebuild(["hello1.ts", "hello1.ts"])

    asyncio.run(scenario())

    assert orchestrator.context_count == 2
    assert len(bundler.contexts) == 2
    assert [c.entry for c in bundler.contexts] == ["hello1.ts", "hello2.ts"]


def test_dispose_all_disposes_each_context_once(tmp_path: Path) -> None:
    write(tmp_path / "a.ts", "a")
    write(tmp_path / "b.ts", "b")
    bundler = FakeBundler(tmp_path)
    orchestrator = _orchestrator(tmp_path, bundler, incremental=True)

    async def scenario():
        async with orchestrator:
            await orchestrator.bundle_all(_entries("a", "b"), keep_contexts=True)
        await orchestrator.dispose_all()

    asyncio.run(scenario())

    assert orchestrator.context_count == 0
    assert [c.dispose_calls for c in bundler.contexts] == [1, 1]


def test_dispose_failures_are_raised_after_all_attempts(tmp_path: Path) -> None:
    write(tmp_path / "a.ts", "a")
    write(tmp_path / "b.ts", "b")
    bundler = FakeBundler(tmp_path)
    orchestrator = _orchestrator(tmp_path, bundler, incremental=True)

    async def scenario():
        await orchestrator.bundle_all(_entries("a", "b"), keep_contexts=True)
        bundler.contexts[0].fail_dispose = True
        await orchestrator.dispose_all()

    with pytest.raises(BundleError, match="dispose"):
        asyncio.run(scenario())
    assert [c.dispose_calls for c in bundler.contexts] == [1, 1]
    assert orchestrator.context_count == 0


def test_batch_disposes_contexts_by_function_setting(tmp_path: Path) -> None:
    write(tmp_path / "keep.ts", "k")
    write(tmp_path / "drop.ts", "d")
    bundler = FakeBundler(tmp_path)
    orchestrator = _orchestrator(tmp_path, bundler, incremental=True, disposeContext=True)
    entries = [
        FunctionEntry("keep.ts", FunctionDefinition(name="keep", handler="keep.handler", dispose_context=False), "keep"),
        FunctionEntry("drop.ts", FunctionDefinition(name="drop", handler="drop.handler"), "drop"),
    ]

    asyncio.run(orchestrator.bundle_all(entries))

    assert orchestrator.has_context("keep.ts")
    assert not orchestrator.has_context("drop.ts")


def test_skip_rebuild_reuses_unchanged_bundles(tmp_path: Path) -> None:
    source = write(tmp_path / "hello.ts", "v1")
    bundler = FakeBundler(tmp_path)

    asyncio.run(_orchestrator(tmp_path, bundler, skipRebuild=True).bundle_all(_entries("hello")))
    asyncio.run(_orchestrator(tmp_path, bundler, skipRebuild=True).bundle_all(_entries("hello")))
    assert bundler.builds == ["hello.ts"]

    fingerprints = json.loads((tmp_path / ".esbuild" / ".build" / FINGERPRINT_FILE).read_text())
    assert str(source.resolve()) in fingerprints["hello.ts"]["inputs"]

    source.write_text("v2")
    asyncio.run(_orchestrator(tmp_path, bundler, skipRebuild=True).bundle_all(_entries("hello")))
    assert bundler.builds == ["hello.ts", "hello.ts"]


def test_skip_rebuild_never_applies_to_excluded_functions(tmp_path: Path) -> None:
    write(tmp_path / "hello.ts", "v1")
    bundler = FakeBundler(tmp_path)
    config = {"skipRebuild": True, "skipBuildExcludeFns": ["hello"]}

    asyncio.run(_orchestrator(tmp_path, bundler, **config).bundle_all(_entries("hello")))
    asyncio.run(_orchestrator(tmp_path, bundler, **config).bundle_all(_entries("hello")))

    assert bundler.builds == ["hello.ts", "hello.ts"]


def test_skip_build_requires_existing_bundle(tmp_path: Path) -> None:
    write(tmp_path / "hello.ts", "v1")
    bundler = FakeBundler(tmp_path)

    with pytest.raises(BundleError, match="skip_build"):
        asyncio.run(_orchestrator(tmp_path, bundler, skipBuild=True).bundle_all(_entries("hello")))

    write(tmp_path / ".esbuild" / ".build" / "hello.js", "prebuilt")
    results = asyncio.run(_orchestrator(tmp_path, bundler, skipBuild=True).bundle_all(_entries("hello")))
    assert bundler.builds == []
    assert results[0].bundle_path.read_text() == "prebuilt"


def test_affected_entries_follow_tracked_inputs(tmp_path: Path) -> None:
    one = write(tmp_path / "hello1.ts", "1")
    write(tmp_path / "hello2.ts", "2")
    orchestrator = _orchestrator(tmp_path, FakeBundler(tmp_path))

    asyncio.run(orchestrator.bundle_all(_entries("hello1", "hello2")))

    assert orchestrator.affected_entries([one]) == ["hello1.ts"]
    assert orchestrator.affected_entries([tmp_path / "unrelated.ts"]) == []


def test_strip_entry_resolve_extensions(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, FakeBundler(tmp_path), stripEntryResolveExtensions=True,
                                 resolveExtensions=[".custom.ts", ".ts"])
    assert orchestrator.bundle_path_for("src/app.custom.ts").name == "app.js"


class DefinePlugin(Plugin):
    def __init__(self, refuse: bool = False):
        super().__init__()
        self.refuse = refuse

    def get_info(self) -> PluginInfo:
        return PluginInfo(name="define", hook_points=[HookPoint.BUNDLE_PRE])

    async def on_bundle_pre(self, context: PluginContext) -> None:
        if self.refuse:
            context.fail("not today")
        context.data["options"]["define"] = {"STAGE": '"dev"'}


def test_bundle_pre_plugins_edit_options(tmp_path: Path) -> None:
    write(tmp_path / "hello.ts", "export const handler = 1;\n")
    bundler = FakeBundler(tmp_path)
    manager = PluginManager()
    manager.register(DefinePlugin())
    orchestrator = BundleOrchestrator(bundler, Configuration(), cwd=tmp_path,
                                      build_dir=tmp_path / ".build", plugin_manager=manager)

    asyncio.run(orchestrator.bundle_all(_entries("hello")))

    assert bundler.options[0]["define"] == {"STAGE": '"dev"'}


def test_failed_bundle_pre_plugin_aborts_the_entry(tmp_path: Path) -> None:
    write(tmp_path / "hello.ts", "export const handler = 1;\n")
    bundler = FakeBundler(tmp_path)
    manager = PluginManager()
    manager.register(DefinePlugin(refuse=True))
    orchestrator = BundleOrchestrator(bundler, Configuration(), cwd=tmp_path,
                                      build_dir=tmp_path / ".build", plugin_manager=manager)

    with pytest.raises(BundleError, match="not today"):
        asyncio.run(orchestrator.bundle_all(_entries("hello")))
    assert bundler.builds == []
