from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

import pytest

from bundle_tool.api.exceptions import PluginError
from bundle_tool.plugins import (
    HookPoint,
    Plugin,
    PluginContext,
    PluginInfo,
    PluginManager,
    PluginPriority,
    load_plugins_source,
    normalize_plugins,
)
from bundle_tool.plugins.loader import PluginSourceKind

from conftest import write


class RecordingPlugin(Plugin):
    def __init__(self, name: str, calls: List[str], priority: PluginPriority = PluginPriority.NORMAL,
                 fail: bool = False):
        super().__init__()
        self.name = name
        self.calls = calls
        self.priority = priority
        self.fail = fail

    def get_info(self) -> PluginInfo:
        return PluginInfo(name=self.name, priority=self.priority, hook_points=[HookPoint.BUNDLE_PRE])

    async def on_bundle_pre(self, context: PluginContext) -> PluginContext:
        self.calls.append(self.name)
        if self.fail:
            raise RuntimeError("broken")
        context.data["options"]["define"] = {"NAME": self.name}
        return context


def _run(manager: PluginManager) -> PluginContext:
    context = PluginContext(hook_point=HookPoint.BUNDLE_PRE, operation="bundle",
                            data={"entry": "a.ts", "options": {}})
    return asyncio.run(manager.execute_hook(HookPoint.BUNDLE_PRE, context))


def test_hooks_run_in_priority_order() -> None:
    calls: List[str] = []
    manager = PluginManager()
    manager.register(RecordingPlugin("late", calls, PluginPriority.LATE))
    manager.register(RecordingPlugin("early", calls, PluginPriority.EARLY))

    context = _run(manager)

    assert calls == ["early", "late"]
    assert context.data["options"]["define"] == {"NAME": "late"}


def test_failing_plugin_is_recorded_and_stops_the_chain() -> None:
    calls: List[str] = []
    manager = PluginManager()
    manager.register(RecordingPlugin("broken", calls, PluginPriority.EARLY, fail=True))
    manager.register(RecordingPlugin("after", calls, PluginPriority.LATE))

    context = _run(manager)

    assert calls == ["broken"]
    assert context.failed
    assert "broken" in context.errors[0]


def test_register_replaces_same_name() -> None:
    calls: List[str] = []
    manager = PluginManager()
    manager.register(RecordingPlugin("dup", calls))
    manager.register(RecordingPlugin("dup", calls))

    _run(manager)

    assert calls == ["dup"]
    assert len(manager.list_plugins()) == 1


def test_normalize_list_and_factory() -> None:
    plugin = RecordingPlugin("one", [])

    listed = normalize_plugins([plugin])
    produced = normalize_plugins(lambda config: [plugin], config={"minify": True})

    assert listed.kind is PluginSourceKind.LIST
    assert produced.kind is PluginSourceKind.FACTORY
    assert listed.plugins == produced.plugins == (plugin,)


@pytest.mark.parametrize("value", [42, "plugins", [object()], lambda config: None])
def test_normalize_rejects_other_shapes(value) -> None:
    with pytest.raises(PluginError):
        normalize_plugins(value)


def test_factory_receives_config(tmp_path: Path) -> None:
    path = write(tmp_path / "plugins.py", """
from bundle_tool.plugins import Plugin, PluginInfo


class Named(Plugin):
    def get_info(self):
        return PluginInfo(name=self.options["name"])


def plugins(config):
    return [Named({"name": config["service"]})]
""")

    plugin_set = load_plugins_source(path, {"service": "demo"})

    assert plugin_set.kind is PluginSourceKind.FACTORY
    assert plugin_set.source == str(path)
    assert plugin_set.plugins[0].get_info().name == "demo"

    manager = PluginManager()
    assert plugin_set.register_all(manager) == 1
    assert manager.get_plugin("demo") is plugin_set.plugins[0]


@pytest.mark.parametrize("content", ["", "raise ImportError('nope')\n"])
def test_load_errors(tmp_path: Path, content: str) -> None:
    path = write(tmp_path / "plugins.py", content)

    with pytest.raises(PluginError):
        load_plugins_source(path)


def test_missing_plugins_file(tmp_path: Path) -> None:
    with pytest.raises(PluginError, match="not found"):
        load_plugins_source(tmp_path / "absent.py")
