# bundle_tool/plugins/base.py
"""Build plugins: hook points, plugin base class and dispatcher

A plugin subscribes to hook points of the bundle and archive steps. For
each subscribed point the dispatcher calls the plugin method named after
it (``bundle.pre`` -> ``on_bundle_pre``) with a shared, mutable context.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class PluginPriority(IntEnum):
    """Lower values run first"""
    FIRST = 0
    EARLY = 25
    NORMAL = 50
    LATE = 75
    LAST = 100


class HookPoint(Enum):
    """Points of a function build where plugins run"""
    BUNDLE_PRE = "bundle.pre"        # entry, options (editable)
    BUNDLE_POST = "bundle.post"      # entry, bundle_path, result
    ARCHIVE_PRE = "archive.pre"      # function_alias, files (editable)
    ARCHIVE_POST = "archive.post"    # function_alias, files, archive

    @property
    def handler_name(self) -> str:
        return "on_" + self.value.replace(".", "_")


@dataclass
class PluginContext:
    """State passed from plugin to plugin for one hook point

    A plugin that calls ``fail`` stops the remaining plugins; the step that
    fired the hook then aborts.
    """
    hook_point: HookPoint
    operation: str
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.errors.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


@dataclass
class PluginInfo:
    """Plugin metadata"""
    name: str
    hook_points: List[HookPoint] = field(default_factory=list)
    priority: PluginPriority = PluginPriority.NORMAL
    version: Optional[str] = None
    enabled: bool = True


class Plugin(ABC):
    """Base class for build plugins"""

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        """
        Initialize plugin

        Args:
            options: Plugin-specific options
        """
        self.options = options or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def get_info(self) -> PluginInfo:
        """Name, subscribed hook points and priority"""

    async def handle_hook(self, context: PluginContext) -> PluginContext:
        """Dispatch to ``on_<hook_point>``; handlers may return None to keep the context"""
        handler = getattr(self, context.hook_point.handler_name, None)
        if handler is None:
            return context
        return await handler(context) or context


class PluginManager:
    """Registry of plugins, dispatching hook points in priority order

    Plugins with equal priority run in registration order.
    """

    def __init__(self):
        self._plugins: Dict[str, Plugin] = {}
        self.logger = logging.getLogger("PluginManager")

    def register(self, plugin: Plugin) -> None:
        """Add a plugin, replacing one registered under the same name"""
        info = plugin.get_info()
        if info.name in self._plugins:
            self.logger.warning(f"Plugin {info.name} already registered, replacing")
            del self._plugins[info.name]
        self._plugins[info.name] = plugin
        suffix = f" v{info.version}" if info.version else ""
        self.logger.debug(f"Registered plugin {info.name}{suffix} for "
                          f"{', '.join(hp.value for hp in info.hook_points) or 'no hooks'}")

    def unregister(self, name: str) -> None:
        self._plugins.pop(name, None)

    def plugins_for(self, hook_point: HookPoint) -> List[Plugin]:
        """Enabled plugins subscribed to ``hook_point``, in execution order"""
        subscribed = []
        for plugin in self._plugins.values():
            info = plugin.get_info()
            if info.enabled and hook_point in info.hook_points:
                subscribed.append((info.priority, plugin))
        subscribed.sort(key=lambda item: item[0])
        return [plugin for _, plugin in subscribed]

    async def execute_hook(self, hook_point: HookPoint, context: PluginContext) -> PluginContext:
        """
        Run every subscribed plugin on ``context``

        An exception raised by a plugin is recorded as a failure on the
        context; the caller decides what a failed context means.

        Returns:
            The context after the last plugin ran
        """
        for plugin in self.plugins_for(hook_point):
            name = plugin.get_info().name
            self.logger.debug(f"Running plugin {name} for {hook_point.value}")
            try:
                context = await plugin.handle_hook(context)
            except Exception as e:
                self.logger.error(f"Plugin {name} failed on {hook_point.value}: {e}")
                context.fail(f"Plugin {name} error: {e}")

            if context.failed:
                break

        return context

    def get_plugin(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def list_plugins(self) -> List[PluginInfo]:
        return [p.get_info() for p in self._plugins.values()]
