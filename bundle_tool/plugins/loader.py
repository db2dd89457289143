"""Plugin source loading

A plugins source is a Python file whose ``plugins`` attribute is either a
list of plugins or a callable taking the configuration and returning one.
The shape is inspected once here; everything downstream sees a PluginSet.
"""

import importlib.util
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple

from ..api.exceptions import PluginError
from .base import Plugin, PluginManager

logger = logging.getLogger("PluginLoader")


class PluginSourceKind(Enum):
    """How a plugins source provided its plugins"""
    LIST = "list"
    FACTORY = "factory"


@dataclass(frozen=True)
class PluginSet:
    """Plugins normalized from one source"""
    kind: PluginSourceKind
    plugins: Tuple[Plugin, ...]
    source: Optional[str] = None

    def register_all(self, plugin_manager: PluginManager) -> int:
        """Register every plugin and return how many were added"""
        for plugin in self.plugins:
            plugin_manager.register(plugin)
        return len(self.plugins)


def normalize_plugins(value: Any, config: Any = None, source: Optional[str] = None) -> PluginSet:
    """
    Normalize a loaded plugins value to a PluginSet

    Args:
        value: A list of plugins or a callable returning one
        config: Configuration passed to a factory
        source: Where the value came from, for messages

    Returns:
        PluginSet

    Raises:
        PluginError: Value is neither shape, or holds non-plugins
    """
    kind = PluginSourceKind.LIST
    if callable(value) and not isinstance(value, (list, tuple)):
        kind = PluginSourceKind.FACTORY
        value = value(config)

    if not isinstance(value, (list, tuple)):
        raise PluginError(
            f"Plugins source {source or '<inline>'} must provide a list of plugins "
            f"or a function returning one, got {type(value).__name__}"
        )

    for plugin in value:
        if not isinstance(plugin, Plugin):
            raise PluginError(f"Plugins source {source or '<inline>'} contains a non-plugin: {plugin!r}")

    return PluginSet(kind=kind, plugins=tuple(value), source=source)


def load_plugins_source(path: Path, config: Any = None) -> PluginSet:
    """
    Import a plugins file and normalize what it exports

    Args:
        path: Python file exporting ``plugins``
        config: Configuration passed to a factory

    Returns:
        PluginSet
    """
    path = Path(path)
    if not path.is_file():
        raise PluginError(f"Plugins file not found: {path}")

    spec = importlib.util.spec_from_file_location(f"bundle_tool_plugins_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise PluginError(f"Cannot import plugins file: {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise PluginError(f"Failed to load plugins from {path}: {e}") from e

    value = getattr(module, "plugins", None)
    if value is None:
        raise PluginError(f"Plugins file {path} does not define 'plugins'")

    plugin_set = normalize_plugins(value, config, str(path))
    logger.debug(f"Loaded {len(plugin_set.plugins)} plugin(s) from {path} ({plugin_set.kind.value})")
    return plugin_set
