# bundle_tool/plugins/__init__.py
"""Plugin system for bundle-tool"""

from .base import (
    Plugin,
    PluginInfo,
    PluginContext,
    PluginManager,
    PluginPriority,
    HookPoint,
)
from .loader import PluginSet, PluginSourceKind, load_plugins_source, normalize_plugins

__all__ = [
    # Base classes
    'Plugin',
    'PluginInfo',
    'PluginContext',
    'PluginManager',
    'PluginPriority',
    'HookPoint',

    # Loader
    'PluginSet',
    'PluginSourceKind',
    'load_plugins_source',
    'normalize_plugins',
]
