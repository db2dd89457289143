"""Business logic services for bundle-tool"""

from .config_service import ConfigService, ProjectConfig, apply_overrides
from .build_service import BuildCoordinator
from .watch_service import WatchService

__all__ = [
    "ConfigService",
    "ProjectConfig",
    "apply_overrides",
    "BuildCoordinator",
    "WatchService",
]
