"""Builder API for packaging functions"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from ..core.bundler import Bundler
from ..core.packagers import Packager
from ..models import BuildReport
from ..plugins import PluginManager
from ..services import BuildCoordinator, ConfigService, ProjectConfig, WatchService, apply_overrides
from ..utils.file_utils import safe_remove


class Builder:
    """Programmatic entry point: load the project and build its functions"""

    def __init__(self,
                 project_root: Optional[Path] = None,
                 config_path: Optional[Path] = None,
                 bundler: Optional[Bundler] = None,
                 packager: Optional[Packager] = None,
                 plugin_manager: Optional[PluginManager] = None,
                 **overrides: Any):
        """
        Initialize builder

        Args:
            project_root: Directory to look for the configuration from
            config_path: Explicit configuration file
            bundler: Bundler replacing the esbuild CLI
            packager: Packager replacing the configured one
            plugin_manager: Plugin manager to register plugins into
            **overrides: Configuration fields replacing loaded values
                - native_zip, concurrency, zip_concurrency, strict, ...
        """
        self.config_service = ConfigService(project_root, config_path)
        self.bundler = bundler
        self.packager = packager
        self.plugin_manager = plugin_manager
        self.overrides = overrides

    @property
    def project(self) -> ProjectConfig:
        """Loaded project with overrides applied"""
        project = self.config_service.project
        project.config = apply_overrides(project.config, **self.overrides)
        return project

    def create_coordinator(self, incremental: Optional[bool] = None) -> BuildCoordinator:
        """Build coordinator for the loaded project"""
        project = self.project
        return BuildCoordinator(
            project.config,
            project.functions,
            cwd=project.root,
            provider=project.provider,
            bundler=self.bundler,
            packager=self.packager,
            plugin_manager=self.plugin_manager,
            incremental=incremental,
        )

    def package(self, functions: Optional[Iterable[str]] = None) -> BuildReport:
        """
        Bundle, package and archive functions

        Args:
            functions: Function aliases (all when empty)

        Returns:
            BuildReport with alias -> archive path

        Raises:
            BundleToolError: Build failed as a whole (or any failure in strict mode)
        """
        return asyncio.run(self._async_package(functions))

    async def _async_package(self, functions: Optional[Iterable[str]]) -> BuildReport:
        coordinator = self.create_coordinator()
        try:
            async with coordinator:
                return await coordinator.build(functions)
        finally:
            coordinator.cleanup()

    def watch(self,
              functions: Optional[Iterable[str]] = None,
              on_rebuild: Optional[Callable[[Dict[str, object]], None]] = None) -> None:
        """Build once, then rebuild on changes until interrupted"""
        coordinator = self.create_coordinator(incremental=True)
        service = WatchService(coordinator, on_rebuild=on_rebuild)
        asyncio.run(service.start(functions))

    def clean(self) -> bool:
        """
        Remove the whole work folder, archives included

        Returns:
            True if something was removed
        """
        project = self.project
        return safe_remove(project.root / project.config.output_work_folder)


def package(project_root: Optional[Path] = None,
            functions: Optional[Iterable[str]] = None,
            **options: Any) -> BuildReport:
    """
    Package a project's functions

    Args:
        project_root: Project directory (current directory if None)
        functions: Function aliases (all when empty)
        **options: Builder options and configuration overrides

    Returns:
        BuildReport

    Example:
        >>> report = package("./my-service", native_zip=True)
        >>> report.artifacts["hello"]
    """
    return Builder(project_root, **options).package(functions)
