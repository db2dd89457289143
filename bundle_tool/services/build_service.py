"""Build coordination service"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..api.exceptions import BundleError, BundleToolError, EntryNotFoundError, PluginError
from ..constants import GOOGLE_PROVIDER, NODE_MODULES, STAGING_FOLDER, FunctionStatus, PackagerId
from ..core.archiver import zip_files
from ..core.bundle_orchestrator import BundleOrchestrator, function_alias_for
from ..core.bundler import Bundler, EsbuildBundler
from ..core.dependency_resolver import DependencyResolver, collect_externals, find_used_externals
from ..core.entry_resolver import extract_function_entries, resolve_function_entry
from ..core.packagers import Packager, detect_packager, get_packager
from ..models import (
    ArchiveFile,
    BuildReport,
    Configuration,
    FileBuildResult,
    FunctionArtifact,
    FunctionBuildResult,
    FunctionDefinition,
    FunctionEntry,
)
from ..plugins import HookPoint, PluginContext, PluginManager, load_plugins_source
from ..utils.async_utils import map_concurrent
from ..utils.file_utils import copy_path, find_up, safe_remove, scan_directory, to_posix


class BuildCoordinator:
    """Bundles, packages and archives every function of a project

    Owns the orchestrator (and so every build context) for one session;
    use as an async context manager or call ``close`` when done.
    """

    def __init__(self,
                 config: Configuration,
                 functions: Dict[str, FunctionDefinition],
                 cwd: Path,
                 provider: Optional[str] = None,
                 bundler: Optional[Bundler] = None,
                 packager: Optional[Packager] = None,
                 plugin_manager: Optional[PluginManager] = None,
                 incremental: Optional[bool] = None):
        """
        Initialize build coordinator

        Args:
            config: Build configuration
            functions: Function definitions keyed by alias
            cwd: Project directory
            provider: Cloud provider name
            bundler: Bundler (esbuild CLI by default)
            packager: Packager (configured, else detected from lockfiles, else npm)
            plugin_manager: Plugin manager (plugins source from config is loaded into it)
            incremental: Keep build contexts alive (defaults to config.incremental)
        """
        self.config = config
        self.functions = dict(functions)
        self.cwd = Path(cwd).resolve()
        self.provider = provider
        self.logger = logging.getLogger(self.__class__.__name__)

        self.work_dir = self.cwd / config.output_work_folder
        self.build_dir = self.work_dir / config.output_build_folder
        self.artifact_dir = self.work_dir / config.output_artifact_folder
        self.staging_dir = self.work_dir / STAGING_FOLDER

        detected, lock_dir = detect_packager(self.cwd)
        if packager is None:
            name = config.packager or (detected.value if detected else PackagerId.NPM.value)
            packager = get_packager(name)
        if detected is None or detected.value != packager.name:
            lock_dir = find_up([packager.lockfile_name], self.cwd)
        self.packager = packager
        self.lock_dir = lock_dir

        self.plugin_manager = plugin_manager or PluginManager()
        if config.plugins:
            plugin_set = load_plugins_source(self.cwd / config.plugins, config)
            plugin_set.register_all(self.plugin_manager)

        self.externals = collect_externals(config, self.cwd)
        self.bundler = bundler or EsbuildBundler(self.cwd, config.bundler_command)
        self.orchestrator = BundleOrchestrator(
            self.bundler,
            config,
            cwd=self.cwd,
            build_dir=self.build_dir,
            externals=self.externals,
            plugin_manager=self.plugin_manager,
            incremental=incremental,
        )
        self.resolver = DependencyResolver(
            self.packager,
            self.lock_dir,
            strict=config.strict_dependencies,
            provided=config.excluded_packages,
        )
        self.entries: List[FunctionEntry] = []

    def _select(self, function_names: Optional[Iterable[str]]) -> Dict[str, FunctionDefinition]:
        if not function_names:
            return self.functions
        selected = {}
        for name in function_names:
            if name not in self.functions:
                raise BundleToolError(f"Function '{name}' is not defined")
            selected[name] = self.functions[name]
        return selected

    async def build(self,
                    function_names: Optional[Iterable[str]] = None,
                    keep_contexts: bool = False) -> BuildReport:
        """
        Bundle and package functions

        Non-strict builds record per-function failures in the report and
        let the other functions finish. Strict builds cancel the remaining
        pipelines and raise the first failure.

        Args:
            function_names: Aliases to build (all when empty)
            keep_contexts: Keep build contexts alive afterwards (watch)

        Returns:
            BuildReport

        Raises:
            BundleError: Bundling failed and partial bundles are not allowed
            BundleToolError: First pipeline failure in strict mode
        """
        start_time = time.time()
        functions = self._select(function_names)

        results: List[FunctionArtifact] = []
        self.entries = self._resolve_entries(functions, results)
        await self.orchestrator.bundle_all(self.entries, keep_contexts=keep_contexts)

        for entry in self.entries:
            error = self.orchestrator.failures.get(entry.entry)
            if error is not None:
                results.append(FunctionArtifact(
                    function_alias=function_alias_for(entry),
                    status=FunctionStatus.FAILED,
                    error=error,
                ))

        built = self.orchestrator.function_results(self.entries)
        self.logger.info(
            f"Packaging {len(built)} function(s) (zip concurrency: {self.config.zip_concurrency or 'unbounded'})"
        )

        outcomes = await map_concurrent(
            built,
            self.package_function,
            concurrency=self.config.zip_concurrency,
            return_exceptions=not self.config.strict,
        )

        for function, outcome in zip(built, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                self.logger.error(f"Packaging {function.function_alias} failed: {outcome}")
                outcome = FunctionArtifact(
                    function_alias=function.function_alias,
                    status=FunctionStatus.FAILED,
                    bundle_path=function.bundle_path,
                    error=outcome,
                )
            results.append(outcome)

        return BuildReport(results=results, duration=time.time() - start_time)

    def _resolve_entries(self,
                         functions: Dict[str, FunctionDefinition],
                         failures: List[FunctionArtifact]) -> List[FunctionEntry]:
        """Entries of the selected functions; unresolvable ones are recorded in ``failures``"""
        if self.provider == GOOGLE_PROVIDER:
            return extract_function_entries(self.cwd, functions, self.config, self.provider)

        entries = []
        for alias, func in functions.items():
            try:
                entry = resolve_function_entry(alias, func, self.cwd, self.config)
            except EntryNotFoundError as e:
                if self.config.strict:
                    raise
                self.logger.error(str(e))
                failures.append(FunctionArtifact(function_alias=alias, status=FunctionStatus.FAILED, error=e))
                continue
            if entry is not None:
                entries.append(entry)
        return entries

    async def package_function(self, function: FunctionBuildResult) -> FunctionArtifact:
        """
        Package one bundled function into its archive

        Args:
            function: Bundle location of the function

        Returns:
            Successful FunctionArtifact
        """
        start_time = time.time()
        alias = function.function_alias
        bundle_path = function.bundle_path

        files = [ArchiveFile(local_path=to_posix(bundle_path.relative_to(self.build_dir)), root_path=bundle_path)]
        source_map = bundle_path.with_name(bundle_path.name + ".map")
        if source_map.exists():
            files.append(ArchiveFile(local_path=to_posix(source_map.relative_to(self.build_dir)),
                                     root_path=source_map))

        dependencies = await self._stage_dependencies(alias, bundle_path)
        if dependencies:
            staging_dir = self.staging_dir / alias
            for path in scan_directory(staging_dir / NODE_MODULES):
                files.append(ArchiveFile(local_path=to_posix(path.relative_to(staging_dir)), root_path=path))

        if function.func is not None and function.func.package_patterns:
            files.extend(self._pattern_files(function.func.package_patterns, files))

        files = await self._run_archive_hook(HookPoint.ARCHIVE_PRE, alias, files)

        zip_path = self.artifact_dir / f"{alias}{self.config.archive_extension}"
        archive = await zip_files(zip_path, files, self.config.native_zip)

        await self._run_archive_hook(HookPoint.ARCHIVE_POST, alias, files, archive=archive)

        return FunctionArtifact(
            function_alias=alias,
            status=FunctionStatus.SUCCESS,
            archive_path=archive.path,
            bundle_path=bundle_path,
            size=archive.size,
            duration=time.time() - start_time,
            dependencies=dependencies,
        )

    async def _stage_dependencies(self, alias: str, bundle_path: Path) -> Dict[str, str]:
        """Resolve the function's externals and fill ``<work>/.staging/<alias>/node_modules``"""
        if self.config.excludes_all:
            return {}

        excluded = set(self.config.excluded_packages)
        candidates = [name for name in self.externals if name not in excluded]
        used = find_used_externals(bundle_path, candidates)
        if not used:
            return {}

        resolved = await self.resolver.resolve(used)
        if not resolved:
            return {}

        staging_dir = self.staging_dir / alias
        safe_remove(staging_dir)
        staging_dir.mkdir(parents=True)

        options = self.config.packager_options
        if options.no_install:
            self._copy_installed(staging_dir, resolved.dependencies)
        else:
            await self.packager.install(
                staging_dir,
                resolved.dependencies,
                extra_args=self.config.install_extra_args,
                ignore_lockfile=options.ignore_lockfile,
            )
        if options.scripts:
            await self.packager.run_scripts(staging_dir, options.scripts)

        return resolved.dependencies

    def _copy_installed(self, staging_dir: Path, dependencies: Dict[str, str]) -> None:
        """Copy already installed packages from the project's node_modules"""
        source_root = (self.lock_dir or self.cwd) / NODE_MODULES
        for name in dependencies:
            source = source_root / name
            if not source.is_dir():
                self.logger.warning(f"no_install is set but {name} is not installed in {source_root}")
                continue
            copy_path(source, staging_dir / NODE_MODULES / name)

    def _pattern_files(self, patterns: List[str], existing: List[ArchiveFile]) -> List[ArchiveFile]:
        """Extra project files named by a function's package patterns"""
        include = [p for p in patterns if not p.startswith("!")]
        if not include:
            return []
        exclude = [p[1:] for p in patterns if p.startswith("!")]
        exclude += [NODE_MODULES, self.config.output_work_folder]

        taken = {f.local_path for f in existing}
        files = []
        for path in scan_directory(self.cwd, include, exclude):
            local_path = to_posix(path.relative_to(self.cwd))
            if local_path in taken:
                self.logger.warning(f"Package pattern file {local_path} is already in the archive, skipping")
                continue
            taken.add(local_path)
            files.append(ArchiveFile(local_path=local_path, root_path=path))
        return files

    async def _run_archive_hook(self,
                                hook_point: HookPoint,
                                alias: str,
                                files: List[ArchiveFile],
                                **data) -> List[ArchiveFile]:
        context = PluginContext(
            hook_point=hook_point,
            operation="archive",
            data={"function_alias": alias, "files": list(files), **data},
        )
        context = await self.plugin_manager.execute_hook(hook_point, context)
        if context.failed:
            raise PluginError(f"{hook_point.value} failed for {alias}: {'; '.join(context.errors)}")
        return context.data["files"]

    async def rebuild(self, function_names: Iterable[str]) -> Dict[str, Union[FileBuildResult, BundleError]]:
        """
        Rebuild the bundles of the named functions, reusing their contexts

        Args:
            function_names: Function aliases

        Returns:
            Function alias to FileBuildResult, or to the BundleError that stopped it
        """
        names = set(function_names)
        selected = [e for e in self.entries if function_alias_for(e) in names]
        outcomes = await self.orchestrator.rebuild(e.entry for e in selected)
        return {function_alias_for(e): outcomes[e.entry] for e in selected}

    async def close(self) -> None:
        """Dispose every build context"""
        await self.orchestrator.dispose_all()

    def cleanup(self) -> None:
        """Remove bundles and staging folders, keeping the archives"""
        if self.config.keep_output_directory:
            return
        safe_remove(self.build_dir)
        safe_remove(self.staging_dir)
        self.logger.debug(f"Removed build output below {self.work_dir}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
