"""Concurrent bundling with incremental contexts and skip-rebuild fingerprints"""

import asyncio
import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..api.exceptions import BundleError
from ..models import (
    BundlerResult,
    Configuration,
    FileBuildResult,
    FunctionBuildResult,
    FunctionDefinition,
    FunctionEntry,
)
from ..plugins import HookPoint, PluginContext, PluginManager
from ..utils.async_utils import map_concurrent
from ..utils.file_utils import atomic_write, trim_extension
from ..utils.hash_utils import calculate_inputs_fingerprint
from .bundler import BuildContext, Bundler

FINGERPRINT_FILE = ".fingerprints.json"


def function_alias_for(entry: FunctionEntry) -> str:
    """Alias of an entry; provider-level entries are named after their file"""
    if entry.function_alias:
        return entry.function_alias
    return Path(trim_extension(entry.entry)).name


class BundleOrchestrator:
    """Runs the bundler per entry and owns the entry -> context registry

    The registry lives for one build or watch session. At most one context
    exists per entry; ``dispose_all`` releases every one of them.
    """

    def __init__(self,
                 bundler: Bundler,
                 config: Configuration,
                 cwd: Path,
                 build_dir: Path,
                 externals: Optional[Sequence[str]] = None,
                 plugin_manager: Optional[PluginManager] = None,
                 incremental: Optional[bool] = None):
        """
        Initialize orchestrator

        Args:
            bundler: Bundler implementation
            config: Build configuration
            cwd: Project directory entries are relative to
            build_dir: Folder bundles are written to
            externals: Package names left unbundled
            plugin_manager: Plugins receiving bundle hooks
            incremental: Keep contexts between builds (defaults to config.incremental)
        """
        self.bundler = bundler
        self.config = config
        self.cwd = Path(cwd)
        self.build_dir = Path(build_dir)
        self.externals = list(externals) if externals is not None else list(config.external)
        self.plugin_manager = plugin_manager
        self.incremental = config.incremental if incremental is None else incremental
        self.logger = logging.getLogger(self.__class__.__name__)

        self._contexts: Dict[str, BuildContext] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._results: Dict[str, FileBuildResult] = {}
        self._functions: Dict[str, List[FunctionEntry]] = {}
        self._fingerprints: Dict[str, str] = {}
        self._tracked_inputs: Dict[str, List[str]] = {}
        self.failures: Dict[str, BundleError] = {}

        if config.skip_rebuild:
            self._load_fingerprints()

    # Registry inspection

    @property
    def context_count(self) -> int:
        """Number of live build contexts"""
        return len(self._contexts)

    def has_context(self, entry: str) -> bool:
        """Check whether an entry currently owns a context"""
        return entry in self._contexts

    def get_result(self, entry: str) -> Optional[FileBuildResult]:
        """Last successful build of an entry"""
        return self._results.get(entry)

    @property
    def entries(self) -> List[str]:
        """Entries registered through bundle_all"""
        return list(self._functions)

    # Options and paths

    def bundle_path_for(self, entry: str) -> Path:
        """Output path of an entry's bundle inside the build folder"""
        stem = trim_extension(entry)
        if self.config.strip_entry_resolve_extensions:
            for extension in sorted(self.config.resolve_extensions, key=len, reverse=True):
                if entry.endswith(extension):
                    stem = entry[:-len(extension)]
                    break
        return self.build_dir / (stem + self.config.output_file_extension)

    def bundler_options(self) -> Dict[str, Any]:
        """Bundler options shared by every entry"""
        options = dict(self.config.bundler_options)

        externals = list(dict.fromkeys(self.externals + self.config.excluded_packages))
        options["external"] = externals
        if self.config.excludes_all:
            options["packages"] = "external"
        if self.config.output_file_extension == ".mjs":
            options.setdefault("format", "esm")

        return options

    async def _prepare_options(self, entry: str) -> Dict[str, Any]:
        options = self.bundler_options()
        if self.plugin_manager is None:
            return options

        context = PluginContext(
            hook_point=HookPoint.BUNDLE_PRE,
            operation="bundle",
            data={"entry": entry, "options": options},
        )
        context = await self.plugin_manager.execute_hook(HookPoint.BUNDLE_PRE, context)
        if context.failed:
            raise BundleError(entry, message=f"Bundling aborted for {entry}: {'; '.join(context.errors)}")
        return context.data["options"]

    def _functions_of(self, entry: str) -> List[FunctionDefinition]:
        return [e.func for e in self._functions.get(entry, []) if e.func is not None]

    def _is_excluded(self, entry: str) -> bool:
        # skip_build_exclude_fns always build for real
        excluded = set(self.config.skip_build_exclude_fns)
        return any(f.name in excluded for f in self._functions_of(entry))

    def _short_circuit_allowed(self, entry: str) -> bool:
        if not (self.config.skip_rebuild or self.incremental):
            return False
        return not self._is_excluded(entry)

    def _should_dispose(self, entry: str) -> bool:
        funcs = self._functions_of(entry)
        if not funcs:
            return self.config.dispose_context
        return all(
            self.config.dispose_context if f.dispose_context is None else f.dispose_context
            for f in funcs
        )

    # Building

    async def bundle_all(self,
                         entries: Sequence[FunctionEntry],
                         keep_contexts: bool = False) -> List[FileBuildResult]:
        """
        Bundle every unique entry with at most ``concurrency`` builds in flight

        Args:
            entries: Function entries; functions sharing an entry are built once
            keep_contexts: Keep contexts alive after the batch (watch sessions)

        Returns:
            Build results in entry order. Failed entries are recorded in
            ``failures`` and omitted when ``allow_partial_bundle`` is set.

        Raises:
            BundleError: First failure, when partial bundles are not allowed
        """
        grouped: "OrderedDict[str, List[FunctionEntry]]" = OrderedDict()
        for entry in entries:
            grouped.setdefault(entry.entry, []).append(entry)
        self._functions.update(grouped)

        self.logger.info(
            f"Bundling {len(grouped)} entr{'y' if len(grouped) == 1 else 'ies'}"
            f" (concurrency: {self.config.concurrency or 'unbounded'})"
        )

        outcomes = await map_concurrent(
            list(grouped),
            self.bundle,
            concurrency=self.config.concurrency,
            return_exceptions=self.config.allow_partial_bundle,
        )

        results = []
        for entry, outcome in zip(grouped, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, BundleError):
                    outcome = BundleError(entry, outcome)
                self.failures[entry] = outcome
                self.logger.error(str(outcome))
            else:
                results.append(outcome)

        if not keep_contexts:
            for entry in list(self._contexts):
                if self._should_dispose(entry):
                    await self.dispose(entry)

        if self.config.skip_rebuild:
            self._save_fingerprints()

        return results

    async def bundle(self, entry: str) -> FileBuildResult:
        """
        Build one entry, or reuse its last build when nothing it tracks changed

        Args:
            entry: Entry path relative to the project directory

        Returns:
            FileBuildResult

        Raises:
            BundleError: Bundler failed
        """
        lock = self._locks.setdefault(entry, asyncio.Lock())
        async with lock:
            try:
                result = await self._bundle_locked(entry)
            except BundleError as e:
                self.failures[entry] = e
                raise
            self.failures.pop(entry, None)
            return result

    async def _bundle_locked(self, entry: str) -> FileBuildResult:
        outfile = self.bundle_path_for(entry)

        if self.config.skip_build and not self._is_excluded(entry):
            if not outfile.exists():
                raise BundleError(entry, message=f"skip_build is set but no bundle exists at {outfile}")
            self.logger.info(f"Skipping build of {entry}, reusing {outfile}")
            return self._remember(entry, FileBuildResult(
                bundle_path=outfile,
                entry=entry,
                result=BundlerResult(output_files=[str(outfile)]),
            ))

        options = await self._prepare_options(entry)
        tracked = self._tracked_inputs.get(entry) or [str(self.cwd / entry)]

        if self._short_circuit_allowed(entry) and entry in self._fingerprints and outfile.exists():
            fingerprint = await calculate_inputs_fingerprint([Path(p) for p in tracked], options)
            if fingerprint == self._fingerprints[entry]:
                self.logger.debug(f"{entry} unchanged, reusing {outfile}")
                previous = self._results.get(entry)
                if previous is not None:
                    return previous
                return self._remember(entry, FileBuildResult(
                    bundle_path=outfile,
                    entry=entry,
                    result=BundlerResult(inputs=list(tracked), output_files=[str(outfile)]),
                    fingerprint=fingerprint,
                ))

        result, context = await self._invoke(entry, outfile, options)

        for warning in result.warnings:
            self.logger.warning(f"{entry}: {warning}")

        self._tracked_inputs[entry] = list(result.inputs) or [str(self.cwd / entry)]
        fingerprint = await calculate_inputs_fingerprint(
            [Path(p) for p in self._tracked_inputs[entry]], options
        )
        self._fingerprints[entry] = fingerprint

        file_result = self._remember(entry, FileBuildResult(
            bundle_path=outfile,
            entry=entry,
            result=result,
            context=context,
            fingerprint=fingerprint,
        ))

        if self.plugin_manager is not None:
            await self.plugin_manager.execute_hook(HookPoint.BUNDLE_POST, PluginContext(
                hook_point=HookPoint.BUNDLE_POST,
                operation="bundle",
                data={"entry": entry, "bundle_path": outfile, "result": result},
            ))

        return file_result

    async def _invoke(self, entry: str, outfile: Path, options: Dict[str, Any]):
        context = None
        try:
            if self.incremental:
                # Check-then-insert runs under the entry's lock
                context = self._contexts.get(entry)
                if context is None:
                    context = await self.bundler.context(entry, outfile, options)
                    self._contexts[entry] = context
                result = await context.rebuild()
            else:
                result = await self.bundler.build(entry, outfile, options)
        except asyncio.CancelledError:
            raise
        except BundleError:
            raise
        except Exception as e:
            raise BundleError(entry, e) from e

        if result.errors:
            raise BundleError(entry, message=f"Bundling failed for {entry}: {'; '.join(result.errors)}")

        return result, context

    def _remember(self, entry: str, result: FileBuildResult) -> FileBuildResult:
        self._results[entry] = result
        return result

    async def rebuild(self, entries: Iterable[str]) -> Dict[str, Union[FileBuildResult, BundleError]]:
        """
        Rebuild the given entries, reporting failures instead of raising

        Args:
            entries: Entries to rebuild

        Returns:
            Entry to result, or to the BundleError that stopped it
        """
        entries = list(dict.fromkeys(entries))
        outcomes = await map_concurrent(
            entries,
            self.bundle,
            concurrency=self.config.concurrency,
            return_exceptions=True,
        )

        report = {}
        for entry, outcome in zip(entries, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException) and not isinstance(outcome, BundleError):
                outcome = BundleError(entry, outcome)
            if isinstance(outcome, BundleError):
                self.logger.error(str(outcome))
            report[entry] = outcome
        return report

    def affected_entries(self, changed_paths: Iterable[Path]) -> List[str]:
        """
        Entries whose tracked inputs include any changed path

        Entries without known inputs are always considered affected.
        """
        changed = {str(Path(p).resolve()) for p in changed_paths}
        affected = []
        for entry in self._functions:
            tracked = self._tracked_inputs.get(entry)
            if not tracked or changed.intersection(str(Path(p).resolve()) for p in tracked):
                affected.append(entry)
        return affected

    def function_results(self, entries: Sequence[FunctionEntry]) -> List[FunctionBuildResult]:
        """Per-function view of the successful builds"""
        results = []
        for entry in entries:
            file_result = self._results.get(entry.entry)
            if file_result is None or entry.entry in self.failures:
                continue
            results.append(FunctionBuildResult(
                func=entry.func,
                function_alias=function_alias_for(entry),
                bundle_path=file_result.bundle_path,
            ))
        return results

    # Context lifecycle

    async def dispose(self, entry: str) -> None:
        """Dispose the context of one entry and drop it from the registry"""
        context = self._contexts.pop(entry, None)
        if context is None:
            return
        result = self._results.get(entry)
        if result is not None:
            result.context = None
        await context.dispose()

    async def dispose_all(self) -> None:
        """
        Dispose every live context exactly once

        Raises:
            BundleError: A context failed to dispose (after all were attempted)
        """
        errors = []
        for entry in list(self._contexts):
            try:
                await self.dispose(entry)
            except Exception as e:
                self.logger.error(f"Failed to dispose build context for {entry}: {e}")
                errors.append(BundleError(entry, e, f"Failed to dispose build context for {entry}: {e}"))

        if errors:
            raise errors[0]

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.dispose_all()

    # Fingerprint persistence

    def _fingerprint_file(self) -> Path:
        return self.build_dir / FINGERPRINT_FILE

    def _load_fingerprints(self) -> None:
        path = self._fingerprint_file()
        if not path.exists():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            records = {entry: (r["fingerprint"], list(r.get("inputs") or [])) for entry, r in data.items()}
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            self.logger.warning(f"Ignoring unreadable fingerprint file {path}: {e}")
            return
        for entry, (fingerprint, inputs) in records.items():
            self._fingerprints[entry] = fingerprint
            self._tracked_inputs[entry] = inputs

    def _save_fingerprints(self) -> None:
        data = {
            entry: {"fingerprint": fingerprint, "inputs": self._tracked_inputs.get(entry, [])}
            for entry, fingerprint in sorted(self._fingerprints.items())
        }
        atomic_write(self._fingerprint_file(), json.dumps(data, indent=2))
