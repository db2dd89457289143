"""Watch session: rebuild affected bundles when sources change"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from ..core.bundle_orchestrator import function_alias_for
from ..models import WatchConfiguration
from ..utils.file_utils import matches_any, to_posix
from .build_service import BuildCoordinator

Snapshot = Dict[Path, float]


def take_snapshot(root: Path, watch: WatchConfiguration) -> Snapshot:
    """Modification times of every watched file below ``root``

    Ignored directories are pruned rather than walked.
    """
    snapshot = {}
    for dirpath, dirnames, filenames in os.walk(root):
        relative_dir = Path(dirpath).relative_to(root)
        dirnames[:] = [
            d for d in dirnames
            if not matches_any(to_posix(relative_dir / d), watch.ignore, prefix=True)
        ]
        for filename in filenames:
            relative_path = to_posix(relative_dir / filename)
            if not matches_any(relative_path, watch.pattern):
                continue
            if matches_any(relative_path, watch.ignore, prefix=True):
                continue
            path = Path(dirpath) / filename
            try:
                snapshot[path] = path.stat().st_mtime
            except FileNotFoundError:
                continue
    return snapshot


def diff_snapshots(before: Snapshot, after: Snapshot) -> List[Path]:
    """Paths added, removed or modified between two snapshots"""
    changed = [path for path, mtime in after.items() if before.get(path) != mtime]
    changed.extend(path for path in before if path not in after)
    return sorted(changed)


class WatchService:
    """Polls the project for changes and rebuilds through one coordinator

    Build contexts stay alive for the whole session so each entry keeps
    its single context between rebuilds. Rebuild errors are logged and the
    session continues.
    """

    def __init__(self,
                 coordinator: BuildCoordinator,
                 on_rebuild: Optional[Callable[[Dict[str, object]], None]] = None):
        """
        Initialize watch service

        Args:
            coordinator: Coordinator owning the build contexts
            on_rebuild: Called with alias -> result/error after each rebuild
        """
        self.coordinator = coordinator
        self.watch = coordinator.config.watch
        self.on_rebuild = on_rebuild
        self._stop: Optional[asyncio.Event] = None
        self._snapshot: Snapshot = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def stop(self) -> None:
        """Ask the polling loop to finish after the current iteration"""
        if self._stop is not None:
            self._stop.set()

    async def prepare(self, function_names: Optional[Iterable[str]] = None) -> None:
        """Initial build with contexts kept alive, and the first snapshot"""
        await self.coordinator.build(function_names, keep_contexts=True)
        self._snapshot = take_snapshot(self.coordinator.cwd, self.watch)
        self.logger.info(f"Watching {len(self._snapshot)} file(s) for changes")

    async def start(self, function_names: Optional[Iterable[str]] = None) -> None:
        """Initial build, then poll until ``stop`` is called; contexts are disposed on exit"""
        self._stop = asyncio.Event()
        try:
            await self.prepare(function_names)

            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.watch.interval)
                except asyncio.TimeoutError:
                    pass
                if self._stop.is_set():
                    break
                await self.poll()
        finally:
            await self.coordinator.close()

    async def poll(self) -> Dict[str, object]:
        """
        Rebuild the entries affected by changes since the last poll

        Returns:
            Function alias to result or BundleError (empty when nothing changed)
        """
        snapshot = take_snapshot(self.coordinator.cwd, self.watch)
        changed = diff_snapshots(self._snapshot, snapshot)
        self._snapshot = snapshot
        if not changed:
            return {}

        self.logger.debug(f"Changed: {', '.join(str(p) for p in changed)}")
        orchestrator = self.coordinator.orchestrator
        affected = set(orchestrator.affected_entries(changed))
        aliases = [function_alias_for(e) for e in self.coordinator.entries if e.entry in affected]
        if not aliases:
            return {}

        outcomes = await self.coordinator.rebuild(aliases)

        if self.on_rebuild is not None:
            self.on_rebuild(outcomes)
        return outcomes
