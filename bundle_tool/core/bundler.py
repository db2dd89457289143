"""Bundler contract and the esbuild command-line adapter"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import DEFAULT_BUNDLER_COMMAND
from ..models import BundlerResult
from ..utils.async_utils import spawn_process, terminate_process
from ..utils.file_utils import ensure_parent_dir, scoped_temp_dir


class BuildContext(ABC):
    """Long-lived incremental build handle for one entry"""

    @abstractmethod
    async def rebuild(self) -> BundlerResult:
        """Build again, reusing whatever state the bundler keeps"""
        pass

    @abstractmethod
    async def watch(self) -> None:
        """Let the bundler rebuild on its own when inputs change"""
        pass

    @abstractmethod
    async def cancel(self) -> None:
        """Abort an in-flight rebuild"""
        pass

    @abstractmethod
    async def dispose(self) -> None:
        """Release every resource held by the context"""
        pass


class Bundler(ABC):
    """Abstract bundler invoked per entry point"""

    @abstractmethod
    async def build(self, entry: str, outfile: Path, options: Dict[str, Any]) -> BundlerResult:
        """One-shot build of ``entry`` into ``outfile``"""
        pass

    @abstractmethod
    async def context(self, entry: str, outfile: Path, options: Dict[str, Any]) -> BuildContext:
        """Create an incremental context; no build happens until ``rebuild``"""
        pass


def to_flags(options: Dict[str, Any]) -> List[str]:
    """
    Convert snake_case bundler options to esbuild command-line flags

    Args:
        options: Bundler options

    Returns:
        Flags in a stable (sorted) order
    """
    flags = []

    for key in sorted(options):
        value = options[key]
        if value is None or value is False:
            continue

        flag = "--" + key.replace("_", "-")

        if key == "external":
            flags.extend(f"--external:{name}" for name in value)
        elif value is True:
            flags.append(flag)
        elif isinstance(value, dict):
            flags.extend(f"{flag}:{k}={v}" for k, v in sorted(value.items()))
        elif isinstance(value, (list, tuple)):
            flags.append(f"{flag}={','.join(str(v) for v in value)}")
        else:
            flags.append(f"{flag}={value}")

    return flags


class EsbuildBundler(Bundler):
    """Runs the esbuild binary as an external process"""

    def __init__(self, cwd: Path, command: str = DEFAULT_BUNDLER_COMMAND):
        """
        Initialize esbuild adapter

        Args:
            cwd: Directory entries are relative to
            command: esbuild executable
        """
        self.cwd = Path(cwd)
        self.command = command
        self.logger = logging.getLogger(self.__class__.__name__)

    def build_args(self, entry: str, outfile: Path, options: Dict[str, Any]) -> List[str]:
        """Command-line arguments for one build, without the metafile flag"""
        return [entry, f"--outfile={outfile}", "--log-level=warning"] + to_flags(options)

    async def run(self, args: List[str]) -> BundlerResult:
        """Run esbuild once and collect inputs from its metafile"""
        with scoped_temp_dir(prefix="esbuild-meta-") as meta_dir:
            metafile_path = meta_dir / "meta.json"
            result = await spawn_process(
                self.command,
                args + [f"--metafile={metafile_path}"],
                cwd=self.cwd,
            )
            metafile = None
            if metafile_path.exists():
                metafile = json.loads(metafile_path.read_text(encoding="utf-8"))

        warnings = [line for line in result.stderr.splitlines() if line.strip()]
        self.logger.debug(f"esbuild finished with {len(warnings)} warning line(s)")
        inputs = []
        output_files = []
        if metafile:
            inputs = [str((self.cwd / name).resolve()) for name in metafile.get("inputs", {})]
            output_files = [str((self.cwd / name).resolve()) for name in metafile.get("outputs", {})]

        return BundlerResult(
            warnings=warnings,
            inputs=inputs,
            output_files=output_files,
            metafile=metafile,
        )

    async def build(self, entry: str, outfile: Path, options: Dict[str, Any]) -> BundlerResult:
        ensure_parent_dir(outfile)
        return await self.run(self.build_args(entry, outfile, options))

    async def context(self, entry: str, outfile: Path, options: Dict[str, Any]) -> 'EsbuildContext':
        ensure_parent_dir(outfile)
        return EsbuildContext(self, self.build_args(entry, outfile, options))


class EsbuildContext(BuildContext):
    """Process-backed context: rebuilds rerun esbuild, watch keeps one running"""

    def __init__(self, bundler: EsbuildBundler, args: List[str]):
        self._bundler = bundler
        self._args = args
        self._current: Optional[asyncio.Future] = None
        self._watch_process: Optional[asyncio.subprocess.Process] = None
        self._disposed = False

    def _check_alive(self) -> None:
        if self._disposed:
            raise RuntimeError("Build context has been disposed")

    async def rebuild(self) -> BundlerResult:
        self._check_alive()
        self._current = asyncio.ensure_future(self._bundler.run(self._args))
        try:
            return await self._current
        finally:
            self._current = None

    async def watch(self) -> None:
        self._check_alive()
        if self._watch_process is None:
            self._watch_process = await asyncio.create_subprocess_exec(
                self._bundler.command, *self._args, "--watch=forever",
                cwd=str(self._bundler.cwd),
                stdin=asyncio.subprocess.DEVNULL,
            )

    async def cancel(self) -> None:
        current = self._current
        if current is not None and not current.done():
            current.cancel()
            await asyncio.gather(current, return_exceptions=True)

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        await self.cancel()
        if self._watch_process is not None:
            await terminate_process(self._watch_process)
            self._watch_process = None
