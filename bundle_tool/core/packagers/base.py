"""Package manager adapter base

Listings are converted without ``is_root_dep``: a function archive ships
only its own staging folder, so a package installed at the project root is
not reachable at runtime. Packages provided outside the archive (a layer,
the runtime) are named through the ``exclude`` option instead.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ...api.exceptions import DependencyTreeUnavailableError, PackagerError, SpawnError
from ...constants import DEFAULT_DEPENDENCY_DEPTH, LOCKFILES, PackagerId
from ...models import DependencyMap
from ...utils.async_utils import spawn_process, spawn_shell

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9._-]+")


class Packager(ABC):
    """
    Adapter over one Node package manager

    Subclasses provide the command lines and parse the listing format;
    spawning, lockfile checks and error translation live here.
    """

    packager_id: PackagerId

    def __init__(self, command: Optional[str] = None):
        self.command = command or self.packager_id.value
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def name(self) -> str:
        return self.packager_id.value

    @property
    def lockfile_name(self) -> str:
        return LOCKFILES[self.packager_id.value]

    @abstractmethod
    def list_args(self, depth: int) -> List[str]:
        """Arguments listing production dependencies as JSON"""
        pass

    @abstractmethod
    def parse_dependency_tree(self, output: str) -> DependencyMap:
        """Convert listing output to a DependencyMap (never hoist-marked); ValueError when unparsable"""
        pass

    @abstractmethod
    def install_args(self,
                     specs: Sequence[str],
                     extra_args: Sequence[str] = (),
                     ignore_lockfile: bool = False) -> List[str]:
        """Arguments installing exact ``name@version`` specs as production deps"""
        pass

    async def get_prod_dependencies(self, cwd: Path, depth: int = DEFAULT_DEPENDENCY_DEPTH) -> DependencyMap:
        """
        Production dependency tree of the project in ``cwd``

        A non-zero exit with parsable output is tolerated (npm exits 1 on
        peer dependency problems but still prints the tree).

        Raises:
            DependencyTreeUnavailableError: Lockfile missing or output unparsable
        """
        cwd = Path(cwd)
        lockfile = cwd / self.lockfile_name
        if not lockfile.exists():
            raise DependencyTreeUnavailableError(f"{self.lockfile_name} not found in {cwd}")

        try:
            result = await spawn_process(self.command, self.list_args(depth), cwd=cwd, check=False)
        except SpawnError as e:
            raise DependencyTreeUnavailableError(f"Cannot run {self.command}: {e}") from e

        try:
            tree = self.parse_dependency_tree(result.stdout)
        except ValueError as e:
            raise DependencyTreeUnavailableError(
                f"{self.name} returned an unreadable dependency listing "
                f"(exit code {result.exit_code}): {result.stderr.strip() or e}"
            ) from e

        if result.exit_code != 0:
            self.logger.warning(f"{self.name} ls exited with {result.exit_code}: {result.stderr.strip()}")

        self.logger.debug(f"{self.name} reported {len(tree)} top-level dependencies")
        return tree

    async def install(self,
                      cwd: Path,
                      dependencies: Dict[str, str],
                      extra_args: Sequence[str] = (),
                      ignore_lockfile: bool = False) -> None:
        """
        Install pinned production dependencies into ``cwd/node_modules``

        Args:
            cwd: Staging directory (created if missing)
            dependencies: name -> exact version
            extra_args: Extra packager arguments
            ignore_lockfile: Do not write a lockfile

        Raises:
            PackagerError: Install failed
        """
        if not dependencies:
            return

        cwd = Path(cwd)
        cwd.mkdir(parents=True, exist_ok=True)
        write_package_json(cwd, {})

        specs = [f"{name}@{version}" for name, version in dependencies.items()]
        self.logger.info(f"Installing {len(specs)} package(s) with {self.name} into {cwd}")

        try:
            await spawn_process(self.command, self.install_args(specs, extra_args, ignore_lockfile), cwd=cwd)
        except SpawnError as e:
            raise PackagerError.from_spawn_error(self.name, e) from e

    async def run_scripts(self, cwd: Path, scripts: Sequence[str]) -> None:
        """Run shell scripts in order in the staging directory"""
        for script in scripts:
            try:
                await spawn_shell(script, cwd=cwd)
            except SpawnError as e:
                raise PackagerError.from_spawn_error(self.name, e) from e


def staging_package_name(directory: Path) -> str:
    """Valid package name derived from a staging directory name"""
    return _INVALID_NAME_CHARS.sub("-", directory.name.lower()).strip("-.") or "function"


def write_package_json(directory: Path, dependencies: Dict[str, str]) -> Path:
    """Write the minimal package.json a package manager needs to install into"""
    path = directory / "package.json"
    data: Dict[str, Any] = {
        "name": staging_package_name(directory),
        "version": "0.0.0",
        "private": True,
        "dependencies": dependencies,
    }
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def load_json(output: str) -> Any:
    """json.loads raising ValueError on empty output"""
    output = output.strip()
    if not output:
        raise ValueError("empty output")
    return json.loads(output)
