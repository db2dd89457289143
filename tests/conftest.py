from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from bundle_tool.constants import PackagerId
from bundle_tool.core.bundler import BuildContext, Bundler
from bundle_tool.core.packagers.base import Packager
from bundle_tool.models import BundlerResult, DependencyMap, dependency_map_from_dict


def write(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class FakeBundler(Bundler):
    """Copies the entry source to the outfile and reports it as the only input"""

    def __init__(self, cwd: Path, fail: Sequence[str] = (), delay: float = 0.0):
        self.cwd = Path(cwd)
        self.fail = set(fail)
        self.delay = delay
        self.builds: List[str] = []
        self.contexts: List[FakeContext] = []
        self.options: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, entry: str, outfile: Path, options: Dict[str, Any]) -> BundlerResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.builds.append(entry)
            self.options.append(options)
            if entry in self.fail:
                return BundlerResult(errors=[f"Could not resolve {entry}"])
            source = self.cwd / entry
            outfile.parent.mkdir(parents=True, exist_ok=True)
            outfile.write_text(source.read_text(encoding="utf-8"), encoding="utf-8")
            return BundlerResult(inputs=[str(source.resolve())], output_files=[str(outfile)])
        finally:
            self.in_flight -= 1

    async def build(self, entry: str, outfile: Path, options: Dict[str, Any]) -> BundlerResult:
        return await self.run(entry, outfile, options)

    async def context(self, entry: str, outfile: Path, options: Dict[str, Any]) -> "FakeContext":
        context = FakeContext(self, entry, outfile, options)
        self.contexts.append(context)
        return context


class FakeContext(BuildContext):
    def __init__(self, bundler: FakeBundler, entry: str, outfile: Path, options: Dict[str, Any]):
        self.bundler = bundler
        self.entry = entry
        self.outfile = outfile
        self.options = options
        self.rebuilds = 0
        self.dispose_calls = 0
        self.fail_dispose = False

    async def rebuild(self) -> BundlerResult:
        self.rebuilds += 1
        return await self.bundler.run(self.entry, self.outfile, self.options)

    async def watch(self) -> None:
        pass

    async def cancel(self) -> None:
        pass

    async def dispose(self) -> None:
        self.dispose_calls += 1
        if self.fail_dispose:
            raise RuntimeError(f"cannot dispose {self.entry}")


class FakePackager(Packager):
    """Serves a fixed tree and installs by writing stub packages"""

    packager_id = PackagerId.NPM

    def __init__(self, tree: Optional[Dict[str, Any]] = None, fail_install: bool = False):
        super().__init__()
        self.tree = dependency_map_from_dict(tree or {})
        self.fail_install = fail_install
        self.tree_requests = 0
        self.installs: List[Dict[str, str]] = []

    def list_args(self, depth: int) -> List[str]:
        return ["ls"]

    def parse_dependency_tree(self, output: str) -> DependencyMap:
        return self.tree

    def install_args(self, specs, extra_args=(), ignore_lockfile=False) -> List[str]:
        return ["install", *specs]

    async def get_prod_dependencies(self, cwd: Path, depth: int = 10) -> DependencyMap:
        self.tree_requests += 1
        return self.tree

    async def install(self, cwd: Path, dependencies: Dict[str, str], extra_args=(), ignore_lockfile=False) -> None:
        from bundle_tool.api.exceptions import PackagerError

        self.installs.append(dict(dependencies))
        if self.fail_install:
            raise PackagerError("npm failed with exit code 1: boom", exit_code=1, stderr="boom")
        for name, version in dependencies.items():
            package_dir = Path(cwd) / "node_modules" / name
            write(package_dir / "package.json", json.dumps({"name": name, "version": version}))
            write(package_dir / "index.js", f"module.exports = '{name}@{version}';\n")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Two handlers importing lodash, plus a lockfile"""
    write(tmp_path / "hello1.ts", "const _ = require('lodash');\nexport const handler = () => _.VERSION;\n")
    write(tmp_path / "hello2.ts", "import isEqual from 'lodash/isEqual';\nexport const handler = isEqual;\n")
    write(tmp_path / "package.json", json.dumps({"name": "demo", "dependencies": {"lodash": "^4.17.21"}}))
    write(tmp_path / "package-lock.json", "{}")
    return tmp_path
