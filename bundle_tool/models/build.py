"""Function and bundle data models"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .config import normalize_keys

if TYPE_CHECKING:
    from ..core.bundler import BuildContext


@dataclass
class FunctionDefinition:
    """A deployable function as declared by the host framework"""

    name: str
    handler: Optional[str] = None
    skip_esbuild: bool = False
    esbuild_entrypoint: Optional[str] = None
    dispose_context: Optional[bool] = None
    package_patterns: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: Optional[Dict[str, Any]]) -> 'FunctionDefinition':
        """Create from a ``functions:`` entry"""
        data = normalize_keys(data or {})
        package = normalize_keys(data.get("package") or {})
        return cls(
            name=name,
            handler=data.get("handler"),
            skip_esbuild=bool(data.get("skip_esbuild", False)),
            esbuild_entrypoint=data.get("esbuild_entrypoint"),
            dispose_context=data.get("dispose_context"),
            package_patterns=list(package.get("patterns") or []),
        )


@dataclass(frozen=True)
class FunctionEntry:
    """Source entry resolved for one function"""
    entry: str
    func: Optional[FunctionDefinition]
    function_alias: Optional[str] = None


@dataclass
class BundlerResult:
    """Outcome reported by one bundler invocation"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    inputs: List[str] = field(default_factory=list)
    output_files: List[str] = field(default_factory=list)
    metafile: Optional[Dict[str, Any]] = None


@dataclass
class FileBuildResult:
    """Bundled output of one entry; ``context`` is set while incremental"""
    bundle_path: Path
    entry: str
    result: BundlerResult
    context: Optional['BuildContext'] = None
    fingerprint: Optional[str] = None


@dataclass(frozen=True)
class FunctionBuildResult:
    """Bundle location handed from the bundling phase to packaging"""
    func: Optional[FunctionDefinition]
    function_alias: str
    bundle_path: Path
