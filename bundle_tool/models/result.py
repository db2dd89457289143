"""Build result models"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import FunctionStatus


@dataclass
class FunctionArtifact:
    """Outcome of one function's bundle, package and archive pipeline"""

    function_alias: str
    status: FunctionStatus
    archive_path: Optional[Path] = None
    bundle_path: Optional[Path] = None
    size: Optional[int] = None
    duration: float = 0.0
    dependencies: Dict[str, str] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def is_success(self) -> bool:
        """Check if the function was packaged"""
        return self.status == FunctionStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "function": self.function_alias,
            "status": self.status.value,
            "archive_path": str(self.archive_path) if self.archive_path else None,
            "bundle_path": str(self.bundle_path) if self.bundle_path else None,
            "size": self.size,
            "duration": self.duration,
            "dependencies": dict(self.dependencies),
            "error": str(self.error) if self.error else None,
        }


@dataclass
class BuildReport:
    """Result of one coordinator build"""

    results: List[FunctionArtifact] = field(default_factory=list)
    duration: float = 0.0

    @property
    def artifacts(self) -> Dict[str, Path]:
        """Function alias to final archive path, for successful functions"""
        return {r.function_alias: r.archive_path for r in self.results if r.is_success}

    @property
    def failures(self) -> Dict[str, BaseException]:
        """Function alias to the error that stopped its pipeline"""
        return {r.function_alias: r.error for r in self.results if r.status == FunctionStatus.FAILED}

    @property
    def success(self) -> bool:
        """Check if every function was packaged"""
        return not self.failures

    def get(self, function_alias: str) -> Optional[FunctionArtifact]:
        """Look up the result of one function"""
        for result in self.results:
            if result.function_alias == function_alias:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "success": self.success,
            "duration": self.duration,
            "functions": [r.to_dict() for r in self.results],
        }
