"""Exception definitions for bundle-tool API"""

from ..constants import ErrorCode


class BundleToolError(Exception):
    """Base exception for bundle-tool"""

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.error_code = error_code


class ConfigError(BundleToolError):
    """Configuration error"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIG_FORMAT_ERROR)


class EntryNotFoundError(BundleToolError):
    """No source entry could be resolved for a function"""

    def __init__(self, function_alias: str, message: str = None):
        if message is None:
            message = (
                f"Compilation failed for function alias {function_alias}. "
                f"Please ensure you have an index file with ext .ts or .js, "
                f"or have a path listed as main key in package.json"
            )
        super().__init__(message, ErrorCode.ENTRY_NOT_FOUND)
        self.function_alias = function_alias


class BundleError(BundleToolError):
    """Bundler invocation failed for one entry"""

    def __init__(self, entry: str, cause: BaseException = None, message: str = None):
        if message is None:
            message = f"Bundling failed for {entry}: {cause}"
        super().__init__(message, ErrorCode.BUNDLE_FAILED)
        self.entry = entry
        self.cause = cause


class DependencyTreeUnavailableError(BundleToolError):
    """Package manager could not report a dependency tree"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.DEPENDENCY_TREE_UNAVAILABLE)


class DependencyConflictError(BundleToolError):
    """Same package required at different versions (strict mode)"""

    def __init__(self, name: str, kept: str, requested: str):
        message = f"Dependency conflict for {name}: {kept} already resolved, {requested} requested"
        super().__init__(message, ErrorCode.DEPENDENCY_CONFLICT)
        self.name = name
        self.kept = kept
        self.requested = requested


class SpawnError(BundleToolError):
    """External process exited with a non-zero code"""

    def __init__(self, message: str, exit_code: int = None, stdout: str = "", stderr: str = ""):
        super().__init__(message, ErrorCode.PROCESS_FAILED)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self):
        if self.stderr:
            return f"{self.args[0]}\n{self.stderr}"
        return self.args[0]


class PackagerError(BundleToolError):
    """Package manager install failed"""

    def __init__(self, message: str, exit_code: int = None, stdout: str = "", stderr: str = ""):
        super().__init__(message, ErrorCode.PACKAGER_FAILED)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    @classmethod
    def from_spawn_error(cls, packager: str, error: SpawnError) -> 'PackagerError':
        return cls(
            f"{packager} failed with exit code {error.exit_code}: {error.stderr.strip() or error.stdout.strip()}",
            exit_code=error.exit_code,
            stdout=error.stdout,
            stderr=error.stderr,
        )


class ArchiveError(BundleToolError):
    """Archive creation failed"""

    def __init__(self, path: str, cause: BaseException = None):
        super().__init__(f"Failed to create archive {path}: {cause}", ErrorCode.ARCHIVE_FAILED)
        self.path = path
        self.cause = cause


class PluginError(BundleToolError):
    """Plugin source could not be loaded"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.PLUGIN_ERROR)
