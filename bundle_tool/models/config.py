"""Configuration data models"""

import re
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..api.exceptions import ConfigError
from ..constants import (
    DEFAULT_ARCHIVE_EXTENSION,
    DEFAULT_ARTIFACT_FOLDER,
    DEFAULT_BUILD_FOLDER,
    DEFAULT_BUNDLER_COMMAND,
    DEFAULT_BUNDLER_OPTIONS,
    DEFAULT_EXCLUDE,
    DEFAULT_OUTPUT_EXTENSION,
    DEFAULT_RESOLVE_EXTENSIONS,
    DEFAULT_WATCH_IGNORE,
    DEFAULT_WATCH_INTERVAL,
    DEFAULT_WATCH_PATTERN,
    DEFAULT_WORK_FOLDER,
    SUPPORTED_OUTPUT_EXTENSIONS,
    PackagerId,
)

_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def snake_case(key: str) -> str:
    """Convert camelCase configuration keys to snake_case"""
    return _CAMEL_RE.sub('_', key).replace('-', '_').lower()


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert the top-level keys of a mapping to snake_case"""
    return {snake_case(k): v for k, v in (data or {}).items()}


def _as_list(value: Union[str, List[str], None]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _freeze(instance: Any, *names: str) -> None:
    """Store list fields as tuples and dict fields as read-only mappings"""
    for name in names:
        value = getattr(instance, name)
        if isinstance(value, (list, tuple)):
            object.__setattr__(instance, name, tuple(value))
        elif isinstance(value, Mapping):
            object.__setattr__(instance, name, MappingProxyType(dict(value)))


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, MappingProxyType):
        return dict(value)
    return value


@dataclass(frozen=True)
class PackagerOptions:
    """Options forwarded to the package manager"""

    scripts: Tuple[str, ...] = ()
    no_install: bool = False
    ignore_lockfile: bool = False

    def __post_init__(self):
        _freeze(self, "scripts")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "scripts": list(self.scripts),
            "no_install": self.no_install,
            "ignore_lockfile": self.ignore_lockfile,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PackagerOptions':
        """Create from dictionary"""
        data = normalize_keys(data or {})
        return cls(
            scripts=_as_list(data.get("scripts")),
            no_install=bool(data.get("no_install", False)),
            ignore_lockfile=bool(data.get("ignore_lockfile", False)),
        )


@dataclass(frozen=True)
class WatchConfiguration:
    """File patterns observed in watch mode"""

    pattern: Tuple[str, ...] = tuple(DEFAULT_WATCH_PATTERN)
    ignore: Tuple[str, ...] = tuple(DEFAULT_WATCH_IGNORE)
    interval: float = DEFAULT_WATCH_INTERVAL

    def __post_init__(self):
        _freeze(self, "pattern", "ignore")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {"pattern": list(self.pattern), "ignore": list(self.ignore), "interval": self.interval}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'WatchConfiguration':
        """Create from dictionary"""
        data = normalize_keys(data or {})
        return cls(
            pattern=_as_list(data.get("pattern")) or list(DEFAULT_WATCH_PATTERN),
            ignore=_as_list(data.get("ignore")) or list(DEFAULT_WATCH_IGNORE),
            interval=float(data.get("interval", DEFAULT_WATCH_INTERVAL)),
        )


@dataclass(frozen=True)
class NodeExternalsOptions:
    """Mark every root dependency external except the allow-list"""

    allow_list: Tuple[str, ...] = ()

    def __post_init__(self):
        _freeze(self, "allow_list")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {"allow_list": list(self.allow_list)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'NodeExternalsOptions':
        """Create from dictionary"""
        data = normalize_keys(data or {})
        return cls(allow_list=_as_list(data.get("allow_list")))


@dataclass(frozen=True)
class Configuration:
    """Build configuration, fixed for one build or watch session"""

    # Concurrency limits (None = unbounded)
    concurrency: Optional[int] = None
    zip_concurrency: Optional[int] = None

    # Packaging
    packager: Optional[str] = None
    packager_options: PackagerOptions = field(default_factory=PackagerOptions)
    package_path: str = "package.json"
    external: Tuple[str, ...] = ()
    exclude: Union[str, Tuple[str, ...]] = tuple(DEFAULT_EXCLUDE)
    install_extra_args: Tuple[str, ...] = ()
    node_externals: Optional[NodeExternalsOptions] = None

    # Archive
    native_zip: bool = False
    archive_extension: str = DEFAULT_ARCHIVE_EXTENSION

    # Layout
    keep_output_directory: bool = False
    output_work_folder: str = DEFAULT_WORK_FOLDER
    output_build_folder: str = DEFAULT_BUILD_FOLDER
    output_artifact_folder: str = DEFAULT_ARTIFACT_FOLDER
    output_file_extension: str = DEFAULT_OUTPUT_EXTENSION

    # Build behaviour
    watch: WatchConfiguration = field(default_factory=WatchConfiguration)
    plugins: Optional[str] = None
    skip_build: bool = False
    skip_rebuild: bool = False
    skip_build_exclude_fns: Tuple[str, ...] = ()
    strip_entry_resolve_extensions: bool = False
    dispose_context: bool = True
    incremental: bool = False

    # Failure policy
    strict: bool = False
    strict_dependencies: bool = False
    allow_partial_bundle: bool = False

    # Bundler
    bundler_command: str = DEFAULT_BUNDLER_COMMAND
    bundler_options: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULT_BUNDLER_OPTIONS))

    def __post_init__(self):
        """Validate configuration"""
        _freeze(self, "external", "install_extra_args", "skip_build_exclude_fns", "bundler_options")
        if not isinstance(self.exclude, str):
            _freeze(self, "exclude")

        for name in ("concurrency", "zip_concurrency"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or value < 1):
                raise ConfigError(f"'{name}' must be a positive integer, got {value!r}")

        if self.packager is not None:
            try:
                PackagerId(self.packager)
            except ValueError:
                supported = ", ".join(p.value for p in PackagerId)
                raise ConfigError(f"Unsupported packager '{self.packager}' (expected one of: {supported})")

        if self.output_file_extension not in SUPPORTED_OUTPUT_EXTENSIONS:
            raise ConfigError(
                f"'output_file_extension' must be one of {', '.join(SUPPORTED_OUTPUT_EXTENSIONS)}"
            )

        if isinstance(self.exclude, str) and self.exclude != '*':
            raise ConfigError("'exclude' must be '*' or a list of package names")

    @property
    def excludes_all(self) -> bool:
        """All dependencies stay external and nothing is installed"""
        return self.exclude == '*'

    @property
    def excluded_packages(self) -> List[str]:
        """Packages kept external but never installed"""
        return [] if self.excludes_all else list(self.exclude)

    @property
    def resolve_extensions(self) -> List[str]:
        """Extensions probed when resolving a handler to a file"""
        return _as_list(self.bundler_options.get("resolve_extensions")) or list(DEFAULT_RESOLVE_EXTENSIONS)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if hasattr(value, "to_dict"):
                value = value.to_dict()
            data[f.name] = _thaw(value)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Configuration':
        """
        Create from a configuration section

        Keys may be camelCase or snake_case. Keys that are not configuration
        fields are passed through to the bundler.
        """
        data = normalize_keys(data or {})
        known = {f.name for f in fields(cls)}

        bundler_options = dict(DEFAULT_BUNDLER_OPTIONS)
        bundler_options.update(normalize_keys(data.pop("bundler_options", None) or {}))
        for key in list(data):
            if key not in known:
                bundler_options[key] = data.pop(key)

        kwargs: Dict[str, Any] = {k: v for k, v in data.items() if v is not None}
        kwargs["bundler_options"] = bundler_options

        if "packager_options" in kwargs:
            kwargs["packager_options"] = PackagerOptions.from_dict(kwargs["packager_options"])
        if "watch" in kwargs:
            kwargs["watch"] = WatchConfiguration.from_dict(kwargs["watch"])
        if "node_externals" in kwargs:
            node_externals = kwargs["node_externals"]
            if node_externals is False:
                kwargs["node_externals"] = None
            else:
                kwargs["node_externals"] = NodeExternalsOptions.from_dict(
                    node_externals if isinstance(node_externals, dict) else {}
                )
        for key in ("external", "install_extra_args", "skip_build_exclude_fns"):
            if key in kwargs:
                kwargs[key] = _as_list(kwargs[key])
        if "exclude" in kwargs and not isinstance(kwargs["exclude"], str):
            kwargs["exclude"] = _as_list(kwargs["exclude"])

        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}")
