"""Configuration loading service"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..api.exceptions import ConfigError
from ..constants import (
    CONFIG_SECTION,
    ENV_CONCURRENCY,
    ENV_CONFIG_PATH,
    ENV_PACKAGER,
    ENV_ZIP_CONCURRENCY,
    PROJECT_CONFIG_FILE,
)
from ..models import Configuration, FunctionDefinition
from ..models.config import normalize_keys
from ..utils.file_utils import find_up

logger = logging.getLogger(__name__)


@dataclass
class ProjectConfig:
    """Everything read from one project configuration file"""
    root: Path
    config: Configuration
    functions: Dict[str, FunctionDefinition] = field(default_factory=dict)
    service: Optional[str] = None
    provider: Optional[str] = None
    config_path: Optional[Path] = None


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def apply_overrides(config: Configuration, **overrides: Any) -> Configuration:
    """
    Copy of ``config`` with the given fields replaced

    ``None`` values are ignored so unset CLI options keep the file's value.
    """
    changes = {k: v for k, v in overrides.items() if v is not None}
    if not changes:
        return config
    try:
        return replace(config, **changes)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration override: {e}")


class ConfigService:
    """Loads ``.bundle-tool.yaml`` and applies environment overrides"""

    def __init__(self,
                 project_root: Optional[Path] = None,
                 config_path: Optional[Path] = None):
        """
        Initialize config service

        Args:
            project_root: Directory to start looking for the config file
            config_path: Explicit configuration file
        """
        self.project_root = Path(project_root or Path.cwd()).resolve()
        self.config_path = Path(config_path).resolve() if config_path else None
        self._project: Optional[ProjectConfig] = None

    @property
    def project(self) -> ProjectConfig:
        """Loaded project configuration (lazy load)"""
        if self._project is None:
            self.load()
        return self._project

    def find_config(self) -> Optional[Path]:
        """Configuration file to use: explicit, environment, or nearest upwards"""
        if self.config_path:
            return self.config_path
        env_path = os.environ.get(ENV_CONFIG_PATH)
        if env_path:
            return Path(env_path).resolve()
        return find_up([PROJECT_CONFIG_FILE], self.project_root)

    def read_file(self, path: Path) -> Dict[str, Any]:
        """Parse a YAML configuration file, expanding environment variables"""
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            content = os.path.expandvars(f.read())

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {path} must contain a mapping")
        return data

    def load(self) -> ProjectConfig:
        """
        Load the project configuration

        Without a configuration file the defaults apply and no functions
        are declared.

        Returns:
            ProjectConfig

        Raises:
            ConfigError: Unreadable file or invalid values
        """
        path = self.find_config()
        data: Dict[str, Any] = {}
        root = self.project_root

        if path is not None:
            logger.debug(f"Loading configuration from {path}")
            data = self.read_file(path)
            root = path.parent
        else:
            logger.debug(f"No {PROJECT_CONFIG_FILE} found, using defaults")

        section = normalize_keys(data.get(CONFIG_SECTION) or {})

        packager = os.environ.get(ENV_PACKAGER)
        if packager:
            section["packager"] = packager
        for env_name, key in ((ENV_CONCURRENCY, "concurrency"), (ENV_ZIP_CONCURRENCY, "zip_concurrency")):
            value = _env_int(env_name)
            if value is not None:
                section[key] = value

        config = Configuration.from_dict(section)

        functions_data = data.get("functions") or {}
        if not isinstance(functions_data, dict):
            raise ConfigError("'functions' must be a mapping of alias to definition")
        functions = {
            alias: FunctionDefinition.from_dict(alias, definition)
            for alias, definition in functions_data.items()
        }

        provider = data.get("provider")
        if isinstance(provider, dict):
            provider = provider.get("name")

        self._project = ProjectConfig(
            root=root,
            config=config,
            functions=functions,
            service=data.get("service"),
            provider=provider,
            config_path=path,
        )
        return self._project
