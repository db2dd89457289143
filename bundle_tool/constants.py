"""Global constants for bundle-tool"""

import time
from enum import Enum

APP_NAME = "bundle-tool"
LOG_FORMAT = "%(message)s"

# Project identification
PROJECT_CONFIG_FILE = ".bundle-tool.yaml"
CONFIG_SECTION = "bundle"

# Directory structure
DEFAULT_WORK_FOLDER = ".esbuild"
DEFAULT_BUILD_FOLDER = ".build"
DEFAULT_ARTIFACT_FOLDER = "artifacts"
STAGING_FOLDER = ".staging"
DEFAULT_ARCHIVE_EXTENSION = ".zip"
DEFAULT_OUTPUT_EXTENSION = ".js"
SUPPORTED_OUTPUT_EXTENSIONS = (".js", ".cjs", ".mjs")

# Entry resolution
DEFAULT_RESOLVE_EXTENSIONS = [".ts", ".js", ".jsx", ".tsx", ".mjs", ".cjs"]
GOOGLE_PROVIDER = "google"

# Packaging
DEFAULT_EXCLUDE = ["aws-sdk"]
DEFAULT_DEPENDENCY_DEPTH = 10
NODE_MODULES = "node_modules"
LOCKFILES = {
    "npm": "package-lock.json",
    "pnpm": "pnpm-lock.yaml",
    "yarn": "yarn.lock",
}

# Bundler
DEFAULT_BUNDLER_COMMAND = "esbuild"
DEFAULT_BUNDLER_OPTIONS = {
    "bundle": True,
    "platform": "node",
    "target": "node18",
    "minify": False,
    "sourcemap": False,
    "keep_names": False,
}

# Watch
DEFAULT_WATCH_PATTERN = ["**/*.js", "**/*.ts"]
DEFAULT_WATCH_IGNORE = [DEFAULT_WORK_FOLDER, "dist", NODE_MODULES, DEFAULT_BUILD_FOLDER]
DEFAULT_WATCH_INTERVAL = 0.5  # seconds

# Archive determinism: the earliest timestamp a zip entry can hold
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ZIP_EPOCH_TIMESTAMP = time.mktime(ZIP_EPOCH + (0, 0, -1))
NATIVE_ZIP_COMMAND = "zip"
PARTIAL_SUFFIX = ".partial"


class PackagerId(Enum):
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"


class FunctionStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"


# Error codes
class ErrorCode:
    CONFIG_FORMAT_ERROR = "BT001"
    ENTRY_NOT_FOUND = "BT002"
    BUNDLE_FAILED = "BT003"
    DEPENDENCY_TREE_UNAVAILABLE = "BT004"
    DEPENDENCY_CONFLICT = "BT005"
    PACKAGER_FAILED = "BT006"
    ARCHIVE_FAILED = "BT007"
    PROCESS_FAILED = "BT008"
    PLUGIN_ERROR = "BT009"


# Environment variables
ENV_CONFIG_PATH = "BUNDLE_TOOL_CONFIG"
ENV_LOG_LEVEL = "BUNDLE_TOOL_LOG_LEVEL"
ENV_CONCURRENCY = "BUNDLE_TOOL_CONCURRENCY"
ENV_ZIP_CONCURRENCY = "BUNDLE_TOOL_ZIP_CONCURRENCY"
ENV_PACKAGER = "BUNDLE_TOOL_PACKAGER"

# Display constants
EMOJI_SUCCESS = "✓"
EMOJI_ERROR = "✗"
EMOJI_PACKAGE = "📦"
