"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FAILURE = 1
    USAGE_ERROR = 2
    EXIT_WARNINGS = 3
    LOCK_TIMEOUT = 4
    EXEC_ERROR = 126
    COMMAND_NOT_FOUND = 127
    INTERRUPTED = 130


class MissingRuntimeBehavior(Enum):
    """What shim/exec dispatch does when the resolved version is not installed.

    Args:
        Enum (string): Behavior names as accepted in config.yml and the environment.
    """

    ERROR = "error"
    AUTOINSTALL = "autoinstall"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PROG = "toolpin"
    ENV_PREFIX = "TOOLPIN_"

    # Environment variables
    ENV_DATA_DIR = "TOOLPIN_DATA_DIR"
    ENV_CONFIG_DIR = "TOOLPIN_CONFIG_DIR"
    ENV_LOG_LEVEL = "TOOLPIN_LOG_LEVEL"
    ENV_DEBUG = "TOOLPIN_DEBUG"
    ENV_EXPERIMENTAL = "TOOLPIN_EXPERIMENTAL"
    ENV_MISSING_RUNTIME_BEHAVIOR = "TOOLPIN_MISSING_RUNTIME_BEHAVIOR"
    ENV_LOCK_TIMEOUT = "TOOLPIN_LOCK_TIMEOUT"
    ENV_REMOTE_CACHE_TTL = "TOOLPIN_REMOTE_CACHE_TTL"
    ENV_LEGACY_VERSION_FILE = "TOOLPIN_LEGACY_VERSION_FILE"
    ENV_ALWAYS_KEEP_DOWNLOAD = "TOOLPIN_ALWAYS_KEEP_DOWNLOAD"
    ENV_ALWAYS_KEEP_STAGING = "TOOLPIN_ALWAYS_KEEP_STAGING"
    ENV_JOBS = "TOOLPIN_JOBS"
    ENV_VERBOSE = "TOOLPIN_VERBOSE"
    ENV_TOOL_VERSIONS_FILENAME = "TOOLPIN_DEFAULT_TOOL_VERSIONS_FILENAME"
    ENV_GLOBAL_TOOL_VERSIONS = "TOOLPIN_GLOBAL_TOOL_VERSIONS"
    # Per-tool templates, formatted with the tool's env key (see tool_env_key)
    ENV_TOOL_VERSION_TEMPLATE = "TOOLPIN_{tool}_VERSION"
    ENV_DEFAULT_PACKAGES_TEMPLATE = "TOOLPIN_{tool}_DEFAULT_PACKAGES_FILE"

    # Files and directories
    TOOL_VERSIONS_FILE = ".tool-versions"
    GLOBAL_TOOL_VERSIONS_FILE = "tool-versions"
    CONFIG_FILE = "config.yml"
    PLUGIN_META_FILE = "plugin.yml"
    INSTALL_MARKER = ".toolpin-install.json"
    STAGING_DIR = ".staging"
    PLUGINS_DIR = "plugins"
    INSTALLS_DIR = "installs"
    SHIMS_DIR = "shims"
    CACHE_DIR = "cache"
    DOWNLOADS_DIR = "downloads"
    LOCKS_DIR = "locks"

    # Tunables
    DEFAULT_LOCK_TIMEOUT_SEC = 600
    LOCK_POLL_INTERVAL_SEC = 0.1
    DEFAULT_REMOTE_CACHE_TTL_SEC = 86400
    # hook listings are also revalidated against the stamps of the files they came from
    LISTING_CACHE_TTL_SEC = 7 * 86400
    LISTINGS_CACHE_DIR = "listings"
    DEFAULT_JOBS = 4
    SCRIPT_TIMEOUT_SEC = 300

    # Logging
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

    # HTTP
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    DOWNLOAD_CHUNK_SIZE = 1024 * 64

    # Node.js core plugin
    NODE_DIST_URL = "https://nodejs.org/dist/"
    NODE_INDEX_URL = "https://nodejs.org/dist/index.json"

    TRUTHY = ("1", "true", "yes", "on")


def tool_env_key(tool: str) -> str:
    """Return the environment-variable form of a tool name (``node-lts`` -> ``NODE_LTS``)."""
    return tool.upper().replace("-", "_").replace(".", "_")
