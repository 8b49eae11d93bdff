"""Runtime settings: defaults, then config.yml, then TOOLPIN_* environment.

CLI flags are layered on top by ``cli_config.apply_cli_overrides``. Settings
also own every on-disk location so the rest of the code never joins paths
against the data root by hand.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import yaml

from constants import Constants, MissingRuntimeBehavior, tool_env_key
from errors import ConfigError

logger = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in Constants.TRUTHY


def _as_int(key: str, value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _as_behavior(value: Any) -> MissingRuntimeBehavior:
    try:
        return MissingRuntimeBehavior(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(b.value for b in MissingRuntimeBehavior)
        raise ConfigError(
            f"missing_runtime_behavior must be one of {allowed}, got {value!r}"
        ) from exc


def default_data_dir(env: Mapping[str, str]) -> str:
    if env.get(Constants.ENV_DATA_DIR):
        return os.path.abspath(os.path.expanduser(env[Constants.ENV_DATA_DIR]))
    base = env.get("XDG_DATA_HOME") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return os.path.join(base, Constants.PROG)


def default_config_dir(env: Mapping[str, str]) -> str:
    if env.get(Constants.ENV_CONFIG_DIR):
        return os.path.abspath(os.path.expanduser(env[Constants.ENV_CONFIG_DIR]))
    base = env.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, Constants.PROG)


def load_config_file(path: str) -> Dict[str, Any]:
    """Load config.yml. A missing file is empty; a malformed one warns and is ignored."""
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", path)
        return {}
    return data


@dataclass
class Settings:  # pylint: disable=too-many-instance-attributes
    """Effective configuration for one toolpin invocation."""

    data_dir: str
    config_dir: str
    experimental: bool = False
    missing_runtime_behavior: MissingRuntimeBehavior = MissingRuntimeBehavior.ERROR
    lock_timeout: int = Constants.DEFAULT_LOCK_TIMEOUT_SEC
    remote_cache_ttl: int = Constants.DEFAULT_REMOTE_CACHE_TTL_SEC
    legacy_version_file: bool = True
    always_keep_download: bool = False
    always_keep_staging: bool = False
    jobs: int = Constants.DEFAULT_JOBS
    verbose: bool = False
    tool_versions_filename: str = Constants.TOOL_VERSIONS_FILE
    global_tool_versions_path: Optional[str] = None
    aliases: Dict[str, Dict[str, str]] = field(default_factory=dict)
    default_packages_files: Dict[str, str] = field(default_factory=dict)
    plugin_sources: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from config.yml and the given environment (os.environ by default).

        Raises:
            ConfigError: a recognised key holds an invalid value.
        """
        env = dict(os.environ if env is None else env)
        settings = cls(data_dir=default_data_dir(env), config_dir=default_config_dir(env), env=env)
        settings._apply_mapping(load_config_file(settings.config_file))
        settings._apply_env(env)
        return settings

    def _apply_mapping(self, data: Mapping[str, Any]) -> None:
        if "experimental" in data:
            self.experimental = _as_bool(data["experimental"])
        if "missing_runtime_behavior" in data:
            self.missing_runtime_behavior = _as_behavior(data["missing_runtime_behavior"])
        if "lock_timeout" in data:
            self.lock_timeout = _as_int("lock_timeout", data["lock_timeout"])
        if "remote_cache_ttl" in data:
            self.remote_cache_ttl = _as_int("remote_cache_ttl", data["remote_cache_ttl"])
        if "legacy_version_file" in data:
            self.legacy_version_file = _as_bool(data["legacy_version_file"])
        if "always_keep_download" in data:
            self.always_keep_download = _as_bool(data["always_keep_download"])
        if "always_keep_staging" in data:
            self.always_keep_staging = _as_bool(data["always_keep_staging"])
        if "jobs" in data:
            self.jobs = max(1, _as_int("jobs", data["jobs"]))
        if "verbose" in data:
            self.verbose = _as_bool(data["verbose"])
        for key, target in (
            ("aliases", self.aliases),
            ("default_packages_files", self.default_packages_files),
            ("plugin_sources", self.plugin_sources),
        ):
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, dict):
                logger.warning("Ignoring config key %s: expected a mapping", key)
                continue
            if key == "aliases":
                for tool, mapping in value.items():
                    if isinstance(mapping, dict):
                        target[str(tool)] = {str(k): str(v) for k, v in mapping.items()}
            else:
                target.update({str(k): str(v) for k, v in value.items()})

    def _apply_env(self, env: Mapping[str, str]) -> None:
        simple = {
            Constants.ENV_EXPERIMENTAL: "experimental",
            Constants.ENV_MISSING_RUNTIME_BEHAVIOR: "missing_runtime_behavior",
            Constants.ENV_LOCK_TIMEOUT: "lock_timeout",
            Constants.ENV_REMOTE_CACHE_TTL: "remote_cache_ttl",
            Constants.ENV_LEGACY_VERSION_FILE: "legacy_version_file",
            Constants.ENV_ALWAYS_KEEP_DOWNLOAD: "always_keep_download",
            Constants.ENV_ALWAYS_KEEP_STAGING: "always_keep_staging",
            Constants.ENV_JOBS: "jobs",
            Constants.ENV_VERBOSE: "verbose",
        }
        self._apply_mapping({key: env[var] for var, key in simple.items() if env.get(var)})
        if env.get(Constants.ENV_TOOL_VERSIONS_FILENAME):
            self.tool_versions_filename = env[Constants.ENV_TOOL_VERSIONS_FILENAME]
        if env.get(Constants.ENV_GLOBAL_TOOL_VERSIONS):
            self.global_tool_versions_path = os.path.abspath(
                os.path.expanduser(env[Constants.ENV_GLOBAL_TOOL_VERSIONS])
            )

    # Paths

    @property
    def config_file(self) -> str:
        return os.path.join(self.config_dir, Constants.CONFIG_FILE)

    @property
    def global_tool_versions(self) -> str:
        if self.global_tool_versions_path:
            return self.global_tool_versions_path
        return os.path.join(self.config_dir, Constants.GLOBAL_TOOL_VERSIONS_FILE)

    @property
    def plugins_dir(self) -> str:
        return os.path.join(self.data_dir, Constants.PLUGINS_DIR)

    @property
    def installs_dir(self) -> str:
        return os.path.join(self.data_dir, Constants.INSTALLS_DIR)

    @property
    def shims_dir(self) -> str:
        return os.path.join(self.data_dir, Constants.SHIMS_DIR)

    @property
    def cache_dir(self) -> str:
        return os.path.join(self.data_dir, Constants.CACHE_DIR)

    @property
    def downloads_dir(self) -> str:
        return os.path.join(self.data_dir, Constants.DOWNLOADS_DIR)

    @property
    def locks_dir(self) -> str:
        return os.path.join(self.data_dir, Constants.LOCKS_DIR)

    def plugin_path(self, tool: str) -> str:
        return os.path.join(self.plugins_dir, tool)

    def install_path(self, tool: str, version: str) -> str:
        return os.path.join(self.installs_dir, tool, version)

    def download_path(self, tool: str, version: str) -> str:
        return os.path.join(self.downloads_dir, tool, version)

    def default_packages_file(self, tool: str) -> Optional[str]:
        """Manifest path from TOOLPIN_<TOOL>_DEFAULT_PACKAGES_FILE, else config; None when neither is set."""
        var = Constants.ENV_DEFAULT_PACKAGES_TEMPLATE.format(tool=tool_env_key(tool))
        if self.env.get(var):
            return os.path.expanduser(self.env[var])
        if self.default_packages_files.get(tool):
            return os.path.expanduser(self.default_packages_files[tool])
        return None
