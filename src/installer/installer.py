"""Installer: idempotent, lock-serialized, atomically published installs.

Every install builds into ``installs/<tool>/.staging/<version>.<pid>.<token>``
and becomes visible through one ``os.rename`` onto the canonical directory,
so an interrupted or failed build never leaves something that resolves as
installed. Installs of one (tool, version) are serialized by a lock file; a
waiter that finds the version published returns it, and one that finds a
failure recorded while it waited reports that failure instead of rebuilding.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from common.locks import FileLock, pid_alive
from constants import Constants
from errors import InstallFailed, NotInstalled, PluginNotFound
from plugins.base import InstallContext
from versioning.models import InstalledVersion
from versioning.parser import split_install_type
from .default_packages import apply_default_packages, read_manifest
from .layout import installed_tools, marker_path, read_install

logger = logging.getLogger(__name__)


class InstallState(Enum):
    """States of a single install attempt."""
    REQUESTED = "requested"
    STAGING = "staging"
    HOOK_RUNNING = "hook_running"
    DEFAULT_PACKAGES = "default_packages_installing"
    PUBLISHED = "published"
    FAILED = "failed"
    HOOK_FAILED = "hook_failed"


_TERMINAL = (InstallState.PUBLISHED, InstallState.FAILED, InstallState.HOOK_FAILED)


@dataclass
class InstallAttempt:
    """Bookkeeping for one install attempt."""
    tool: str
    version: str
    state: InstallState = InstallState.REQUESTED
    history: List[InstallState] = field(default_factory=lambda: [InstallState.REQUESTED])

    def transition(self, state: InstallState) -> None:
        if self.state in _TERMINAL:
            raise RuntimeError(f"install of {self.tool}@{self.version} already {self.state.value}")
        logger.debug("%s@%s: %s -> %s", self.tool, self.version, self.state.value, state.value)
        self.state = state
        self.history.append(state)


@dataclass
class CleanupReport:
    staging_removed: List[str] = field(default_factory=list)
    locks_removed: List[str] = field(default_factory=list)
    downloads_removed: List[str] = field(default_factory=list)


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _staging_owner(name: str) -> Tuple[Optional[str], Optional[int]]:
    """``20.0.0.1234.ab12cd34`` -> (``20.0.0``, 1234)."""
    parts = name.rsplit(".", 2)
    if len(parts) != 3:
        return None, None
    try:
        return parts[0], int(parts[1])
    except ValueError:
        return parts[0], None


class Installer:
    """Owns ``installs/``, ``downloads/`` and ``locks/`` under the data root."""

    def __init__(self, settings, registry):
        self.settings = settings
        self.registry = registry

    # Paths

    def lock_path(self, tool: str, version: str) -> str:
        return os.path.join(self.settings.locks_dir, tool, f"{version}.lock")

    def failure_path(self, tool: str, version: str) -> str:
        return os.path.join(self.settings.locks_dir, tool, f"{version}.failed")

    def staging_root(self, tool: str) -> str:
        return os.path.join(self.settings.installs_dir, tool, Constants.STAGING_DIR)

    def _new_staging_path(self, tool: str, version: str) -> str:
        return os.path.join(
            self.staging_root(tool), f"{version}.{os.getpid()}.{uuid.uuid4().hex[:8]}"
        )

    def _lock(self, tool: str, version: str) -> FileLock:
        return FileLock(self.lock_path(tool, version), timeout=self.settings.lock_timeout)

    # Queries

    def is_installed(self, tool: str, version: str) -> bool:
        return os.path.isfile(marker_path(self.settings.install_path(tool, version)))

    def get(self, tool: str, version: str) -> Optional[InstalledVersion]:
        return read_install(self.settings, tool, version)

    # Failure records

    def _read_failure(self, tool: str, version: str) -> Optional[Dict]:
        try:
            with open(self.failure_path(tool, version), "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _write_failure(self, tool: str, version: str, step: str, reason: str) -> None:
        path = self.failure_path(tool, version)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"at": time.time(), "step": step, "reason": reason, "pid": os.getpid()}, f)

    def _clear_failure(self, tool: str, version: str) -> None:
        try:
            os.unlink(self.failure_path(tool, version))
        except FileNotFoundError:
            pass

    # Install

    def ensure_installed(self, tool: str, version: str) -> InstalledVersion:
        """Make ``version`` of ``tool`` present on disk and return it.

        A published install is returned without any build work.

        Raises:
            PluginNotFound: ``tool`` has no plugin.
            InstallFailed: this attempt, or the one this call waited on, failed.
            LockTimeout: another process held the version lock too long.
        """
        existing = read_install(self.settings, tool, version)
        if existing is not None:
            logger.debug("%s@%s is already installed", tool, version)
            return existing
        plugin = self.registry.get(tool)
        lock = self._lock(tool, version)
        with lock:
            existing = read_install(self.settings, tool, version)
            if existing is not None:
                logger.info("%s@%s was installed by another process", tool, version)
                return existing
            failure = self._read_failure(tool, version)
            if failure and lock.wait_started is not None and float(failure.get("at", 0)) >= lock.wait_started:
                raise InstallFailed(
                    tool, version, str(failure.get("step", "install")), str(failure.get("reason", "unknown"))
                )
            return self._install_locked(plugin, tool, version)

    def _remove_orphans(self, tool: str, version: Optional[str] = None) -> List[str]:
        root = self.staging_root(tool)
        if not os.path.isdir(root):
            return []
        removed = []
        for name in os.listdir(root):
            owner_version, pid = _staging_owner(name)
            if version is not None and owner_version != version:
                continue
            if pid is not None and pid_alive(pid):
                continue
            path = os.path.join(root, name)
            logger.info("Removing orphaned staging directory %s", path)
            shutil.rmtree(path, ignore_errors=True)
            removed.append(path)
        return removed

    def _fail(self, attempt: InstallAttempt, state: InstallState, step: str, error: Exception, staging: str) -> InstallFailed:
        attempt.transition(state)
        reason = str(error) or type(error).__name__
        self._write_failure(attempt.tool, attempt.version, step, reason)
        if self.settings.always_keep_staging:
            logger.info("Keeping failed staging directory %s", staging)
        else:
            shutil.rmtree(staging, ignore_errors=True)
        return InstallFailed(attempt.tool, attempt.version, step, reason)

    def _install_locked(self, plugin, tool: str, version: str) -> InstalledVersion:
        attempt = InstallAttempt(tool, version)
        self._remove_orphans(tool, version)
        staging = self._new_staging_path(tool, version)
        download = self.settings.download_path(tool, version)
        install_type, plugin_version = split_install_type(version)
        ctx = InstallContext(
            tool=tool,
            version=plugin_version,
            install_type=install_type,
            install_path=staging,
            download_path=download,
            concurrency=self.settings.jobs,
        )
        logger.info("Installing %s@%s", tool, version)

        attempt.transition(InstallState.STAGING)
        try:
            os.makedirs(staging)
            os.makedirs(download, exist_ok=True)
            plugin.download(ctx)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise self._fail(attempt, InstallState.FAILED, "download", e, staging) from e

        attempt.transition(InstallState.HOOK_RUNNING)
        try:
            plugin.install_version(ctx)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise self._fail(attempt, InstallState.HOOK_FAILED, "install", e, staging) from e

        staged = InstalledVersion(tool=tool, version=version, path=staging)
        statuses: Dict[str, str] = {}
        warnings: List[Warning] = []
        manifest = self.settings.default_packages_file(tool)
        packages = read_manifest(manifest) if manifest else []
        if packages:
            attempt.transition(InstallState.DEFAULT_PACKAGES)
            statuses, package_warnings = apply_default_packages(plugin, staged, packages)
            warnings.extend(package_warnings)

        try:
            self._publish(tool, version, staging, statuses)
        except OSError as e:
            raise self._fail(attempt, InstallState.FAILED, "publish", e, staging) from e
        attempt.transition(InstallState.PUBLISHED)
        self._clear_failure(tool, version)
        if not self.settings.always_keep_download:
            shutil.rmtree(download, ignore_errors=True)
        logger.info("Installed %s@%s", tool, version)

        installed = read_install(self.settings, tool, version)
        installed.warnings = warnings
        return installed

    def _publish(self, tool: str, version: str, staging: str, statuses: Dict[str, str]) -> None:
        marker = {
            "tool": tool,
            "version": version,
            "installed_at": _now_iso(),
            "default_packages": statuses,
        }
        with open(marker_path(staging), "w", encoding="utf-8") as f:
            json.dump(marker, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        canonical = self.settings.install_path(tool, version)
        if os.path.lexists(canonical):
            # Only an unmarked leftover can be here; the lock excludes real installs.
            trash = self._new_staging_path(tool, version)
            os.rename(canonical, trash)
            shutil.rmtree(trash, ignore_errors=True)
        os.rename(staging, canonical)

    # Uninstall / cleanup

    def uninstall(self, tool: str, version: str) -> None:
        """Remove a published install under the version lock.

        Raises:
            NotInstalled: nothing is published for (tool, version).
        """
        with self._lock(tool, version):
            installed = read_install(self.settings, tool, version)
            if installed is None:
                raise NotInstalled(tool, version)
            try:
                plugin = self.registry.get(tool)
            except PluginNotFound:
                plugin = None
            if plugin is not None:
                plugin.uninstall_version(installed)
            trash = self._new_staging_path(tool, version)
            os.makedirs(os.path.dirname(trash), exist_ok=True)
            os.rename(installed.path, trash)
            shutil.rmtree(trash, ignore_errors=True)
            self._clear_failure(tool, version)
        logger.info("Uninstalled %s@%s", tool, version)

    def cleanup(self) -> CleanupReport:
        """Remove orphaned staging dirs, stale locks and leftover downloads."""
        report = CleanupReport()
        for tool in installed_tools(self.settings):
            report.staging_removed.extend(self._remove_orphans(tool))
        if os.path.isdir(self.settings.locks_dir):
            for tool in os.listdir(self.settings.locks_dir):
                tool_dir = os.path.join(self.settings.locks_dir, tool)
                if not os.path.isdir(tool_dir):
                    continue
                for name in os.listdir(tool_dir):
                    if not name.endswith(".lock"):
                        continue
                    path = os.path.join(tool_dir, name)
                    lock = FileLock(path, timeout=0)
                    if not lock.try_acquire():
                        continue
                    lock.release()
                    report.locks_removed.append(path)
        if os.path.isdir(self.settings.downloads_dir) and not self.settings.always_keep_download:
            for tool in os.listdir(self.settings.downloads_dir):
                tool_dir = os.path.join(self.settings.downloads_dir, tool)
                if not os.path.isdir(tool_dir):
                    continue
                for version in os.listdir(tool_dir):
                    if os.path.exists(self.lock_path(tool, version)):
                        continue
                    path = os.path.join(tool_dir, version)
                    shutil.rmtree(path, ignore_errors=True)
                    report.downloads_removed.append(path)
        return report
