"""Plugin capability interface.

A plugin adapts one tool name to toolpin: it lists versions and aliases,
builds a version into a staging directory, and describes where the built
binaries live and what environment they need.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from constants import Constants
from errors import PluginError
from versioning.cache import DiskCache
from versioning.models import InstalledVersion

logger = logging.getLogger(__name__)


def _mtime_stamp(paths: List[str]) -> str:
    parts = []
    for path in paths:
        try:
            st = os.stat(path)
            parts.append(f"{st.st_ino}.{st.st_mtime_ns}")
        except OSError:
            parts.append("-")
    return ":".join(parts)


@dataclass
class InstallContext:
    """What a plugin gets to build one version."""

    tool: str
    version: str
    install_type: str  # "version" | "ref"
    install_path: str  # staging directory; becomes the canonical dir on publish
    download_path: str
    concurrency: int = 1
    env: Dict[str, str] = field(default_factory=dict)


class Plugin(ABC):
    """Base class for script and core plugins."""

    def __init__(
        self,
        name: str,
        path: str,
        engine,
        cache: Optional[DiskCache] = None,
        settings=None,
        listings: Optional[DiskCache] = None,
    ):
        self.name = name
        self.path = path
        self.engine = engine
        # remote versions and aliases, expiring after remote_cache_ttl
        self.cache = cache
        # local hook output, valid while the files it was read from are unchanged
        self.listings = listings
        self.settings = settings

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def _cached(self, key: str, loader: Callable[[], object]):
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                return hit
        value = loader()
        if self.cache is not None and value:
            self.cache.set(key, value)
        return value

    def _plugin_files(self) -> List[str]:
        hooks = os.path.join(self.path, "bin")
        try:
            entries = sorted(os.listdir(hooks))
        except OSError:
            entries = []
        return [self.path, hooks] + [os.path.join(hooks, e) for e in entries]

    def _listing(self, key: str, sources: List[str], loader: Callable[[], object]):
        """``loader()`` memoized on disk until any file in ``sources`` changes."""
        stamp = _mtime_stamp(sources)
        if self.listings is not None:
            hit = self.listings.get(key)
            if isinstance(hit, dict) and hit.get("stamp") == stamp:
                return hit.get("value")
        value = loader()
        if self.listings is not None:
            self.listings.set(key, {"stamp": stamp, "value": value})
        return value

    @property
    def base_env(self) -> Dict[str, str]:
        if self.settings is not None:
            return dict(self.settings.env)
        return dict(os.environ)

    # Version listing

    @abstractmethod
    def list_remote_versions(self) -> List[str]:
        """All installable versions, oldest first."""

    def remote_versions(self) -> List[str]:
        """``list_remote_versions`` through the on-disk TTL cache."""
        return list(self._cached("remote-versions", self.list_remote_versions) or [])

    def get_aliases(self) -> Dict[str, str]:
        """Alias -> version map published by the plugin."""
        return {}

    def aliases(self) -> Dict[str, str]:
        return dict(self._cached("aliases", self.get_aliases) or {})

    def latest_stable_version(self) -> Optional[str]:
        return None

    # Legacy version files

    def legacy_filenames(self) -> List[str]:
        return []

    def legacy_names(self) -> List[str]:
        """``legacy_filenames`` cached against the plugin's files."""
        return list(self._listing("legacy-filenames", self._plugin_files(), self.legacy_filenames) or [])

    def parse_legacy_file(self, path: str, content: str) -> Optional[str]:
        """Version spec named by a legacy file, or None if it names nothing."""
        for line in content.splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                return line.split()[0]
        return None

    # Build

    def download(self, ctx: InstallContext) -> None:
        """Fetch sources/artifacts into ``ctx.download_path``. Optional."""

    @abstractmethod
    def install_version(self, ctx: InstallContext) -> None:
        """Build/extract into ``ctx.install_path``. Raise to fail the install."""

    def uninstall_version(self, install: InstalledVersion) -> None:
        """Plugin-specific teardown before the install directory is removed."""

    def install_default_package(self, install: InstalledVersion, package: str) -> None:
        """Install one default package into ``install``. Raise on failure."""
        raise PluginError(f"{self.name} plugin does not support default packages")

    # Runtime layout

    def list_bin_paths(self, install: InstalledVersion) -> List[str]:
        """Binary directories relative to the install root."""
        return ["bin"]

    def bin_paths(self, install: InstalledVersion) -> List[str]:
        """``list_bin_paths`` cached against the plugin and the install marker."""
        if install.external:
            return self.list_bin_paths(install)
        sources = self._plugin_files() + [os.path.join(install.path, Constants.INSTALL_MARKER)]
        key = f"bin-paths-{install.version}"
        return list(self._listing(key, sources, lambda: self.list_bin_paths(install)) or [])

    def bin_dirs(self, install: InstalledVersion) -> List[str]:
        if install.external:
            return [install.path]
        return [os.path.join(install.path, p) for p in self.bin_paths(install)]

    def locate_binary(self, install: InstalledVersion, cmd: str) -> Optional[str]:
        """Path of ``cmd`` inside the install's bin dirs, whether or not it is executable."""
        for directory in self.bin_dirs(install):
            candidate = os.path.join(directory, cmd)
            if os.path.isfile(candidate):
                return candidate
        return None

    def list_binaries(self, install: InstalledVersion) -> List[str]:
        """Executable names provided by ``install`` (what reshim creates shims for)."""
        names = []
        for directory in self.bin_dirs(install):
            if not os.path.isdir(directory):
                continue
            for entry in sorted(os.listdir(directory)):
                full = os.path.join(directory, entry)
                if os.path.isfile(full) and os.access(full, os.X_OK) and entry not in names:
                    names.append(entry)
        return names

    def exec_env(self, install: InstalledVersion) -> Dict[str, str]:
        """Extra environment for running binaries of ``install``."""
        return {}
