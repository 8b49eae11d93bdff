"""Core Node.js plugin backed by the nodejs.org dist index."""

from __future__ import annotations

import logging
import os
import platform
import tarfile
from typing import Dict, List, Optional

from common.http_client import download_file, get_json, robust_get
from constants import Constants
from errors import PluginError
from versioning.matching import is_prerelease, sort_key, sort_versions
from versioning.models import InstalledVersion
from .base import InstallContext, Plugin

logger = logging.getLogger(__name__)

_OS_NAMES = {"linux": "linux", "darwin": "darwin"}
_ARCH_NAMES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armv7l",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def node_platform() -> str:
    """``<os>-<arch>`` as used in nodejs.org tarball names."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    if system not in _OS_NAMES or machine not in _ARCH_NAMES:
        raise PluginError(f"no prebuilt Node.js for {system}/{machine}")
    return f"{_OS_NAMES[system]}-{_ARCH_NAMES[machine]}"


def _safe_members(tar: tarfile.TarFile):
    """Strip the top-level directory and refuse entries escaping the target."""
    for member in tar.getmembers():
        parts = member.name.split("/", 1)
        if len(parts) < 2 or not parts[1]:
            continue
        relative = parts[1]
        if relative.startswith("/") or ".." in relative.split("/"):
            raise PluginError(f"refusing unsafe path in archive: {member.name}")
        if member.islnk():
            link_parts = member.linkname.split("/", 1)
            member.linkname = link_parts[1] if len(link_parts) == 2 else member.linkname
        member.name = relative
        yield member


class NodePlugin(Plugin):
    """Installs official Node.js binary releases."""

    def _index(self) -> List[Dict]:
        def load():
            status, _, data = get_json(Constants.NODE_INDEX_URL)
            if status != 200 or not isinstance(data, list):
                raise PluginError(f"cannot fetch Node.js release index (status {status})")
            # Only the fields used below are cached
            return [{"version": e.get("version", ""), "lts": e.get("lts") or False} for e in data]
        return list(self._cached("index", load) or [])

    def list_remote_versions(self) -> List[str]:
        return sort_versions(e["version"].lstrip("v") for e in self._index() if e["version"])

    def get_aliases(self) -> Dict[str, str]:
        newest: Dict[str, str] = {}
        for entry in self._index():
            lts = entry.get("lts")
            version = entry["version"].lstrip("v")
            if not lts or not version:
                continue
            for alias in (f"lts/{str(lts).lower()}", "lts", "lts/*"):
                if alias not in newest or sort_key(version) > sort_key(newest[alias]):
                    newest[alias] = version
        return newest

    def latest_stable_version(self) -> Optional[str]:
        stable = [v for v in self.remote_versions() if not is_prerelease(v)]
        return stable[-1] if stable else None

    def legacy_filenames(self) -> List[str]:
        return [".nvmrc", ".node-version"]

    def parse_legacy_file(self, path: str, content: str) -> Optional[str]:
        spec = super().parse_legacy_file(path, content)
        if spec is None:
            return None
        if spec.lower() in ("node", "stable", "current"):
            return "latest"
        if spec.lower().startswith("lts/"):
            return spec.lower()
        return spec

    def _tarball(self, version: str) -> str:
        return f"node-v{version}-{node_platform()}.tar.gz"

    def download(self, ctx: InstallContext) -> None:
        if ctx.install_type != "version":
            raise PluginError("the node plugin only installs released versions")
        os.makedirs(ctx.download_path, exist_ok=True)
        filename = self._tarball(ctx.version)
        base = f"{Constants.NODE_DIST_URL}v{ctx.version}/"
        status, _, sums = robust_get(base + "SHASUMS256.txt")
        if status != 200:
            raise PluginError(f"cannot fetch checksums for node v{ctx.version} (status {status})")
        expected = None
        for line in sums.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == filename:
                expected = parts[0]
                break
        if expected is None:
            raise PluginError(f"{filename} is not published for node v{ctx.version}")
        dest = os.path.join(ctx.download_path, filename)
        logger.info("Downloading %s", filename)
        actual = download_file(base + filename, dest)
        if actual != expected:
            os.unlink(dest)
            raise PluginError(f"checksum mismatch for {filename}: expected {expected}, got {actual}")

    def install_version(self, ctx: InstallContext) -> None:
        archive = os.path.join(ctx.download_path, self._tarball(ctx.version))
        if not os.path.isfile(archive):
            raise PluginError(f"missing download {archive}")
        os.makedirs(ctx.install_path, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(ctx.install_path, members=_safe_members(tar))  # noqa: S202

    def install_default_package(self, install: InstalledVersion, package: str) -> None:
        npm = os.path.join(install.path, "bin", "npm")
        env = self.base_env
        env["PATH"] = os.path.join(install.path, "bin") + os.pathsep + env.get("PATH", "")
        result = self.engine.capture([npm, "install", "-g", package], env=env)
        if not result.ok:
            detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
            raise PluginError(f"npm install -g {package} exited {result.returncode} {detail}".strip())
