"""asdf-compatible script plugins.

A script plugin is a directory with executable hooks under ``bin/``. Only
``list-all`` and ``install`` are required; every other hook falls back to
the defaults in ``Plugin``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Dict, List, Optional

from constants import Constants
from errors import PluginScriptError
from versioning.models import InstalledVersion
from .base import InstallContext, Plugin

logger = logging.getLogger(__name__)

REQUIRED_HOOKS = ("list-all", "install")


class ScriptPlugin(Plugin):
    """Plugin backed by hook scripts in ``<plugin>/bin``."""

    def hook_path(self, hook: str) -> str:
        return os.path.join(self.path, "bin", hook)

    def has_hook(self, hook: str) -> bool:
        return os.path.isfile(self.hook_path(hook))

    def _script_env(
        self,
        install_path: Optional[str] = None,
        version: Optional[str] = None,
        install_type: str = "version",
        download_path: Optional[str] = None,
        concurrency: Optional[int] = None,
        extra: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        env = self.base_env
        values = {
            "PLUGIN_NAME": self.name,
            "PLUGIN_PATH": self.path,
            "INSTALL_TYPE": install_type,
        }
        if install_path:
            values["INSTALL_PATH"] = install_path
        if version:
            values["INSTALL_VERSION"] = version
        if download_path:
            values["DOWNLOAD_PATH"] = download_path
        if concurrency:
            values["CONCURRENCY"] = str(concurrency)
        for key, value in values.items():
            env[f"{Constants.ENV_PREFIX}{key}"] = value
            env[f"ASDF_{key}"] = value
        if extra:
            env.update(extra)
        return env

    def _capture(self, hook: str, args: Optional[List[str]] = None, env: Optional[Dict[str, str]] = None) -> str:
        result = self.engine.capture(
            [self.hook_path(hook)] + list(args or []),
            env=env or self._script_env(),
            cwd=self.path,
            timeout=Constants.SCRIPT_TIMEOUT_SEC,
        )
        verbose = self.settings is not None and self.settings.verbose
        if result.stderr and (verbose or not result.ok):
            sys.stderr.write(result.stderr)
        if not result.ok:
            raise PluginScriptError(self.name, hook, result.returncode, result.stderr)
        return result.stdout

    def _run(self, hook: str, env: Dict[str, str], args: Optional[List[str]] = None) -> None:
        returncode = self.engine.run([self.hook_path(hook)] + list(args or []), env=env, cwd=self.path)
        if returncode != 0:
            raise PluginScriptError(self.name, hook, returncode)

    def list_remote_versions(self) -> List[str]:
        return self._capture("list-all").split()

    def get_aliases(self) -> Dict[str, str]:
        if not self.has_hook("list-aliases"):
            return {}
        aliases: Dict[str, str] = {}
        for line in self._capture("list-aliases").splitlines():
            parts = line.split()
            if len(parts) != 2:
                if parts:
                    logger.debug("Ignoring alias line from %s: %r", self.name, line)
                continue
            aliases[parts[0]] = parts[1]
        return aliases

    def latest_stable_version(self) -> Optional[str]:
        if not self.has_hook("latest-stable"):
            return None
        out = self._capture("latest-stable").strip()
        return out.split()[-1] if out else None

    def legacy_filenames(self) -> List[str]:
        if not self.has_hook("list-legacy-filenames"):
            return []
        return self._capture("list-legacy-filenames").split()

    def parse_legacy_file(self, path: str, content: str) -> Optional[str]:
        if not self.has_hook("parse-legacy-file"):
            return super().parse_legacy_file(path, content)
        out = self._capture("parse-legacy-file", [path]).strip()
        return out.split()[0] if out else None

    def _ctx_env(self, ctx: InstallContext) -> Dict[str, str]:
        return self._script_env(
            install_path=ctx.install_path,
            version=ctx.version,
            install_type=ctx.install_type,
            download_path=ctx.download_path,
            concurrency=ctx.concurrency,
            extra=ctx.env,
        )

    def download(self, ctx: InstallContext) -> None:
        if self.has_hook("download"):
            self._run("download", self._ctx_env(ctx))

    def install_version(self, ctx: InstallContext) -> None:
        self._run("install", self._ctx_env(ctx))

    def uninstall_version(self, install: InstalledVersion) -> None:
        if self.has_hook("uninstall"):
            self._run(
                "uninstall",
                self._script_env(install_path=install.path, version=install.version),
            )

    def _install_env(self, install: InstalledVersion) -> Dict[str, str]:
        return self._script_env(install_path=install.path, version=install.version)

    def list_bin_paths(self, install: InstalledVersion) -> List[str]:
        if install.external or not self.has_hook("list-bin-paths"):
            return ["bin"]
        return self._capture("list-bin-paths", env=self._install_env(install)).split() or ["bin"]

    def exec_env(self, install: InstalledVersion) -> Dict[str, str]:
        if install.external or not self.has_hook("exec-env"):
            return {}
        env: Dict[str, str] = {}
        for line in self._capture("exec-env", env=self._install_env(install)).splitlines():
            line = line.strip()
            if line.startswith("export "):
                line = line[len("export "):].strip()
            key, sep, value = line.partition("=")
            if sep and key:
                env[key] = value.strip().strip('"')
        return env

    def install_default_package(self, install: InstalledVersion, package: str) -> None:
        if not self.has_hook("install-default-package"):
            super().install_default_package(install, package)
        env = self._install_env(install)
        bins = os.pathsep.join(self.bin_dirs(install))
        env["PATH"] = bins + os.pathsep + env.get("PATH", "")
        self._capture("install-default-package", [package], env=env)
