"""ShimDispatcher: resolve the version behind a command and exec it.

Dispatch replaces the toolpin process with the real binary, so exit status
and signals belong to the tool. Nothing here falls back to a system binary
of the same name: an unresolvable command is an error.
"""

from __future__ import annotations

import logging
import os
import shutil
from typing import Dict, List, Mapping, Optional, Tuple

from constants import Constants, MissingRuntimeBehavior
from errors import (
    CommandNotFound,
    ExecError,
    NotInstalled,
    NoVersionConfigured,
    PluginNotFound,
    ToolpinError,
)
from installer.layout import installed_tools, installed_versions
from pins.store import env_pin_var
from versioning.models import InstalledVersion, ResolutionContext
from .reshim import path_without

logger = logging.getLogger(__name__)


class ShimDispatcher:
    """Turns a command name (or ``exec`` request) into an exec of the right binary."""

    def __init__(self, settings, registry, resolver, installer, store, engine):
        self.settings = settings
        self.registry = registry
        self.resolver = resolver
        self.installer = installer
        self.store = store
        self.engine = engine

    # Context

    def build_context(
        self, explicit: Optional[Mapping[str, str]] = None, cwd: Optional[str] = None
    ) -> ResolutionContext:
        return self.store.build_context(
            cwd=cwd,
            env=self.settings.env,
            explicit=explicit,
            legacy_filenames=self.registry.legacy_filenames().keys(),
        )

    # Resolution

    def resolve_install(
        self, tool: str, context: ResolutionContext, spec: Optional[str] = None
    ) -> InstalledVersion:
        """Resolve ``tool``, installing on demand only when autoinstall is configured.

        Raises:
            NotInstalled: the resolved version is missing and autoinstall is off.
        """
        try:
            return self.resolver.resolve(tool, context, spec)
        except NotInstalled:
            if self.settings.missing_runtime_behavior != MissingRuntimeBehavior.AUTOINSTALL:
                raise
        plugin = self.registry.get(tool)
        request = self.resolver.find_request(tool, context, plugin, spec)
        concrete = self.resolver.resolve_version(tool, request.spec, plugin, prefer_installed=False)
        logger.info("Auto-installing %s@%s", tool, concrete)
        return self.installer.ensure_installed(tool, concrete)

    def _provides(self, tool: str, version: str, cmd: str) -> bool:
        install_dir = self.settings.install_path(tool, version)
        bin_paths = ["bin"]
        if self.registry.exists(tool):
            try:
                plugin = self.registry.get(tool)
                install = InstalledVersion(tool=tool, version=version, path=install_dir)
                bin_paths = plugin.bin_paths(install)
            except ToolpinError as e:
                logger.debug("Falling back to bin/ for %s: %s", tool, e)
        return any(os.path.isfile(os.path.join(install_dir, p, cmd)) for p in bin_paths)

    def owners(self, cmd: str) -> List[str]:
        """Tools with an installed version providing ``cmd``, registered or not."""
        return [
            tool for tool in installed_tools(self.settings)
            if any(self._provides(tool, v, cmd) for v in installed_versions(self.settings, tool))
        ]

    def find_owner(self, cmd: str, context: ResolutionContext) -> str:
        """The single tool a shim for ``cmd`` belongs to in this context.

        Raises:
            PluginNotFound: no owner, or the owners' plugins are uninstalled.
            NoVersionConfigured: several owners and none is configured.
            ExecError: two or more configured owners provide ``cmd``.
        """
        owners = self.owners(cmd)
        if not owners:
            raise PluginNotFound(cmd, hint=f"no installed tool provides '{cmd}'")
        registered = [t for t in owners if self.registry.exists(t)]
        if not registered:
            raise PluginNotFound(owners[0], hint=f"'{cmd}' belongs to {owners[0]}, whose plugin was removed")
        if len(registered) == 1:
            return registered[0]
        configured = []
        for tool in registered:
            try:
                install = self.resolver.resolve(tool, context)
            except ToolpinError as e:
                logger.debug("%s does not claim %s: %s", tool, cmd, e)
                continue
            if self.registry.get(tool).locate_binary(install, cmd):
                configured.append(tool)
        if not configured:
            raise NoVersionConfigured(registered[0])
        if len(configured) > 1:
            raise ExecError(
                f"'{cmd}' is provided by several configured tools ({', '.join(configured)}); "
                "run it through 'toolpin exec <tool>@<version> -- ...'"
            )
        return configured[0]

    # Environment

    def build_env(self, installs: List[InstalledVersion], base_env: Mapping[str, str]) -> Dict[str, str]:
        """Base environment plus bin dirs on PATH, plugin exec-env and version pins."""
        env = dict(base_env)
        bin_dirs: List[str] = []
        for install in installs:
            plugin = self.registry.get(install.tool)
            env.update(plugin.exec_env(install))
            env[env_pin_var(install.tool)] = install.version
            if install.version.startswith("path:"):
                # path: pins only parse in experimental mode
                env[Constants.ENV_EXPERIMENTAL] = "1"
            if install.version != "system":
                bin_dirs.extend(d for d in plugin.bin_dirs(install) if d not in bin_dirs)
        current = env.get("PATH", os.defpath)
        env["PATH"] = os.pathsep.join(bin_dirs + ([current] if current else []))
        return env

    def _search_path(self, env: Mapping[str, str]) -> str:
        return path_without(env.get("PATH", os.defpath), self.settings.shims_dir)

    def _system_binary(self, cmd: str, env: Mapping[str, str]) -> str:
        found = shutil.which(cmd, path=self._search_path(env))
        if not found:
            raise ExecError(f"'{cmd}' is pinned to system but is not on PATH")
        return found

    # Dispatch

    def locate(self, cmd: str, context: ResolutionContext) -> Tuple[InstalledVersion, str]:
        """(install, binary path) a shim for ``cmd`` would exec.

        Raises:
            ExecError: the binary is missing or not executable inside the install.
        """
        tool = self.find_owner(cmd, context)
        install = self.resolve_install(tool, context)
        if install.version == "system":
            return install, self._system_binary(cmd, context.env)
        path = self.registry.get(tool).locate_binary(install, cmd)
        if path is None:
            raise ExecError(
                f"'{cmd}' is missing from {tool}@{install.version} ({install.path}); "
                f"the install looks damaged, reinstall it with: "
                f"toolpin uninstall {tool} {install.version} && toolpin install {tool} {install.version}"
            )
        if not os.access(path, os.X_OK):
            raise ExecError(f"{path} is not executable")
        return install, path

    def dispatch(self, cmd: str, args: List[str], context: Optional[ResolutionContext] = None) -> None:
        """Exec ``cmd`` for the resolved version. Only returns by raising."""
        context = context or self.build_context()
        install, path = self.locate(cmd, context)
        env = self.build_env([install], context.env)
        logger.debug("Dispatching %s -> %s (%s@%s)", cmd, path, install.tool, install.version)
        self.engine.exec_replace(path, [cmd] + list(args), env)

    def exec_command(
        self, requested: List[Tuple[str, Optional[str]]], cmd: str, args: List[str]
    ) -> None:
        """``toolpin exec tool[@spec] ... -- cmd args``. Only returns by raising.

        Requested tools must resolve (a spec pins them, overriding every
        other source); other configured tools are added when they can be,
        and skipped with a warning when they cannot.

        Raises:
            CommandNotFound: ``cmd`` is not on the rewritten PATH.
        """
        explicit = {tool: spec for tool, spec in requested if spec}
        context = self.build_context(explicit=explicit)
        installs = [self.resolve_install(tool, context) for tool, _ in requested]
        named = {tool for tool, _ in requested}
        for tool in context.configured_tools():
            if tool in named:
                continue
            try:
                installs.append(self.resolver.resolve(tool, context))
            except (PluginNotFound, NoVersionConfigured) as e:
                logger.debug("Not adding %s to exec environment: %s", tool, e)
            except ToolpinError as e:
                logger.warning("Not adding %s to exec environment: %s", tool, e)
        env = self.build_env(installs, context.env)
        if os.sep in cmd:
            path = cmd
        else:
            path = shutil.which(cmd, path=self._search_path(env))
        if not path or not os.path.exists(path):
            raise CommandNotFound(f"{cmd}: command not found")
        logger.debug("exec %s with %s", path, ", ".join(f"{i.tool}@{i.version}" for i in installs))
        self.engine.exec_replace(path, [cmd] + list(args), env)
