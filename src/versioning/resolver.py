"""VersionResolver: (tool, context) -> installed version.

Resolution is read-only. It consults the ResolutionContext snapshot, the
plugin's version/alias listings and the installs tree, and never installs
anything; callers decide whether a NotInstalled result should trigger the
Installer.

Precedence, first match wins:

1. explicit spec (CLI ``tool@spec`` / ``install tool spec``)
2. ``TOOLPIN_<TOOL>_VERSION`` in the environment
3. directory chain from the cwd upward; within one directory the pin file
   beats a plugin legacy file (``.nvmrc``)
4. the global pin file
5. NoVersionConfigured
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from errors import (
    AliasResolutionFailed,
    NoMatchingVersion,
    NotInstalled,
    NoVersionConfigured,
    ToolpinError,
)
from installer.layout import installed_versions, read_install
from pins.store import env_pin_var
from .matching import newest_matching, subtract_major
from .models import InstalledVersion, ResolutionContext, SpecKind, VersionRequest, VersionSpec
from .parser import parse_version_spec

logger = logging.getLogger(__name__)


class VersionResolver:
    """Maps version requests onto concrete, installed versions."""

    def __init__(self, settings, registry):
        self.settings = settings
        self.registry = registry

    def parse(self, raw: str) -> VersionSpec:
        return parse_version_spec(raw, experimental=self.settings.experimental)

    def find_request(
        self, tool: str, context: ResolutionContext, plugin=None, spec: Optional[str] = None
    ) -> VersionRequest:
        """Walk the precedence chain and return the first spec that applies.

        Raises:
            NoVersionConfigured: nothing in the chain names a version for ``tool``.
        """
        if spec:
            return self._request(tool, spec, "explicit")
        if tool in context.explicit:
            return self._request(tool, context.explicit[tool], "explicit")

        var = env_pin_var(tool)
        if context.env.get(var, "").strip():
            return self._request(tool, context.env[var], var)

        legacy_names = self._legacy_names(plugin)
        for pins in context.directories:
            if pins.tool_versions and tool in pins.tool_versions.pins:
                return self._request(tool, pins.tool_versions.pins[tool], pins.tool_versions.path)
            for legacy in pins.legacy_files:
                if legacy.filename not in legacy_names:
                    continue
                try:
                    named = plugin.parse_legacy_file(legacy.path, legacy.content)
                except ToolpinError as e:
                    logger.warning("Ignoring %s: %s", legacy.path, e)
                    continue
                if named:
                    return VersionRequest(tool, self.parse(named), legacy.path)

        if context.global_pins and tool in context.global_pins.pins:
            return self._request(tool, context.global_pins.pins[tool], context.global_pins.path)

        raise NoVersionConfigured(tool)

    def _request(self, tool: str, value: str, source: str) -> VersionRequest:
        """A pin value names the preferred version first, then fallbacks."""
        specs = [self.parse(raw) for raw in value.split() or [value]]
        return VersionRequest(tool, specs[0], source, tuple(specs[1:]))

    def _legacy_names(self, plugin) -> set:
        if plugin is None or not self.settings.legacy_version_file:
            return set()
        try:
            return set(plugin.legacy_names())
        except ToolpinError as e:
            logger.warning("Cannot list legacy version files for %s: %s", plugin.name, e)
            return set()

    def _alias_map(self, tool: str, plugin) -> Dict[str, str]:
        try:
            return plugin.aliases()
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise AliasResolutionFailed(tool, "*", f"plugin could not list aliases: {e}") from e

    def resolve_version(self, tool: str, spec: VersionSpec, plugin=None, prefer_installed: bool = True) -> str:
        """Concrete version string (install directory name) for ``spec``.

        With ``prefer_installed`` only the installs tree is consulted for
        prefix/latest requests; otherwise remote listings are used.

        Raises:
            NotInstalled: prefix/latest request with no installed match.
            NoMatchingVersion: prefix/latest request with no remote match.
            AliasResolutionFailed: an alias the plugin cannot map.
        """
        plugin = plugin or self.registry.get(tool)
        kind = spec.kind
        if kind == SpecKind.EXACT:
            return spec.value
        if kind == SpecKind.REF:
            return f"ref-{spec.value}"
        if kind in (SpecKind.SYSTEM, SpecKind.PATH):
            return spec.raw
        if kind == SpecKind.RELATIVE:
            return self._resolve_prefix(tool, subtract_major(spec.value, spec.offset), spec.raw, plugin, prefer_installed)
        if kind == SpecKind.PREFIX:
            return self._resolve_prefix(tool, spec.value, spec.raw, plugin, prefer_installed)
        if kind == SpecKind.LATEST:
            return self._resolve_latest(tool, plugin, prefer_installed)
        return self._resolve_alias(tool, spec.value, plugin, prefer_installed)

    def _resolve_prefix(self, tool, prefix, raw, plugin, prefer_installed) -> str:
        if prefer_installed:
            match = newest_matching(installed_versions(self.settings, tool), prefix)
            if match is None:
                raise NotInstalled(tool, raw)
            return match
        match = newest_matching(plugin.remote_versions(), prefix)
        if match is None:
            raise NoMatchingVersion(tool, raw)
        return match.lstrip("v")

    def _resolve_latest(self, tool, plugin, prefer_installed) -> str:
        if prefer_installed:
            match = newest_matching(installed_versions(self.settings, tool))
            if match is None:
                raise NotInstalled(tool, "latest")
            return match
        latest = plugin.latest_stable_version() or newest_matching(plugin.remote_versions())
        if not latest:
            raise NoMatchingVersion(tool, "latest")
        return latest.lstrip("v")

    def _resolve_alias(self, tool, alias, plugin, prefer_installed) -> str:
        target = self.settings.aliases.get(tool, {}).get(alias)
        if target is None:
            mapping = self._alias_map(tool, plugin)
            target = mapping.get(alias, mapping.get(alias.lower()))
        if target is None:
            if alias in installed_versions(self.settings, tool):
                return alias
            if not prefer_installed and alias in plugin.remote_versions():
                return alias
            raise AliasResolutionFailed(tool, alias, "unknown alias")
        logger.debug("Alias %s@%s -> %s", tool, alias, target)
        target_spec = self.parse(target)
        if target_spec.kind in (SpecKind.ALIAS, SpecKind.SYSTEM, SpecKind.PATH):
            if target_spec.kind == SpecKind.ALIAS:
                raise AliasResolutionFailed(tool, alias, f"alias points at another alias '{target}'")
            return target_spec.raw
        return self.resolve_version(tool, target_spec, plugin, prefer_installed)

    def installed_for(self, tool: str, spec: VersionSpec, concrete: str) -> InstalledVersion:
        """InstalledVersion for a resolved request.

        Raises:
            NotInstalled: nothing is published for ``concrete``.
        """
        if spec.kind == SpecKind.SYSTEM or concrete == "system":
            return InstalledVersion(tool=tool, version="system", path="", external=True)
        if spec.kind == SpecKind.PATH or concrete.startswith("path:"):
            path = os.path.abspath(os.path.expanduser(concrete.split(":", 1)[1]))
            if not os.path.isdir(path):
                raise NotInstalled(tool, concrete)
            return InstalledVersion(tool=tool, version=concrete, path=path, external=True)
        installed = read_install(self.settings, tool, concrete)
        if installed is None:
            raise NotInstalled(tool, concrete)
        return installed
    def resolve(
        self, tool: str, context: ResolutionContext, spec: Optional[str] = None
    ) -> InstalledVersion:
        """Resolve ``tool`` to a published install.

        Fallback versions from a pin are tried in order when the preferred
        one is not installed; the preferred version's error is raised when
        none of them is.

        Raises:
            PluginNotFound, NoVersionConfigured, AliasResolutionFailed, NotInstalled.
        """
        plugin = self.registry.get(tool)
        request = self.find_request(tool, context, plugin, spec)
        first_error: Optional[ToolpinError] = None
        for candidate in request.candidates:
            try:
                concrete = self.resolve_version(tool, candidate, plugin, prefer_installed=True)
                installed = self.installed_for(tool, candidate, concrete)
            except (NotInstalled, AliasResolutionFailed) as e:
                if first_error is None:
                    first_error = e
                else:
                    logger.debug("Fallback %s@%s unavailable: %s", tool, candidate, e)
                continue
            logger.debug("Resolved %s@%s (from %s) -> %s", tool, candidate, request.source, concrete)
            return installed
        raise first_error
