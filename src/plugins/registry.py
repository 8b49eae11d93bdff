"""PluginRegistry: one plugin directory per tool name under ``<data>/plugins``."""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from typing import Dict, List, Optional

import yaml

from constants import Constants
from errors import PluginError, PluginNotFound, ToolpinError
from versioning.cache import DiskCache
from .base import Plugin
from .node import NodePlugin
from .script import REQUIRED_HOOKS, ScriptPlugin

logger = logging.getLogger(__name__)

CORE_PLUGINS = {
    "node": NodePlugin,
}


def _is_git_source(source: str) -> bool:
    return (
        source.startswith(("https://", "http://", "git@", "ssh://", "git://", "file://"))
        or source.endswith(".git")
    )


class PluginRegistry:
    """Tracks installed plugins and builds Plugin objects for them."""

    def __init__(self, settings, engine):
        self.settings = settings
        self.engine = engine
        self._loaded: Dict[str, Plugin] = {}

    @property
    def plugins_dir(self) -> str:
        return self.settings.plugins_dir

    def exists(self, tool: str) -> bool:
        return os.path.isdir(self.settings.plugin_path(tool))

    def list(self) -> List[str]:
        if not os.path.isdir(self.plugins_dir):
            return []
        return sorted(
            name for name in os.listdir(self.plugins_dir)
            if not name.startswith(".") and os.path.isdir(os.path.join(self.plugins_dir, name))
        )

    def _meta(self, tool: str) -> Dict:
        path = os.path.join(self.settings.plugin_path(tool), Constants.PLUGIN_META_FILE)
        if not os.path.isfile(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise PluginError(f"{path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def get(self, tool: str) -> Plugin:
        """Return the plugin for ``tool``.

        Raises:
            PluginNotFound: no plugin directory is registered for the name.
        """
        if not self.exists(tool):
            self._loaded.pop(tool, None)
            raise PluginNotFound(tool, hint=f"run: toolpin plugin install {tool}")
        if tool in self._loaded:
            return self._loaded[tool]
        path = self.settings.plugin_path(tool)
        cache = DiskCache(
            os.path.join(self.settings.cache_dir, tool), default_ttl=self.settings.remote_cache_ttl
        )
        listings = DiskCache(
            os.path.join(self.settings.cache_dir, tool, Constants.LISTINGS_CACHE_DIR),
            default_ttl=Constants.LISTING_CACHE_TTL_SEC,
        )
        meta = self._meta(tool)
        if meta.get("type") == "core":
            core_name = str(meta.get("core") or tool)
            if core_name not in CORE_PLUGINS:
                raise PluginError(f"{tool}: unknown core plugin '{core_name}'")
            plugin: Plugin = CORE_PLUGINS[core_name](
                tool, path, self.engine, cache, self.settings, listings=listings
            )
        else:
            plugin = ScriptPlugin(tool, path, self.engine, cache, self.settings, listings=listings)
        self._loaded[tool] = plugin
        return plugin

    def _staging_dir(self) -> str:
        os.makedirs(self.plugins_dir, exist_ok=True)
        return os.path.join(self.plugins_dir, f".adding-{os.getpid()}-{uuid.uuid4().hex[:8]}")

    def install(self, tool: str, source: Optional[str] = None) -> bool:
        """Register a plugin. Returns False if one is already registered.

        ``source`` may be a local directory or a git URL; without one, the
        configured plugin_sources entry or a core plugin is used.

        Raises:
            PluginError: the source is unusable or the clone failed.
            PluginNotFound: no source was given and no core plugin has the name.
        """
        if self.exists(tool):
            logger.info("Plugin %s is already installed", tool)
            return False
        source = source or self.settings.plugin_sources.get(tool)
        staging = self._staging_dir()
        try:
            if source is None:
                if tool not in CORE_PLUGINS:
                    raise PluginNotFound(tool, hint="no source given and no core plugin by that name")
                os.makedirs(staging)
                with open(os.path.join(staging, Constants.PLUGIN_META_FILE), "w", encoding="utf-8") as f:
                    yaml.safe_dump({"type": "core", "core": tool}, f)
            elif os.path.isdir(source):
                shutil.copytree(source, staging, symlinks=True)
            elif _is_git_source(source):
                returncode = self.engine.run(["git", "clone", "--depth", "1", source, staging])
                if returncode != 0:
                    raise PluginError(f"git clone of {source} failed with status {returncode}")
            else:
                raise PluginError(f"plugin source {source!r} is neither a directory nor a git URL")
            if source is not None:
                missing = [h for h in REQUIRED_HOOKS if not os.path.isfile(os.path.join(staging, "bin", h))]
                if missing:
                    raise PluginError(f"{source} is not a plugin: missing bin/{', bin/'.join(missing)}")
            os.rename(staging, self.settings.plugin_path(tool))
        except (ToolpinError, OSError):
            shutil.rmtree(staging, ignore_errors=True)
            raise
        self._loaded.pop(tool, None)
        logger.info("Added plugin %s", tool)
        return True

    def uninstall(self, tool: str) -> None:
        """Remove the plugin directory only; installs of ``tool`` stay on disk.

        Raises:
            PluginNotFound: the plugin is not registered.
        """
        if not self.exists(tool):
            raise PluginNotFound(tool)
        path = self.settings.plugin_path(tool)
        trash = self._staging_dir()
        os.rename(path, trash)
        shutil.rmtree(trash, ignore_errors=True)
        self._loaded.pop(tool, None)
        logger.info("Removed plugin %s", tool)

    def legacy_filenames(self) -> Dict[str, List[str]]:
        """Legacy pin filename -> tools that read it."""
        mapping: Dict[str, List[str]] = {}
        for tool in self.list():
            try:
                names = self.get(tool).legacy_names()
            except ToolpinError as e:
                logger.warning("Skipping legacy version files of %s: %s", tool, e)
                continue
            for name in names:
                mapping.setdefault(name, []).append(tool)
        return mapping
