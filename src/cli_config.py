"""CLI configuration: settings overrides and component wiring.

Kept out of toolpin.py so the entry point stays slim. CLI flags have the
highest precedence over config.yml and the environment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from common.process import ExecutionEngine
from constants import MissingRuntimeBehavior
from installer import Installer
from pins.store import ConfigStore
from plugins.registry import PluginRegistry
from settings import Settings
from shims.dispatcher import ShimDispatcher
from versioning.resolver import VersionResolver

logger = logging.getLogger(__name__)


def apply_cli_overrides(settings: Settings, args: Any) -> Settings:
    """Apply CLI flags on top of file/env settings."""
    if getattr(args, "EXPERIMENTAL", False):
        settings.experimental = True
    if getattr(args, "AUTO_INSTALL", False):
        settings.missing_runtime_behavior = MissingRuntimeBehavior.AUTOINSTALL
    return settings


@dataclass
class App:
    """Every component for one invocation, wired together."""

    settings: Settings
    engine: ExecutionEngine
    store: ConfigStore
    registry: PluginRegistry
    resolver: VersionResolver
    installer: Installer
    dispatcher: ShimDispatcher


def build_app(args: Any = None, env: Optional[Mapping[str, str]] = None) -> App:
    """Load settings and construct the component graph.

    Raises:
        ConfigError: config.yml or the environment holds an invalid value.
    """
    settings = apply_cli_overrides(Settings.load(env), args)
    engine = ExecutionEngine()
    store = ConfigStore(settings)
    registry = PluginRegistry(settings, engine)
    resolver = VersionResolver(settings, registry)
    installer = Installer(settings, registry)
    dispatcher = ShimDispatcher(settings, registry, resolver, installer, store, engine)
    logger.debug("Data dir %s, config dir %s", settings.data_dir, settings.config_dir)
    return App(settings, engine, store, registry, resolver, installer, dispatcher)
