"""``toolpin plugin install|uninstall|ls``."""

from __future__ import annotations

import logging
from typing import Any

from constants import ExitCodes

logger = logging.getLogger(__name__)


def run_plugin(app, args: Any) -> int:
    """Dispatch a plugin subcommand and return the exit code."""
    action = args.plugin_action
    if action == "install":
        added = app.registry.install(args.TOOL, args.SOURCE)
        if added:
            print(f"Added plugin {args.TOOL}")
        else:
            print(f"Plugin {args.TOOL} is already installed")
        return ExitCodes.SUCCESS.value
    if action == "uninstall":
        app.registry.uninstall(args.TOOL)
        print(f"Removed plugin {args.TOOL}")
        return ExitCodes.SUCCESS.value
    for name in app.registry.list():
        plugin = app.registry.get(name)
        print(f"{name}\t{type(plugin).__name__}\t{plugin.path}")
    return ExitCodes.SUCCESS.value
