"""``toolpin local|global|current``."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

from constants import ExitCodes
from errors import NotInstalled, ToolpinError

logger = logging.getLogger(__name__)


def run_pin(app, args: Any) -> int:
    """Write or remove a pin in the local or global pin file."""
    if args.action == "local":
        path = app.store.local_path(os.getcwd())
    else:
        path = app.store.global_path
    if args.UNSET:
        if app.store.unset_pin(path, args.TOOL):
            print(f"Removed {args.TOOL} from {path}")
        else:
            logger.warning("%s is not pinned in %s", args.TOOL, path)
        return ExitCodes.SUCCESS.value
    if not args.SPEC:
        sys.stderr.write(f"Usage: toolpin {args.action} <tool> <version>\n")
        return ExitCodes.USAGE_ERROR.value
    app.registry.get(args.TOOL)
    app.resolver.parse(args.SPEC)
    app.store.set_pin(path, args.TOOL, args.SPEC)
    print(f"{args.TOOL} {args.SPEC} -> {path}")
    return ExitCodes.SUCCESS.value


def run_current(app, args: Any) -> int:
    """Print ``tool version source`` for each configured tool; non-zero if any is missing."""
    context = app.dispatcher.build_context()
    tools = [args.TOOL] if args.TOOL else context.configured_tools()
    status = ExitCodes.SUCCESS.value
    for tool in tools:
        try:
            plugin = app.registry.get(tool)
            request = app.resolver.find_request(tool, context, plugin)
            try:
                install = app.resolver.resolve(tool, context)
                print(f"{tool}\t{install.version}\t{request.source}")
            except NotInstalled as e:
                print(f"{tool}\t{request.spec.raw} (not installed)\t{request.source}")
                logger.debug("%s", e)
                status = ExitCodes.FAILURE.value
        except ToolpinError as e:
            logger.error("%s: %s", tool, e)
            status = ExitCodes.FAILURE.value
    return status
