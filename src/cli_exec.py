"""``toolpin exec|shim|reshim|which|where``."""

from __future__ import annotations

import logging
import sys
from typing import Any, List, Optional, Tuple

from constants import ExitCodes
from shims.reshim import reshim
from versioning.models import SpecKind
from versioning.parser import parse_tool_token

logger = logging.getLogger(__name__)


def _split_exec_args(args: Any) -> Tuple[List[Tuple[str, Optional[str]]], List[str]]:
    """Tool tokens and wrapped command.

    With ``--`` the split is explicit. Without it, leading ``tool@spec``
    tokens are tools and the first token without ``@`` starts the command.
    """
    tokens = list(args.TOOLS)
    command = list(args.COMMAND)
    if not command:
        for idx, token in enumerate(tokens):
            if "@" not in token:
                tokens, command = tokens[:idx], tokens[idx:]
                break
    return [parse_tool_token(t) for t in tokens], command


def run_exec(app, args: Any) -> int:
    requested, command = _split_exec_args(args)
    if not command:
        sys.stderr.write("Usage: toolpin exec [tool@version ...] -- <command> [args...]\n")
        return ExitCodes.USAGE_ERROR.value
    app.dispatcher.exec_command(requested, command[0], command[1:])
    # Not reached: exec_command replaces the process
    return ExitCodes.SUCCESS.value


def run_shim(app, args: Any) -> int:
    app.dispatcher.dispatch(args.BIN, list(args.COMMAND))
    return ExitCodes.SUCCESS.value


def run_reshim(app, args: Any) -> int:
    names = reshim(app.settings, app.registry)
    logger.info("Generated %d shim(s) in %s", len(names), app.settings.shims_dir)
    return ExitCodes.SUCCESS.value


def run_which(app, args: Any) -> int:
    context = app.dispatcher.build_context()
    _, path = app.dispatcher.locate(args.BIN, context)
    print(path)
    return ExitCodes.SUCCESS.value


def run_where(app, args: Any) -> int:
    context = app.dispatcher.build_context()
    plugin = app.registry.get(args.TOOL)
    request = app.resolver.find_request(args.TOOL, context, plugin, args.SPEC)
    if request.spec.kind == SpecKind.SYSTEM:
        print("system")
        return ExitCodes.SUCCESS.value
    if args.SPEC:
        version = app.resolver.resolve_version(args.TOOL, request.spec, plugin, prefer_installed=True)
        install = app.resolver.installed_for(args.TOOL, request.spec, version)
    else:
        install = app.resolver.resolve(args.TOOL, context)
    print(install.path)
    return ExitCodes.SUCCESS.value
