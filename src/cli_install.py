"""``toolpin install|uninstall|ls|ls-remote|cleanup``."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from constants import ExitCodes
from errors import NoVersionConfigured, ToolpinError
from installer.layout import installed_tools, installed_versions
from shims.reshim import reshim
from versioning.matching import matches_prefix
from versioning.models import InstalledVersion, SpecKind

logger = logging.getLogger(__name__)


@dataclass
class InstallOutcome:
    """Result for one requested spec of an install invocation."""
    tool: str
    spec: str
    version: Optional[str] = None
    installed: Optional[InstalledVersion] = None
    already_installed: bool = False
    skipped: bool = False
    error: Optional[ToolpinError] = None
    warnings: List[Warning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def install_spec(app, tool: str, raw_spec: str) -> InstallOutcome:
    """Resolve and install one spec; errors are captured on the outcome."""
    outcome = InstallOutcome(tool=tool, spec=raw_spec)
    try:
        plugin = app.registry.get(tool)
        spec = app.resolver.parse(raw_spec)
        if spec.kind in (SpecKind.SYSTEM, SpecKind.PATH):
            outcome.skipped = True
            outcome.version = spec.raw
            return outcome
        version = app.resolver.resolve_version(tool, spec, plugin, prefer_installed=False)
        outcome.version = version
        outcome.already_installed = app.installer.is_installed(tool, version)
        installed = app.installer.ensure_installed(tool, version)
        outcome.installed = installed
        outcome.warnings = list(installed.warnings)
    except ToolpinError as e:
        outcome.error = e
    return outcome


def install_many(app, requests: List[Tuple[str, str]]) -> List[InstallOutcome]:
    """Install each (tool, spec) independently; one failure never stops the rest."""
    outcomes = [install_spec(app, tool, spec) for tool, spec in requests]
    if any(o.installed is not None and not o.already_installed for o in outcomes):
        reshim(app.settings, app.registry)
    return outcomes


def _configured_requests(app, tool: Optional[str]) -> List[Tuple[str, str]]:
    context = app.dispatcher.build_context()
    tools = [tool] if tool else context.configured_tools()
    requests = []
    for name in tools:
        try:
            plugin = app.registry.get(name)
            request = app.resolver.find_request(name, context, plugin)
        except NoVersionConfigured:
            if tool:
                raise
            continue
        requests.extend((name, candidate.raw) for candidate in request.candidates)
    return requests


def run_install(app, args: Any) -> int:
    if args.TOOL and args.SPECS:
        app.registry.get(args.TOOL)
        requests = [(args.TOOL, spec) for spec in args.SPECS]
    else:
        requests = _configured_requests(app, args.TOOL)
    if not requests:
        logger.warning("Nothing to install: no tool versions are configured here")
        return ExitCodes.SUCCESS.value

    outcomes = install_many(app, requests)
    failures = [o for o in outcomes if not o.ok]
    warned = [o for o in outcomes if o.warnings]
    for o in outcomes:
        label = o.spec if o.version in (None, o.spec) else f"{o.spec} -> {o.version}"
        if o.error is not None:
            logger.error("%s %s: %s", o.tool, o.spec, o.error)
        elif o.skipped:
            print(f"{o.tool} {label}: not managed by toolpin, nothing to install")
        elif o.already_installed:
            print(f"{o.tool} {label} is already installed")
        else:
            suffix = f" with {len(o.warnings)} warning(s)" if o.warnings else ""
            print(f"{o.tool} {label} installed{suffix}")

    if failures:
        logger.error("%d of %d install(s) failed", len(failures), len(outcomes))
        codes = {o.error.exit_code for o in failures}
        return codes.pop() if len(codes) == 1 else ExitCodes.FAILURE.value
    if warned and getattr(args, "ERROR_ON_WARNINGS", False):
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def run_uninstall(app, args: Any) -> int:
    app.installer.uninstall(args.TOOL, args.VERSION)
    reshim(app.settings, app.registry)
    print(f"Uninstalled {args.TOOL} {args.VERSION}")
    return ExitCodes.SUCCESS.value


def run_ls(app, args: Any) -> int:
    tools = [args.TOOL] if args.TOOL else installed_tools(app.settings)
    context = app.dispatcher.build_context()
    for tool in tools:
        current = None
        try:
            current = app.resolver.resolve(tool, context).version
        except ToolpinError as e:
            logger.debug("No current version for %s: %s", tool, e)
        versions = installed_versions(app.settings, tool)
        if not args.TOOL:
            print(tool)
        for version in versions:
            marker = "*" if version == current else " "
            print(f"  {marker}{version}")
    return ExitCodes.SUCCESS.value


def run_ls_remote(app, args: Any) -> int:
    plugin = app.registry.get(args.TOOL)
    for version in plugin.remote_versions():
        if matches_prefix(version, args.PREFIX):
            sys.stdout.write(version + "\n")
    return ExitCodes.SUCCESS.value


def run_cleanup(app, args: Any) -> int:
    report = app.installer.cleanup()
    for path in report.staging_removed:
        print(f"removed staging {path}")
    for path in report.locks_removed:
        print(f"removed stale lock {path}")
    for path in report.downloads_removed:
        print(f"removed download {path}")
    return ExitCodes.SUCCESS.value
