"""Argument parsing functionality for toolpin."""

import argparse
import sys
from typing import List, Optional

from constants import Constants


def _add_global_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Only log errors to the console.",
                        action="store_true")
    parser.add_argument("--experimental",
                        dest="EXPERIMENTAL",
                        help="Enable experimental version specs (path:, relative '!-').",
                        action="store_true")
    parser.add_argument("--auto-install",
                        dest="AUTO_INSTALL",
                        help="Install missing versions on demand when dispatching shims.",
                        action="store_true")


def build_parser() -> argparse.ArgumentParser:
    """Build the toolpin argument parser."""
    parser = argparse.ArgumentParser(
        prog=Constants.PROG,
        description="toolpin - per-project runtime version manager",
        add_help=True,
    )
    _add_global_flags(parser)
    sub = parser.add_subparsers(dest="action", metavar="<command>")
    sub.required = True

    plugin = sub.add_parser("plugin", help="Manage plugins")
    plugin_sub = plugin.add_subparsers(dest="plugin_action", metavar="<plugin-command>")
    plugin_sub.required = True
    p = plugin_sub.add_parser("install", help="Register a plugin")
    p.add_argument("TOOL", help="Tool name")
    p.add_argument("SOURCE", nargs="?", help="Plugin directory or git URL (default: core plugin)")
    p = plugin_sub.add_parser("uninstall", help="Remove a plugin (installs stay)")
    p.add_argument("TOOL", help="Tool name")
    plugin_sub.add_parser("ls", help="List registered plugins")

    p = sub.add_parser("install", help="Install one or more versions of a tool")
    p.add_argument("TOOL", nargs="?", help="Tool name (default: every configured tool)")
    p.add_argument("SPECS", nargs="*", help="Version specs (default: the configured one)")
    p.add_argument("--error-on-warnings",
                   dest="ERROR_ON_WARNINGS",
                   help="Exit with a non-zero status code if warnings are present.",
                   action="store_true")

    p = sub.add_parser("uninstall", help="Remove an installed version")
    p.add_argument("TOOL", help="Tool name")
    p.add_argument("VERSION", help="Installed version")

    p = sub.add_parser("ls", help="List installed versions")
    p.add_argument("TOOL", nargs="?", help="Only this tool")

    p = sub.add_parser("ls-remote", help="List installable versions")
    p.add_argument("TOOL", help="Tool name")
    p.add_argument("PREFIX", nargs="?", default="", help="Only versions starting with this prefix")

    p = sub.add_parser("exec", help="Run a command with resolved tool versions")
    p.add_argument("TOOLS", nargs="*", metavar="TOOL@SPEC", help="Explicit tool versions")

    p = sub.add_parser("shim", help="Entry point used by generated shims")
    p.add_argument("BIN", help="Binary name")

    sub.add_parser("reshim", help="Regenerate shims")

    p = sub.add_parser("which", help="Show the binary a shim would run")
    p.add_argument("BIN", help="Binary name")

    p = sub.add_parser("where", help="Show the install directory of a version")
    p.add_argument("TOOL", help="Tool name")
    p.add_argument("SPEC", nargs="?", help="Version spec (default: the configured one)")

    for name, help_text in (("local", "Pin a version in ./.tool-versions"),
                            ("global", "Pin a version in the global tool-versions file")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("TOOL", help="Tool name")
        p.add_argument("SPEC", nargs="?", help="Version spec")
        p.add_argument("--unset",
                       dest="UNSET",
                       help="Remove the pin instead of setting it",
                       action="store_true")

    p = sub.add_parser("current", help="Show resolved versions for this directory")
    p.add_argument("TOOL", nargs="?", help="Only this tool")

    sub.add_parser("cleanup", help="Remove orphaned staging directories and stale locks")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program.

    Everything after the first ``--`` is the wrapped command (``exec`` and
    ``shim``) and is stored untouched in ``COMMAND``.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    command: List[str] = []
    if "--" in argv:
        idx = argv.index("--")
        argv, command = argv[:idx], argv[idx + 1:]
    args = build_parser().parse_args(argv)
    args.COMMAND = command
    return args
