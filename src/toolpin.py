"""toolpin: per-project runtime version manager.

Entry point: parses arguments, configures logging, wires the components and
dispatches to the subcommand handlers. This is the only place errors become
exit codes.
"""

import logging
import os
import sys
from typing import Any, List, Optional

from args import parse_args
from cli_config import build_app
from cli_exec import run_exec, run_reshim, run_shim, run_where, run_which
from cli_install import run_cleanup, run_install, run_ls, run_ls_remote, run_uninstall
from cli_pins import run_current, run_pin
from cli_plugin import run_plugin
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from errors import ToolpinError

logger = logging.getLogger(__name__)

HANDLERS = {
    "plugin": run_plugin,
    "install": run_install,
    "uninstall": run_uninstall,
    "ls": run_ls,
    "ls-remote": run_ls_remote,
    "exec": run_exec,
    "shim": run_shim,
    "reshim": run_reshim,
    "which": run_which,
    "where": run_where,
    "local": run_pin,
    "global": run_pin,
    "current": run_current,
    "cleanup": run_cleanup,
}


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    # Honor CLI --loglevel
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()

    configure_logging()

    if getattr(args, "QUIET", False):
        logging.getLogger().setLevel(logging.ERROR)
    elif getattr(args, "LOG_LEVEL", None):
        logging.getLogger().setLevel(getattr(logging, str(args.LOG_LEVEL).upper(), logging.INFO))

    # Add file handler if --logfile specified
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
        logging.getLogger().addHandler(file_handler)
        logger.debug("Logging to file: %s", log_file)


def run(argv: Optional[List[str]] = None) -> int:
    """Run one toolpin command and return its exit code."""
    args = parse_args(argv)
    _setup_logging(args)
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.action)
        )
    try:
        app = build_app(args)
        return HANDLERS[args.action](app, args)
    except ToolpinError as e:
        logger.error("%s", e)
        return e.exit_code
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return ExitCodes.INTERRUPTED.value


def main(argv: Optional[List[str]] = None) -> None:
    """Main function of the program."""
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
