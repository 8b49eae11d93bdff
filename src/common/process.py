"""Process execution for plugin hooks and dispatched tools.

``run`` is the fork-and-wait path used for plugin scripts and the ``exec``
fallback; ``exec_replace`` replaces the current process image and is what
shims use so signals and stdio go straight to the tool.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from constants import ExitCodes
from errors import ExecError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturedOutput:
    """Result of a captured command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def normalize_returncode(returncode: int) -> int:
    """Map a child's status onto a shell-style exit code.

    A negative value from subprocess means the child died of that signal;
    shells report 128 + signum for that case.
    """
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


class ExecutionEngine:
    """Runs external commands on behalf of plugins, the installer and shims."""

    def run(
        self,
        argv: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Run with inherited stdio and return a shell-style exit code."""
        logger.debug("Running: %s", " ".join(argv))
        try:
            result = subprocess.run(  # noqa: S603
                list(argv),
                env=dict(env) if env is not None else None,
                cwd=cwd,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            logger.error("Command not found: %s", argv[0])
            return ExitCodes.COMMAND_NOT_FOUND.value
        except PermissionError:
            logger.error("Command not executable: %s", argv[0])
            return ExitCodes.EXEC_ERROR.value
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            return ExitCodes.INTERRUPTED.value
        return normalize_returncode(result.returncode)

    def capture(
        self,
        argv: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CapturedOutput:
        """Run and collect stdout/stderr as text.

        Raises:
            ExecError: the program cannot be started or times out.
        """
        logger.debug("Capturing: %s", " ".join(argv))
        try:
            result = subprocess.run(  # noqa: S603
                list(argv),
                env=dict(env) if env is not None else None,
                cwd=cwd,
                timeout=timeout,
                capture_output=True,
                text=True,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExecError(f"{argv[0]} timed out after {timeout}s") from exc
        except OSError as exc:
            raise ExecError(f"cannot run {argv[0]}: {exc.strerror or exc}") from exc
        return CapturedOutput(
            normalize_returncode(result.returncode), result.stdout or "", result.stderr or ""
        )

    def exec_replace(self, path: str, argv: Sequence[str], env: Mapping[str, str]) -> None:
        """Replace the current process with ``path``. Only returns by raising.

        Raises:
            ExecError: the exec call itself failed.
        """
        logger.debug("exec %s", path)
        # Inherited SIGINT handling must not leak into the tool.
        signal.signal(signal.SIGINT, signal.SIG_DFL)
        try:
            os.execve(path, list(argv), dict(env))
        except OSError as exc:
            raise ExecError(f"failed to exec {path}: {exc.strerror or exc}") from exc
