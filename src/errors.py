"""Error taxonomy for toolpin.

Every failure the core can report is a ``ToolpinError`` subclass carrying the
process exit code the CLI should use. Library code raises these; only the CLI
entry point turns them into an exit status.
"""

from __future__ import annotations

from typing import Optional

from constants import ExitCodes


class ToolpinError(Exception):
    """Base class for all toolpin errors."""

    exit_code = ExitCodes.FAILURE.value


class ConfigError(ToolpinError):
    """Invalid settings value."""


class InvalidVersionSpec(ToolpinError):
    """A version spec string cannot be parsed (or needs experimental mode)."""

    exit_code = ExitCodes.USAGE_ERROR.value


class ToolVersionFileError(ToolpinError):
    """A pin file failed validation (bad line, conflicting duplicate entries)."""

    def __init__(self, path, message: str, line: Optional[int] = None):
        self.path = path
        self.line = line
        where = f"{path}:{line}" if line is not None else str(path)
        super().__init__(f"{where}: {message}")


class PluginNotFound(ToolpinError):
    """No plugin is registered for the tool name."""

    def __init__(self, tool: str, hint: Optional[str] = None):
        self.tool = tool
        message = f"plugin '{tool}' is not installed"
        if hint:
            message = f"{message}; {hint}"
        super().__init__(message)


class PluginError(ToolpinError):
    """A plugin could not be added, or one of its operations failed."""


class PluginScriptError(PluginError):
    """A plugin hook script exited non-zero."""

    def __init__(self, tool: str, hook: str, returncode: int, stderr: str = ""):
        self.tool = tool
        self.hook = hook
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"{tool} plugin hook '{hook}' exited with status {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class AliasResolutionFailed(ToolpinError):
    """A named alias/channel cannot be mapped to a concrete version."""

    def __init__(self, tool: str, alias: str, reason: Optional[str] = None):
        self.tool = tool
        self.alias = alias
        message = f"cannot resolve alias '{alias}' for {tool}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoVersionConfigured(ToolpinError):
    """Nothing in the resolution chain names a version for the tool."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(
            f"no version configured for {tool}; "
            f"pin one with: toolpin local {tool} <version>"
        )


class NoMatchingVersion(ToolpinError):
    """No released version matches a prefix / latest request."""

    def __init__(self, tool: str, spec: str):
        self.tool = tool
        self.spec = spec
        super().__init__(f"no {tool} version matches '{spec}'")


class NotInstalled(ToolpinError):
    """The resolved concrete version has no published install on disk."""

    def __init__(self, tool: str, version: str):
        self.tool = tool
        self.version = version
        super().__init__(
            f"{tool}@{version} is not installed; "
            f"run: toolpin install {tool} {version}"
        )


class InstallFailed(ToolpinError):
    """A build/download/hook step failed. Re-running the install retries it."""

    def __init__(self, tool: str, version: str, step: str, reason: str):
        self.tool = tool
        self.version = version
        self.step = step
        self.reason = reason
        super().__init__(f"failed to install {tool}@{version} during {step}: {reason}")


class LockTimeout(ToolpinError):
    """Another process held the per-version lock for longer than lock_timeout."""

    exit_code = ExitCodes.LOCK_TIMEOUT.value

    def __init__(self, lock_path, timeout: float, owner_pid: Optional[int] = None):
        self.lock_path = lock_path
        self.timeout = timeout
        self.owner_pid = owner_pid
        owner = f" (held by pid {owner_pid})" if owner_pid else ""
        super().__init__(
            f"timed out after {timeout:g}s waiting for {lock_path}{owner}; "
            "another install may still be running"
        )


class ExecError(ToolpinError):
    """The resolved binary is missing or not executable inside a valid install."""

    exit_code = ExitCodes.EXEC_ERROR.value


class CommandNotFound(ExecError):
    """The command given to ``exec`` is not on the rewritten search path."""

    exit_code = ExitCodes.COMMAND_NOT_FOUND.value


class DefaultPackageWarning(Warning):
    """A listed default package failed to install. Collected, never raised."""

    def __init__(self, tool: str, version: str, package: str, reason: str):
        self.tool = tool
        self.version = version
        self.package = package
        self.reason = reason
        super().__init__(f"{tool}@{version}: default package '{package}' failed: {reason}")
