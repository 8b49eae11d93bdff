"""Shim script generation.

A shim is a two-line POSIX sh script named after a binary that re-enters
toolpin with ``shim <bin> -- "$@"``. ``reshim`` rewrites the whole set from
the binaries of every installed version of every registered plugin.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import sys
import tempfile
from typing import Dict, List

from constants import Constants
from errors import ToolpinError
from installer.layout import installed_tools, installed_versions, read_install

logger = logging.getLogger(__name__)

SHIM_MARKER = "# toolpin shim"


def path_without(path_value: str, excluded: str) -> str:
    """``PATH`` with every entry equal to ``excluded`` removed."""
    excluded = os.path.normpath(excluded)
    return os.pathsep.join(
        entry for entry in path_value.split(os.pathsep)
        if entry and os.path.normpath(entry) != excluded
    )


def toolpin_command(settings) -> str:
    """Shell words that run toolpin from a shim."""
    search = path_without(settings.env.get("PATH", os.defpath), settings.shims_dir)
    found = shutil.which(Constants.PROG, path=search)
    if found:
        return shlex.quote(found)
    return f"{shlex.quote(sys.executable)} -m {Constants.PROG}"


def render_shim(bin_name: str, command: str) -> str:
    return (
        "#!/bin/sh\n"
        f"{SHIM_MARKER} for {bin_name}\n"
        f"exec {command} shim {shlex.quote(bin_name)} -- \"$@\"\n"
    )


def _write_executable(path: str, content: str) -> None:
    directory = os.path.dirname(path)
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".shim-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, 0o755)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _is_shim(path: str) -> bool:
    try:
        with open(path, "r", encoding="utf-8") as f:
            f.readline()
            return f.readline().startswith(SHIM_MARKER)
    except (OSError, UnicodeDecodeError):
        return False


def _plain_bin_entries(install_dir: str) -> List[str]:
    bin_dir = os.path.join(install_dir, "bin")
    if not os.path.isdir(bin_dir):
        return []
    return sorted(
        name for name in os.listdir(bin_dir)
        if os.path.isfile(os.path.join(bin_dir, name)) and os.access(os.path.join(bin_dir, name), os.X_OK)
    )


def collect_binaries(settings, registry) -> Dict[str, List[str]]:
    """Binary name -> tools providing it, over every installed version.

    Installs whose plugin was removed keep their shims (read from ``bin/``),
    so running one reports the missing plugin instead of vanishing.
    """
    binaries: Dict[str, List[str]] = {}
    tools = sorted(set(registry.list()) | set(installed_tools(settings)))
    for tool in tools:
        try:
            plugin = registry.get(tool) if registry.exists(tool) else None
            for version in installed_versions(settings, tool):
                install = read_install(settings, tool, version)
                if plugin is not None:
                    names = plugin.list_binaries(install)
                else:
                    names = _plain_bin_entries(install.path)
                for name in names:
                    owners = binaries.setdefault(name, [])
                    if tool not in owners:
                        owners.append(tool)
        except ToolpinError as e:
            logger.warning("Skipping shims for %s: %s", tool, e)
    return binaries


def reshim(settings, registry) -> List[str]:
    """Regenerate the shims directory. Returns the shim names now present."""
    os.makedirs(settings.shims_dir, exist_ok=True)
    binaries = collect_binaries(settings, registry)
    command = toolpin_command(settings)
    for name in sorted(binaries):
        _write_executable(os.path.join(settings.shims_dir, name), render_shim(name, command))
    for name in os.listdir(settings.shims_dir):
        path = os.path.join(settings.shims_dir, name)
        if name not in binaries and not name.startswith(".") and _is_shim(path):
            logger.debug("Removing stale shim %s", name)
            os.unlink(path)
    logger.debug("Shims: %s", ", ".join(sorted(binaries)) or "(none)")
    return sorted(binaries)
