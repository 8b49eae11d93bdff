"""Read-only view of the installs tree.

An install is published iff ``installs/<tool>/<version>/`` holds the marker
file. The resolver and shim lookup read through these helpers; only the
Installer writes.
"""

from __future__ import annotations

import json
import logging
import os
from typing import List, Optional

from constants import Constants
from versioning.matching import sort_versions
from versioning.models import InstalledVersion

logger = logging.getLogger(__name__)


def marker_path(install_dir: str) -> str:
    return os.path.join(install_dir, Constants.INSTALL_MARKER)


def is_published(install_dir: str) -> bool:
    return os.path.isfile(marker_path(install_dir))


def read_install(settings, tool: str, version: str) -> Optional[InstalledVersion]:
    """Load the InstalledVersion for (tool, version), or None if not published."""
    install_dir = settings.install_path(tool, version)
    path = marker_path(install_dir)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Install marker %s is unreadable (%s); treating as installed", path, e)
        data = {}
    return InstalledVersion(
        tool=tool,
        version=version,
        path=install_dir,
        installed_at=data.get("installed_at"),
        default_packages=dict(data.get("default_packages") or {}),
    )


def installed_versions(settings, tool: str) -> List[str]:
    """Published versions of ``tool``, oldest first. Dot-directories are never versions."""
    tool_dir = os.path.join(settings.installs_dir, tool)
    if not os.path.isdir(tool_dir):
        return []
    names = [
        name for name in os.listdir(tool_dir)
        if not name.startswith(".") and is_published(os.path.join(tool_dir, name))
    ]
    return sort_versions(names)


def installed_tools(settings) -> List[str]:
    """Tool directories under installs/, registered as plugins or not."""
    if not os.path.isdir(settings.installs_dir):
        return []
    return sorted(
        name for name in os.listdir(settings.installs_dir)
        if not name.startswith(".") and os.path.isdir(os.path.join(settings.installs_dir, name))
    )
