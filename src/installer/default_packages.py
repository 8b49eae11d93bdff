"""Default packages installed right after a runtime version's first install."""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from errors import DefaultPackageWarning

logger = logging.getLogger(__name__)


def read_manifest(path: str) -> List[str]:
    """Package names from a manifest; a missing file means none.

    One package per line, blank lines and ``#`` comments ignored, order kept.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read default packages file %s: %s", path, e)
        return []
    packages = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        packages.append(stripped)
    return packages


def apply_default_packages(
    plugin, install, packages: List[str]
) -> Tuple[Dict[str, str], List[DefaultPackageWarning]]:
    """Install each package, continuing past failures.

    Returns the per-package status map (``ok``/``failed``) and one warning
    per failed package.
    """
    statuses: Dict[str, str] = {}
    warnings: List[DefaultPackageWarning] = []
    for package in packages:
        logger.info("Installing default package %s for %s@%s", package, install.tool, install.version)
        try:
            plugin.install_default_package(install, package)
        except Exception as e:  # pylint: disable=broad-exception-caught
            warning = DefaultPackageWarning(install.tool, install.version, package, str(e))
            logger.warning("%s", warning)
            warnings.append(warning)
            statuses[package] = "failed"
        else:
            statuses[package] = "ok"
    return statuses, warnings
