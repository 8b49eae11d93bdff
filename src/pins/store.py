"""ConfigStore: read/write access to pin files and environment pins.

The store holds no policy. ``build_context`` snapshots every input that
resolution may look at into one immutable ResolutionContext.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Mapping, Optional, Tuple

from constants import Constants, tool_env_key
from versioning.models import DirectoryPins, LegacyFile, PinSource, ResolutionContext
from .tool_versions import ToolVersionFile, update_pin

logger = logging.getLogger(__name__)


def ancestor_dirs(cwd: str) -> List[str]:
    """``/a/b/c`` -> ``['/a/b/c', '/a/b', '/a', '/']``."""
    current = os.path.abspath(cwd)
    chain = [current]
    while True:
        parent = os.path.dirname(current)
        if parent == current:
            return chain
        chain.append(parent)
        current = parent


def env_pin_var(tool: str) -> str:
    return Constants.ENV_TOOL_VERSION_TEMPLATE.format(tool=tool_env_key(tool))


class ConfigStore:
    """Owns the on-disk pin files (directory and global)."""

    def __init__(self, settings):
        self.settings = settings

    @property
    def filename(self) -> str:
        return self.settings.tool_versions_filename

    @property
    def global_path(self) -> str:
        return self.settings.global_tool_versions

    def local_path(self, cwd: str) -> str:
        return os.path.join(os.path.abspath(cwd), self.filename)

    def nearest_pin_file(self, cwd: str) -> Optional[str]:
        """Closest existing pin file from ``cwd`` upward, if any."""
        for directory in ancestor_dirs(cwd):
            candidate = os.path.join(directory, self.filename)
            if os.path.isfile(candidate):
                return candidate
        return None

    def read(self, path: str) -> ToolVersionFile:
        return ToolVersionFile.load(path)

    def set_pin(self, path: str, tool: str, spec: str) -> bool:
        return update_pin(path, tool, spec, timeout=self.settings.lock_timeout)

    def unset_pin(self, path: str, tool: str) -> bool:
        return update_pin(path, tool, None, timeout=self.settings.lock_timeout)

    def _pin_source(self, path: str) -> Optional[PinSource]:
        if not os.path.isfile(path):
            return None
        return PinSource(path=path, pins=ToolVersionFile.load(path).as_dict())

    def _legacy_files(self, directory: str, filenames: Iterable[str]) -> Tuple[LegacyFile, ...]:
        found = []
        for filename in filenames:
            path = os.path.join(directory, filename)
            if not os.path.isfile(path):
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    content = f.read()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable legacy version file %s: %s", path, e)
                continue
            found.append(LegacyFile(filename=filename, path=path, content=content))
        return tuple(found)

    def build_context(
        self,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        explicit: Optional[Mapping[str, str]] = None,
        legacy_filenames: Iterable[str] = (),
    ) -> ResolutionContext:
        """Read every pin input once.

        Raises:
            ToolVersionFileError: a pin file in the chain fails validation.
        """
        cwd = os.path.abspath(cwd or os.getcwd())
        env = dict(os.environ if env is None else env)
        legacy = sorted(set(legacy_filenames)) if self.settings.legacy_version_file else []
        directories = []
        for directory in ancestor_dirs(cwd):
            tool_versions = self._pin_source(os.path.join(directory, self.filename))
            legacy_files = self._legacy_files(directory, legacy)
            if tool_versions is None and not legacy_files:
                continue
            directories.append(
                DirectoryPins(directory=directory, tool_versions=tool_versions, legacy_files=legacy_files)
            )
        return ResolutionContext(
            cwd=cwd,
            env=env,
            explicit=dict(explicit or {}),
            directories=tuple(directories),
            global_pins=self._pin_source(self.global_path),
        )
