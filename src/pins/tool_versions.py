"""Reader/writer for ``.tool-versions`` style pin files.

Format: one ``<tool> <version> [<fallback> ...]`` entry per line; blank
lines and ``#`` comments are ignored, and a trailing ``# comment`` is
allowed. Versions after the first are fallbacks, tried in order when the
first is not installed. A tool may appear more than once only if every
entry agrees.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Dict, List, Optional, Tuple

from common.locks import FileLock
from constants import Constants
from errors import ToolVersionFileError

logger = logging.getLogger(__name__)


def _strip_comment(line: str) -> str:
    return line.split("#", 1)[0].strip()


class ToolVersionFile:
    """In-memory view of one pin file, preserving the original lines for rewrites."""

    def __init__(self, path: str, lines: Optional[List[str]] = None):
        self.path = path
        self._lines: List[str] = list(lines or [])
        self._pins: Dict[str, Tuple[str, int]] = {}
        self._validate()

    @classmethod
    def load(cls, path: str) -> "ToolVersionFile":
        """Read ``path``; a missing file is an empty pin set.

        Raises:
            ToolVersionFileError: the file is malformed or has conflicting entries.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError:
            return cls(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ToolVersionFileError(path, f"cannot read: {e}") from e
        return cls.parse(text, path)

    @classmethod
    def parse(cls, text: str, path: str = "<string>") -> "ToolVersionFile":
        return cls(path, text.splitlines())

    def _validate(self) -> None:
        pins: Dict[str, Tuple[str, int]] = {}
        for lineno, line in enumerate(self._lines, start=1):
            body = _strip_comment(line)
            if not body:
                continue
            parts = body.split()
            if len(parts) < 2:
                raise ToolVersionFileError(
                    self.path, f"expected '<tool> <version> [<fallback> ...]', got {body!r}", lineno
                )
            tool, spec = parts[0], " ".join(parts[1:])
            if tool in pins and pins[tool][0] != spec:
                raise ToolVersionFileError(
                    self.path,
                    f"conflicting entries for {tool}: {pins[tool][0]!r} "
                    f"(line {pins[tool][1]}) and {spec!r}",
                    lineno,
                )
            pins.setdefault(tool, (spec, lineno))
        self._pins = pins

    def get(self, tool: str) -> Optional[str]:
        """Raw pin value; several versions come back space separated."""
        entry = self._pins.get(tool)
        return entry[0] if entry else None

    def tools(self) -> List[str]:
        return list(self._pins)

    def as_dict(self) -> Dict[str, str]:
        return {tool: spec for tool, (spec, _) in self._pins.items()}

    def set(self, tool: str, spec: str) -> None:
        """Pin ``tool``: rewrite its first line in place, drop any others, or append."""
        new_lines: List[str] = []
        replaced = False
        for line in self._lines:
            body = _strip_comment(line)
            if body and body.split()[0] == tool:
                if replaced:
                    continue
                comment = line[len(line.split("#", 1)[0]):] if "#" in line else ""
                new_lines.append(f"{tool} {spec}" + (f" {comment.strip()}" if comment else ""))
                replaced = True
            else:
                new_lines.append(line)
        if not replaced:
            new_lines.append(f"{tool} {spec}")
        self._lines = new_lines
        self._validate()

    def unset(self, tool: str) -> bool:
        """Remove every entry for ``tool``. Returns False if it was not pinned."""
        kept = [
            line for line in self._lines
            if not (_strip_comment(line) and _strip_comment(line).split()[0] == tool)
        ]
        removed = len(kept) != len(self._lines)
        self._lines = kept
        self._validate()
        return removed

    def render(self) -> str:
        return "\n".join(self._lines) + ("\n" if self._lines else "")

    def save(self) -> None:
        """Write atomically next to the target so readers see old or new, never partial."""
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".tool-versions.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.render())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


def update_pin(
    path: str,
    tool: str,
    spec: Optional[str],
    timeout: float = Constants.DEFAULT_LOCK_TIMEOUT_SEC,
) -> bool:
    """Set (or with ``spec=None`` remove) a pin under a lock scoped to the file.

    Returns True if the file changed.
    """
    with FileLock(path + ".lock", timeout=timeout):
        pin_file = ToolVersionFile.load(path)
        if spec is None:
            changed = pin_file.unset(tool)
        else:
            changed = pin_file.get(tool) != spec
            pin_file.set(tool, spec)
        if changed:
            pin_file.save()
            logger.debug("Updated %s: %s -> %s", path, tool, spec)
        return changed
