"""Token parsing utilities for version specs."""

import re
from typing import Optional, Tuple

from errors import InvalidVersionSpec
from .models import SpecKind, VersionSpec

_RELATIVE_RE = re.compile(r"^(?P<base>.+)!-(?P<offset>\d+)$")
_NUMERIC_PART_RE = re.compile(r"^\d+$")


def _strip_v(value: str) -> str:
    if len(value) > 1 and value[0] in "vV" and value[1].isdigit():
        return value[1:]
    return value


def _looks_numeric(value: str) -> bool:
    return bool(value) and value[0].isdigit()


def _numeric_kind(value: str) -> SpecKind:
    """EXACT for full versions (``20.0.0``, ``3.12.0rc1``), PREFIX for short ones (``20``, ``18.2``)."""
    parts = value.split(".")
    if len(parts) >= 3:
        return SpecKind.EXACT
    if all(_NUMERIC_PART_RE.match(p) for p in parts):
        return SpecKind.PREFIX
    return SpecKind.EXACT


def parse_version_spec(raw: str, experimental: bool = False) -> VersionSpec:
    """Parse a version spec string into a VersionSpec.

    Raises:
        InvalidVersionSpec: empty input, or an experimental form without the flag.
    """
    text = (raw or "").strip()
    if not text:
        raise InvalidVersionSpec("empty version spec")

    lowered = text.lower()
    if lowered == "system":
        return VersionSpec(raw=text, kind=SpecKind.SYSTEM, value="system")
    if lowered == "latest":
        return VersionSpec(raw=text, kind=SpecKind.LATEST, value="latest")

    prefix, sep, rest = text.partition(":")
    if sep:
        rest = rest.strip()
        if prefix == "ref":
            if not rest:
                raise InvalidVersionSpec(f"'{text}': ref: needs a value")
            return VersionSpec(raw=text, kind=SpecKind.REF, value=rest)
        if prefix == "path":
            if not experimental:
                raise InvalidVersionSpec(f"'{text}': path: versions require experimental mode")
            if not rest:
                raise InvalidVersionSpec(f"'{text}': path: needs a directory")
            return VersionSpec(raw=text, kind=SpecKind.PATH, value=rest)
        if prefix == "prefix":
            return VersionSpec(raw=text, kind=SpecKind.PREFIX, value=_strip_v(rest))

    match = _RELATIVE_RE.match(text)
    if match:
        if not experimental:
            raise InvalidVersionSpec(f"'{text}': relative versions require experimental mode")
        base = _strip_v(match.group("base"))
        if not _looks_numeric(base):
            raise InvalidVersionSpec(f"'{text}': relative versions need a numeric base")
        return VersionSpec(
            raw=text, kind=SpecKind.RELATIVE, value=base, offset=int(match.group("offset"))
        )

    value = _strip_v(text)
    if _looks_numeric(value):
        return VersionSpec(raw=text, kind=_numeric_kind(value), value=value)
    return VersionSpec(raw=text, kind=SpecKind.ALIAS, value=text)


def parse_tool_token(token: str) -> Tuple[str, Optional[str]]:
    """Split ``tool@spec`` into (tool, spec or None).

    The first ``@`` separates, so aliases such as ``lts/hydrogen`` survive intact.
    """
    token = token.strip()
    tool, sep, spec = token.partition("@")
    tool = tool.strip()
    if not tool:
        raise InvalidVersionSpec(f"'{token}': missing tool name")
    if not sep:
        return tool, None
    spec = spec.strip()
    if not spec:
        raise InvalidVersionSpec(f"'{token}': missing version after '@'")
    return tool, spec


def split_install_type(version: str) -> Tuple[str, str]:
    """Map an install directory name to the (install type, version) plugins see.

    ``ref-<r>`` directories are built from a source ref; everything else is a release.
    """
    if version.startswith("ref-") and len(version) > 4:
        return "ref", version[4:]
    return "version", version
