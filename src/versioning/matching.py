"""Version ordering and prefix matching shared by the resolver and plugins.

Ordering uses ``semantic_version`` when a string parses as (or coerces to)
semver, falls back to ``packaging.version`` for PEP 440 style strings, and
finally to plain string order. The three tiers never compare against each
other directly: any semver-like version sorts above a PEP 440 one, which
sorts above an unparseable one.
"""

from typing import Any, Iterable, List, Optional, Tuple

import semantic_version
from packaging import version as pep440


def _strip_v(value: str) -> str:
    if len(value) > 1 and value[0] in "vV" and value[1].isdigit():
        return value[1:]
    return value


def _parse(value: str) -> Tuple[int, Any]:
    text = _strip_v(value.strip())
    try:
        return 2, semantic_version.Version(text)
    except ValueError:
        pass
    try:
        return 1, pep440.Version(text)
    except pep440.InvalidVersion:
        pass
    try:
        return 2, semantic_version.Version.coerce(text)
    except ValueError:
        return 0, text


def sort_key(value: str) -> Tuple[int, Any]:
    """Key for ``sorted``; ascending order puts the newest version last."""
    return _parse(value)


def sort_versions(values: Iterable[str]) -> List[str]:
    return sorted(set(values), key=sort_key)


def is_prerelease(value: str) -> bool:
    tier, parsed = _parse(value)
    if tier == 2:
        return bool(parsed.prerelease)
    if tier == 1:
        return parsed.is_prerelease
    lowered = value.lower()
    return any(tag in lowered for tag in ("dev", "alpha", "beta", "rc", "nightly", "snapshot"))


def matches_prefix(value: str, prefix: str) -> bool:
    """True when ``value`` is ``prefix`` or continues it at a component boundary.

    ``20`` matches ``20.1.0`` and ``20-rc`` but not ``200.0.0``.
    """
    value = _strip_v(value)
    prefix = _strip_v(prefix)
    if not prefix:
        return True
    if value == prefix:
        return True
    if prefix[-1] in ".-":
        return value.startswith(prefix)
    return value.startswith(prefix + ".") or value.startswith(prefix + "-")


def newest_matching(values: Iterable[str], prefix: str = "") -> Optional[str]:
    """Newest version in ``values`` matching ``prefix``, preferring stable releases."""
    candidates = [v for v in values if matches_prefix(v, prefix)]
    if not candidates:
        return None
    stable = [v for v in candidates if not is_prerelease(v)]
    pool = stable or candidates
    return max(pool, key=sort_key)


def subtract_major(base: str, offset: int) -> str:
    """``subtract_major('20.1.0', 2) -> '18'``; never goes below zero."""
    head = _strip_v(base).split(".", 1)[0]
    digits = ""
    for ch in head:
        if not ch.isdigit():
            break
        digits += ch
    major = int(digits) if digits else 0
    return str(max(major - offset, 0))
