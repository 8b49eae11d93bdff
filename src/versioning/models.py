"""Data models for version requests, pins and installed versions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple


class SpecKind(Enum):
    """Kind of version request derived from the spec string."""
    EXACT = "exact"
    PREFIX = "prefix"
    ALIAS = "alias"
    LATEST = "latest"
    SYSTEM = "system"
    REF = "ref"
    PATH = "path"
    RELATIVE = "relative"


@dataclass(frozen=True)
class VersionSpec:
    """Parsed, immutable version request."""
    raw: str
    kind: SpecKind
    value: str
    # RELATIVE only: how many major versions to step back from ``value``
    offset: int = 0

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class PinSource:
    """Snapshot of one pin file: tool -> raw pin value (space separated when it lists fallbacks)."""
    path: str
    pins: Mapping[str, str]


@dataclass(frozen=True)
class LegacyFile:
    """Snapshot of a plugin-specific legacy pin file (``.nvmrc`` and friends)."""
    filename: str
    path: str
    content: str


@dataclass(frozen=True)
class DirectoryPins:
    """Everything one directory contributes to resolution."""
    directory: str
    tool_versions: Optional[PinSource]
    legacy_files: Tuple[LegacyFile, ...] = ()


@dataclass(frozen=True)
class ResolutionContext:
    """Per-invocation snapshot. Never persisted; rebuilding it replays resolution."""
    cwd: str
    env: Mapping[str, str]
    explicit: Mapping[str, str]
    directories: Tuple[DirectoryPins, ...]  # nearest first
    global_pins: Optional[PinSource]

    def configured_tools(self) -> List[str]:
        """Every tool named anywhere in the context, in first-seen order."""
        seen: Dict[str, None] = {}
        for tool in self.explicit:
            seen.setdefault(tool, None)
        for pins in self.directories:
            if pins.tool_versions:
                for tool in pins.tool_versions.pins:
                    seen.setdefault(tool, None)
        if self.global_pins:
            for tool in self.global_pins.pins:
                seen.setdefault(tool, None)
        return list(seen)


@dataclass(frozen=True)
class VersionRequest:
    """Which spec applies to a tool and where it came from."""
    tool: str
    spec: VersionSpec
    source: str  # "explicit" | "env" | pin file path | legacy file path
    fallbacks: Tuple[VersionSpec, ...] = ()

    @property
    def candidates(self) -> Tuple[VersionSpec, ...]:
        return (self.spec,) + self.fallbacks


@dataclass
class InstalledVersion:
    """A published install: identity is (tool, version)."""
    tool: str
    version: str
    path: str
    installed_at: Optional[str] = None
    default_packages: Dict[str, str] = field(default_factory=dict)
    # Set for ``system`` and ``path:`` requests, which toolpin does not own
    external: bool = False
    warnings: List[Warning] = field(default_factory=list, compare=False, repr=False)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.tool, self.version)
