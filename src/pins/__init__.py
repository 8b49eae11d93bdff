"""Pin files and the per-invocation resolution snapshot."""

from .store import ConfigStore
from .tool_versions import ToolVersionFile, update_pin

__all__ = ["ConfigStore", "ToolVersionFile", "update_pin"]
