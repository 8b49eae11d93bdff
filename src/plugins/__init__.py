"""Tool plugins: the capability interface, its implementations and the registry."""

from .base import InstallContext, Plugin
from .registry import CORE_PLUGINS, PluginRegistry
from .script import ScriptPlugin

__all__ = ["CORE_PLUGINS", "InstallContext", "Plugin", "PluginRegistry", "ScriptPlugin"]
