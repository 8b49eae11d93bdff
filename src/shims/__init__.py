"""Shim generation and dispatch."""

from .dispatcher import ShimDispatcher
from .reshim import reshim

__all__ = ["ShimDispatcher", "reshim"]
