"""API routes"""

from discovery_bridge.api import sync

__all__ = ["sync"]
