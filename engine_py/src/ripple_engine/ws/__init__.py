"""
WebSocket server, client and wire events for the Ripple match engine.
"""

from .server import app

__all__ = ["app"]
