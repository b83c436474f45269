"""
Bidirectional channels.

The sync clients only depend on the ``Channel`` contract; the
WebSocket implementation is the one shipped for production use.
"""

from .base import Channel, ListenerRegistry
from .websocket import WebSocketChannel, get_shared_channel

__all__ = [
    "Channel",
    "ListenerRegistry",
    "WebSocketChannel",
    "get_shared_channel",
]
