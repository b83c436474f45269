"""
Workspace Sync

Client-side synchronization of collaborative workspace documents.

Provides:
- Live sync over a reconnecting WebSocket channel (pull, push, live updates)
- Read-only HTTP snapshot fallback when no channel is available
- Base64 codec for binary update and state-vector payloads

Usage:

    >>> from workspace_sync import CleanupService, SyncConfig, create_sync_storage
    >>> config = SyncConfig.from_environment()
    >>> cleanup = CleanupService()
    >>> storage = create_sync_storage("workspace-1", config, cleanup)
    >>> result = await storage.pull("doc-1", local_state_vector)
    >>> if result is None:
    ...     ...  # doc does not exist remotely, create it fresh
    >>> await storage.push("doc-1", local_update)
    >>> subscription = await storage.subscribe(apply_remote_update, handle_disconnect)
    ...
    >>> subscription.cancel()
    >>> cleanup.cleanup()
"""

from .channel import Channel, ListenerRegistry, WebSocketChannel, get_shared_channel
from .codec import decode, encode
from .config import SyncConfig, SyncMode

# Exceptions
from .exceptions import (
    CodecError,
    ConfigurationError,
    RemoteProtocolError,
    RequestTimeoutError,
    SubscriptionError,
    SyncStorageError,
    TransportError,
    UnsupportedOperationError,
)
from .lifecycle import CleanupService
from .logging_utils import configure_structured_logging, get_sync_logger
from .storage import (
    CloudSyncStorage,
    DocSyncStorage,
    PullResult,
    StaticSyncStorage,
    Subscription,
    create_sync_storage,
)

__all__ = [
    # Storage
    "DocSyncStorage",
    "CloudSyncStorage",
    "StaticSyncStorage",
    "PullResult",
    "Subscription",
    "create_sync_storage",
    # Channel
    "Channel",
    "ListenerRegistry",
    "WebSocketChannel",
    "get_shared_channel",
    # Codec
    "encode",
    "decode",
    # Configuration and lifecycle
    "SyncConfig",
    "SyncMode",
    "CleanupService",
    # Logging
    "configure_structured_logging",
    "get_sync_logger",
    # Exceptions
    "SyncStorageError",
    "RemoteProtocolError",
    "RequestTimeoutError",
    "UnsupportedOperationError",
    "TransportError",
    "SubscriptionError",
    "CodecError",
    "ConfigurationError",
]

__version__ = "0.1.0"
