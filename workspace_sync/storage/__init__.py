"""
Document sync storage.

Provides a live channel storage and a static HTTP fallback behind
one interface, plus a factory that picks between them.

Example:
    >>> from workspace_sync.storage import create_sync_storage
    >>> config = SyncConfig.from_environment()
    >>> storage = create_sync_storage("ws-1", config, cleanup_service)
    >>> result = await storage.pull("doc-1")
"""

from __future__ import annotations

from ..channel.base import Channel
from ..channel.websocket import get_shared_channel
from ..config import SyncConfig, SyncMode
from ..lifecycle import CleanupService
from .base import DocSyncStorage, PullResult, Subscription
from .live import ChannelSubscription, CloudSyncStorage
from .static import StaticSyncStorage


def create_sync_storage(
    workspace_id: str,
    config: SyncConfig,
    cleanup_service: CleanupService,
    channel: Channel | None = None,
) -> DocSyncStorage:
    """Create the storage matching ``config.mode``.

    Args:
        workspace_id: The workspace to bind
        config: Sync configuration
        cleanup_service: Coordinator for teardown of live storages
        channel: Channel to use; defaults to the shared channel for
            ``config.websocket_url``, which cleanup_service then closes

    Returns:
        A CloudSyncStorage in live mode, a StaticSyncStorage in static mode
    """
    if config.mode == SyncMode.STATIC:
        return StaticSyncStorage(workspace_id, config.server_url)

    owns_channel = channel is None
    if channel is None:
        channel = get_shared_channel(config)
    storage = CloudSyncStorage(
        workspace_id,
        channel,
        cleanup_service,
        send_timeout=config.send_timeout,
    )
    if owns_channel:
        # Registered after the storage so its leave message is queued first
        cleanup_service.add(channel.close)
    return storage


__all__ = [
    "DocSyncStorage",
    "PullResult",
    "Subscription",
    "ChannelSubscription",
    "CloudSyncStorage",
    "StaticSyncStorage",
    "create_sync_storage",
]
