"""
Abstract document sync storage interface.

Defines the contract that both sync modes (live channel and static
HTTP snapshots) implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

UpdateCallback = Callable[[str, bytes], Any]
DisconnectCallback = Callable[[str], Any]


@dataclass(frozen=True)
class PullResult:
    """Outcome of a successful pull.

    Attributes:
        data: Delta the caller must apply to catch up with the remote doc
        state: Remote state vector after the delta, when the server sends one
    """

    data: bytes
    state: bytes | None = None


class Subscription(ABC):
    """Handle for a live update subscription."""

    @abstractmethod
    def cancel(self) -> None:
        """Detach the subscription's listeners. Safe to call repeatedly."""
        ...


class DocSyncStorage(ABC):
    """Abstract interface for document sync storage.

    All sync modes (cloud, cloud-static) must implement this interface.
    """

    name: str

    @abstractmethod
    async def pull(self, doc_id: str, state: bytes | None = None) -> PullResult | None:
        """Fetch what a local copy of a doc is missing.

        Args:
            doc_id: The document ID
            state: Local state vector; empty or None means "send everything"

        Returns:
            The missing delta, or None if the doc does not exist remotely

        Raises:
            SyncStorageError: If the remote cannot serve the request
        """
        ...

    @abstractmethod
    async def push(self, doc_id: str, update: bytes) -> None:
        """Send a locally produced delta to the remote.

        Args:
            doc_id: The document ID
            update: The delta to send

        Raises:
            SyncStorageError: If the remote rejects or never acknowledges it
        """
        ...

    @abstractmethod
    async def subscribe(
        self,
        on_update: UpdateCallback,
        on_disconnect: DisconnectCallback,
    ) -> Subscription:
        """Receive remote deltas as they are broadcast.

        Args:
            on_update: Called with (doc_id, update) for every remote delta
            on_disconnect: Called with the reason when the live channel drops

        Returns:
            A handle whose ``cancel()`` stops delivery
        """
        ...
