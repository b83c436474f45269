"""
Shared test configuration and fixtures.

Provides an in-memory channel that records what clients send and
lets tests play the server side: acknowledge requests, broadcast
events and drive connect/disconnect cycles.
"""

import asyncio
from typing import Any

import pytest

from workspace_sync.channel.base import Channel
from workspace_sync.exceptions import RequestTimeoutError
from workspace_sync.lifecycle import CleanupService


class FakeChannel(Channel):
    """
    In-memory channel for testing without a server.

    Requests for events without a configured reply are never
    acknowledged, so they run into the caller's timeout.
    """

    def __init__(self, connected: bool = False):
        super().__init__()
        self._connected = connected
        self.connect_calls = 0
        self.emitted: list[tuple[str, Any]] = []
        self.requests: list[tuple[str, Any, float]] = []
        self.replies: dict[str, Any] = {}

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self.connect_calls += 1

    def emit(self, event: str, payload: Any) -> None:
        # Disconnected emits are dropped, like the real channel
        if self._connected:
            self.emitted.append((event, payload))

    async def emit_with_ack(self, event: str, payload: Any, timeout: float) -> Any:
        self.requests.append((event, payload, timeout))
        if event not in self.replies:
            try:
                await asyncio.wait_for(asyncio.Event().wait(), timeout)
            except TimeoutError:
                raise RequestTimeoutError(event, timeout) from None

        reply = self.replies[event]
        if callable(reply):
            return reply(payload)
        return reply

    def reply_with(self, event: str, reply: Any) -> None:
        """Acknowledge every ``event`` request with ``reply`` (or reply(payload))."""
        self.replies[event] = reply

    def simulate_connect(self) -> None:
        self._connected = True
        self.dispatch("connect")

    def simulate_disconnect(self, reason: str = "transport close") -> None:
        self._connected = False
        self.dispatch("disconnect", reason)

    def simulate_server_event(self, event: str, payload: Any) -> None:
        self.dispatch(event, payload)

    def emitted_payloads(self, event: str) -> list[Any]:
        return [payload for name, payload in self.emitted if name == event]


@pytest.fixture
def channel():
    """A channel that is already connected."""
    return FakeChannel(connected=True)


@pytest.fixture
def offline_channel():
    """A channel that has not connected yet."""
    return FakeChannel(connected=False)


@pytest.fixture
def cleanup_service():
    return CleanupService()
