"""
Bidirectional channel interface.

Defines the contract the sync clients consume: fire-and-forget
events, acknowledged requests with a timeout, listener management
and a connect/disconnect lifecycle.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class ListenerRegistry:
    """Event listeners keyed by event name.

    ``remove`` undoes exactly one ``add`` of the same handler, so
    repeated subscribe/cancel cycles never leak listeners.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def add(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def remove(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event]

    def handlers(self, event: str) -> list[Handler]:
        """Snapshot of the listeners for an event, in registration order."""
        return list(self._handlers.get(event, ()))

    def count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))


class Channel(ABC):
    """Abstract base class for channel implementations.

    Subclasses provide the transport (``connect``, ``emit``,
    ``emit_with_ack``, ``connected``); listener bookkeeping and
    dispatch live here.

    Implementations:
        - WebSocketChannel: aiohttp WebSocket with JSON frames

    Thread Safety:
        Channels are NOT thread-safe. Use them from the event loop
        that created them.
    """

    def __init__(self) -> None:
        self._listeners = ListenerRegistry()
        self._background: set[asyncio.Task[Any]] = set()

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the channel currently has an open connection."""
        ...

    @abstractmethod
    def connect(self) -> None:
        """Request a connection. Returns immediately.

        The ``connect`` event fires once the connection is established.
        """
        ...

    @abstractmethod
    def emit(self, event: str, payload: Any) -> None:
        """Send an event without waiting for a reply.

        Emitting on a disconnected channel is a no-op for the caller.
        """
        ...

    @abstractmethod
    async def emit_with_ack(self, event: str, payload: Any, timeout: float) -> Any:
        """Send an event and wait for the peer's acknowledgement.

        Args:
            event: Event name
            payload: JSON-serializable payload
            timeout: Seconds to wait for the reply

        Returns:
            The reply payload

        Raises:
            RequestTimeoutError: If no reply arrives within ``timeout``
            TransportError: If the channel is closed while waiting
        """
        ...

    def on(self, event: str, handler: Handler) -> None:
        self._listeners.add(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self._listeners.remove(event, handler)

    def listener_count(self, event: str) -> int:
        return self._listeners.count(event)

    def dispatch(self, event: str, *args: Any) -> None:
        """Invoke every listener for an event.

        Listener failures are logged and do not stop delivery to the
        remaining listeners. Coroutine listeners run as tasks.
        """
        for handler in self._listeners.handlers(event):
            try:
                result = handler(*args)
            except Exception:
                logger.exception(f"Listener for {event} failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._background.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Async listener failed: {task.exception()}")
