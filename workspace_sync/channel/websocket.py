"""
WebSocket channel over aiohttp.

Frames are JSON text messages:

    {"type": "event", "event": "<name>", "data": <payload>}
    {"type": "event", "event": "<name>", "data": <payload>, "ack": <id>}
    {"type": "ack", "ack": <id>, "data": <reply>}

The first two travel in both directions; the server answers a frame
carrying ``ack`` with an ``ack`` frame holding the same id.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from ..exceptions import RequestTimeoutError, TransportError
from .base import Channel

if TYPE_CHECKING:
    from ..config import SyncConfig

logger = logging.getLogger(__name__)

# Disconnect reasons passed to ``disconnect`` listeners
CLIENT_DISCONNECT = "io client disconnect"
SERVER_DISCONNECT = "io server disconnect"
TRANSPORT_ERROR = "transport error"

_RESERVED_EVENTS = frozenset({"connect", "disconnect"})


class WebSocketChannel(Channel):
    """Channel backed by an aiohttp client WebSocket.

    The connection runs in a background task that reconnects after
    ``reconnect_delay`` seconds when the socket drops. Acknowledged
    requests issued while disconnected wait in the outbox and go out
    after the next connect; plain events are dropped instead.

    Example:
        >>> channel = WebSocketChannel("wss://sync.example.com/sync")
        >>> channel.on("connect", lambda: print("connected"))
        >>> channel.connect()
        >>> reply = await channel.emit_with_ack("doc-load-v2", payload, timeout=30.0)
        >>> await channel.close()
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        auto_reconnect: bool = True,
        reconnect_delay: float = 5.0,
        heartbeat: float | None = None,
        session: aiohttp.ClientSession | None = None,
        drain_timeout: float = 5.0,
    ) -> None:
        """Initialize the channel.

        Args:
            url: WebSocket URL of the sync endpoint
            auth_token: Optional bearer token sent on connect
            auto_reconnect: Reconnect after the socket drops
            reconnect_delay: Seconds to wait before reconnecting
            heartbeat: Optional ping interval in seconds
            session: Optional shared aiohttp session (not closed by the channel)
            drain_timeout: Seconds ``close`` waits for queued frames to go out
        """
        super().__init__()
        self.url = url
        self.auth_token = auth_token
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay
        self.heartbeat = heartbeat
        self.drain_timeout = drain_timeout
        self._session = session

        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._running = False
        self._connection_task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._ack_ids = itertools.count(1)

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> WebSocketChannel:
        return cls(
            config.websocket_url,
            auth_token=config.auth_token,
            auto_reconnect=config.auto_reconnect,
            reconnect_delay=config.reconnect_delay,
            session=session,
        )

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def connect(self) -> None:
        if self._connection_task is not None and not self._connection_task.done():
            return

        self._running = True
        self._connection_task = asyncio.get_running_loop().create_task(self._connection_loop())
        logger.info(f"Channel connecting: {self.url}")

    async def close(self) -> None:
        """Flush queued frames, stop the connection loop and fail pending requests."""
        if self.connected and not self._outbox.empty():
            try:
                await asyncio.wait_for(self._outbox.join(), self.drain_timeout)
            except TimeoutError:
                logger.warning(f"Closing with {self._outbox.qsize()} unsent frames")

        self._running = False
        if _shared_channels.get(self.url) is self:
            del _shared_channels[self.url]

        if self._connection_task:
            self._connection_task.cancel()
            try:
                await self._connection_task
            except asyncio.CancelledError:
                pass
            self._connection_task = None

        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(self.url))
        self._pending.clear()

        logger.info("Channel closed")

    def emit(self, event: str, payload: Any) -> None:
        if not self.connected:
            logger.debug(f"Dropping {event}: channel not connected")
            return
        self._outbox.put_nowait({"type": "event", "event": event, "data": payload})

    async def emit_with_ack(self, event: str, payload: Any, timeout: float) -> Any:
        ack_id = next(self._ack_ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[ack_id] = future
        self._outbox.put_nowait({"type": "event", "event": event, "data": payload, "ack": ack_id})

        try:
            return await asyncio.wait_for(future, timeout)
        except TimeoutError:
            raise RequestTimeoutError(event, timeout) from None
        finally:
            self._pending.pop(ack_id, None)

    async def _connection_loop(self) -> None:
        """Main connection loop with auto-reconnect."""
        while self._running:
            try:
                if self._session is not None:
                    await self._run_socket(self._session)
                else:
                    async with aiohttp.ClientSession() as session:
                        await self._run_socket(session)
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, OSError, TransportError) as e:
                logger.error(f"Channel connection error: {e}")

            if not (self.auto_reconnect and self._running):
                break

            logger.info(f"Reconnecting in {self.reconnect_delay}s...")
            await asyncio.sleep(self.reconnect_delay)

    async def _run_socket(self, session: aiohttp.ClientSession) -> None:
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        async with session.ws_connect(self.url, headers=headers, heartbeat=self.heartbeat) as ws:
            self._ws = ws
            writer = asyncio.create_task(self._write_loop(ws))
            reason = CLIENT_DISCONNECT
            try:
                self.dispatch("connect")

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self._handle_frame(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        reason = TRANSPORT_ERROR
                        raise TransportError(self.url, ws.exception())

                reason = SERVER_DISCONNECT
            finally:
                writer.cancel()
                self._ws = None
                self.dispatch("disconnect", reason)

    async def _write_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Drain the outbox into the socket until it closes.

        Requests that already timed out are skipped. A request whose frame
        is lost mid-send fails with TransportError instead of waiting out
        its timeout.
        """
        while True:
            frame = await self._outbox.get()
            ack_id = frame.get("ack")
            try:
                if ack_id is not None and ack_id not in self._pending:
                    logger.debug(f"Skipping expired request {frame.get('event')}")
                    continue
                await ws.send_json(frame)
            except asyncio.CancelledError:
                self._fail_request(ack_id)
                raise
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.error(f"Failed to send {frame.get('event')}: {e}")
                self._fail_request(ack_id, e)
                return
            finally:
                self._outbox.task_done()

    def _fail_request(self, ack_id: int | None, cause: Exception | None = None) -> None:
        future = self._pending.get(ack_id) if ack_id is not None else None
        if future is not None and not future.done():
            future.set_exception(TransportError(self.url, cause))

    def _handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse frame: {raw[:200]}")
            return

        if not isinstance(frame, dict):
            logger.warning(f"Ignoring non-object frame: {raw[:200]}")
            return

        kind = frame.get("type")
        if kind == "ack":
            future = self._pending.get(frame.get("ack"))
            if future is not None and not future.done():
                future.set_result(frame.get("data"))
        elif kind == "event":
            event = frame.get("event")
            if isinstance(event, str) and event not in _RESERVED_EVENTS:
                self.dispatch(event, frame.get("data"))
        else:
            logger.debug(f"Ignoring frame of type {kind}")


_shared_channels: dict[str, WebSocketChannel] = {}


def get_shared_channel(config: SyncConfig) -> WebSocketChannel:
    """Return the channel shared by every workspace on ``config.websocket_url``.

    The channel is built on first use and dropped from the registry when
    it is closed, so the next call builds a fresh one.
    """
    url = config.websocket_url
    channel = _shared_channels.get(url)
    if channel is None:
        channel = WebSocketChannel.from_config(config)
        _shared_channels[url] = channel
        logger.debug(f"Created shared channel for {url}")
    return channel
