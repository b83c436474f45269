"""Tests for the aiohttp WebSocket channel against a real aiohttp server."""

from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from workspace_sync.channel.websocket import SERVER_DISCONNECT, WebSocketChannel
from workspace_sync.codec import encode
from workspace_sync.exceptions import RequestTimeoutError, TransportError
from workspace_sync.lifecycle import CleanupService
from workspace_sync.storage import CloudSyncStorage, PullResult

FRAMES = web.AppKey("frames", asyncio.Queue)
AUTH_HEADERS = web.AppKey("auth_headers", list)


def create_sync_app() -> web.Application:
    """A minimal sync server speaking the channel's JSON frames."""
    app = web.Application()
    app[FRAMES] = asyncio.Queue()
    app[AUTH_HEADERS] = []

    async def handle_socket(request: web.Request) -> web.WebSocketResponse:
        request.app[AUTH_HEADERS].append(request.headers.get("Authorization"))
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            await request.app[FRAMES].put(frame)

            event = frame.get("event")
            if event == "client-handshake-sync":
                await ws.send_json(
                    {
                        "type": "event",
                        "event": "server-updates",
                        "data": {
                            "workspaceId": frame["data"],
                            "guid": "doc-1",
                            "updates": [encode(b"hello")],
                        },
                    }
                )
            elif event == "doc-load-v2":
                await ws.send_json(
                    {
                        "type": "ack",
                        "ack": frame["ack"],
                        "data": {"data": {"missing": encode(b"missing"), "state": encode(b"sv")}},
                    }
                )
            elif event == "echo":
                await ws.send_json({"type": "ack", "ack": frame["ack"], "data": frame["data"]})
            elif event == "close-me":
                await ws.close()
            # "slow" and everything else is never acknowledged

        return ws

    app.router.add_get("/sync", handle_socket)
    return app


async def next_frame(app: web.Application, event: str) -> dict:
    while True:
        frame = await asyncio.wait_for(app[FRAMES].get(), 5.0)
        if frame.get("event") == event:
            return frame


def make_channel(server: TestServer, **kwargs) -> WebSocketChannel:
    kwargs.setdefault("auto_reconnect", False)
    return WebSocketChannel(str(server.make_url("/sync")), **kwargs)


async def wait_connected(channel: WebSocketChannel) -> None:
    connected = asyncio.Event()
    channel.on("connect", connected.set)
    channel.connect()
    await asyncio.wait_for(connected.wait(), 5.0)


class TestWebSocketChannel:
    @pytest.mark.asyncio
    async def test_connect_fires_event(self):
        async with TestServer(create_sync_app()) as server:
            channel = make_channel(server)
            try:
                assert channel.connected is False
                await wait_connected(channel)
                assert channel.connected is True
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_ack_round_trip(self):
        async with TestServer(create_sync_app()) as server:
            channel = make_channel(server)
            try:
                await wait_connected(channel)
                first, second = await asyncio.gather(
                    channel.emit_with_ack("echo", {"n": 1}, timeout=5.0),
                    channel.emit_with_ack("echo", {"n": 2}, timeout=5.0),
                )
                assert first == {"n": 1}
                assert second == {"n": 2}
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_request_before_connect_is_buffered(self):
        async with TestServer(create_sync_app()) as server:
            channel = make_channel(server)
            try:
                request = asyncio.ensure_future(
                    channel.emit_with_ack("echo", "queued", timeout=5.0)
                )
                channel.connect()
                assert await request == "queued"
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_unacknowledged_request_times_out(self):
        async with TestServer(create_sync_app()) as server:
            channel = make_channel(server)
            try:
                await wait_connected(channel)
                with pytest.raises(RequestTimeoutError):
                    await channel.emit_with_ack("slow", {}, timeout=0.2)
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_server_events_are_dispatched(self):
        app = create_sync_app()
        async with TestServer(app) as server:
            channel = make_channel(server)
            received: asyncio.Queue = asyncio.Queue()
            channel.on("server-updates", received.put_nowait)
            try:
                await wait_connected(channel)
                channel.emit("client-handshake-sync", "ws-1")

                message = await asyncio.wait_for(received.get(), 5.0)
                assert message["workspaceId"] == "ws-1"
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_server_close_fires_disconnect(self):
        async with TestServer(create_sync_app()) as server:
            channel = make_channel(server)
            reasons: asyncio.Queue = asyncio.Queue()
            channel.on("disconnect", reasons.put_nowait)
            try:
                await wait_connected(channel)
                channel.emit("close-me", None)

                assert await asyncio.wait_for(reasons.get(), 5.0) == SERVER_DISCONNECT
                assert channel.connected is False
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_emit_while_disconnected_is_dropped(self):
        channel = WebSocketChannel("http://127.0.0.1:1/sync", auto_reconnect=False)

        channel.emit("client-leave-sync", "ws-1")

        assert channel.connected is False

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        app = create_sync_app()
        async with TestServer(app) as server:
            channel = make_channel(server, auth_token="secret")
            try:
                await wait_connected(channel)
                assert app[AUTH_HEADERS] == ["Bearer secret"]
            finally:
                await channel.close()


class TestLiveStorageOverWebSocket:
    @pytest.mark.asyncio
    async def test_handshake_pull_and_broadcast(self):
        app = create_sync_app()
        async with TestServer(app) as server:
            channel = make_channel(server)
            cleanup = CleanupService()
            received: asyncio.Queue = asyncio.Queue()
            try:
                storage = CloudSyncStorage("ws-1", channel, cleanup)
                await storage.subscribe(
                    lambda doc_id, data: received.put_nowait((doc_id, data)),
                    print,
                )

                handshake = await next_frame(app, "client-handshake-sync")
                assert handshake["data"] == "ws-1"
                assert await asyncio.wait_for(received.get(), 5.0) == ("doc-1", b"hello")

                result = await storage.pull("doc-1", b"\x01")
                assert result == PullResult(data=b"missing", state=b"sv")

                cleanup.cleanup()
                leave = await next_frame(app, "client-leave-sync")
                assert leave["data"] == "ws-1"
            finally:
                await channel.close()


def drain_frames(app: web.Application) -> list[dict]:
    frames = []
    while not app[FRAMES].empty():
        frames.append(app[FRAMES].get_nowait())
    return frames


class FailingSocket:
    """Client socket whose sends fail as if the connection dropped."""

    async def send_json(self, frame):
        raise ConnectionResetError("connection lost")


class StalledSocket:
    """Client socket whose sends never complete."""

    async def send_json(self, frame):
        await asyncio.Event().wait()


class TestOutbox:
    @pytest.mark.asyncio
    async def test_timed_out_request_is_not_sent_later(self):
        app = create_sync_app()
        async with TestServer(app) as server:
            channel = make_channel(server)
            try:
                with pytest.raises(RequestTimeoutError):
                    await channel.emit_with_ack("client-update-v2", {"updates": []}, timeout=0.1)

                await wait_connected(channel)
                assert await channel.emit_with_ack("echo", "fence", timeout=5.0) == "fence"

                events = [frame["event"] for frame in drain_frames(app)]
                assert "client-update-v2" not in events
                assert events[-1] == "echo"
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_failed_send_fails_request_immediately(self):
        channel = WebSocketChannel("http://127.0.0.1:1/sync", auto_reconnect=False)
        request = asyncio.ensure_future(channel.emit_with_ack("doc-load-v2", {}, timeout=30.0))
        await asyncio.sleep(0)

        await channel._write_loop(FailingSocket())

        with pytest.raises(TransportError):
            await asyncio.wait_for(request, 1.0)

    @pytest.mark.asyncio
    async def test_interrupted_send_fails_request_immediately(self):
        channel = WebSocketChannel("http://127.0.0.1:1/sync", auto_reconnect=False)
        request = asyncio.ensure_future(channel.emit_with_ack("client-update-v2", {}, timeout=30.0))
        await asyncio.sleep(0)

        writer = asyncio.ensure_future(channel._write_loop(StalledSocket()))
        await asyncio.sleep(0.05)
        writer.cancel()

        with pytest.raises(TransportError):
            await asyncio.wait_for(request, 1.0)
        with pytest.raises(asyncio.CancelledError):
            await writer

    @pytest.mark.asyncio
    async def test_close_flushes_queued_frames(self):
        app = create_sync_app()
        async with TestServer(app) as server:
            channel = make_channel(server)
            await wait_connected(channel)

            channel.emit("client-leave-sync", "ws-1")
            await channel.close()

            leave = await next_frame(app, "client-leave-sync")
            assert leave["data"] == "ws-1"


class TestReconnect:
    @pytest.mark.asyncio
    async def test_server_close_reconnects_and_reannounces(self):
        app = create_sync_app()
        async with TestServer(app) as server:
            channel = make_channel(server, auto_reconnect=True, reconnect_delay=0.5)
            cleanup = CleanupService()
            disconnected = asyncio.Event()
            channel.on("disconnect", lambda reason: disconnected.set())
            try:
                storage = CloudSyncStorage("ws-1", channel, cleanup, send_timeout=0.05)
                await next_frame(app, "client-handshake-sync")

                channel.emit("close-me", None)
                await asyncio.wait_for(disconnected.wait(), 5.0)
                assert channel.connected is False
                drain_frames(app)

                # Issued while offline: one expires, one waits for the reconnect
                with pytest.raises(RequestTimeoutError):
                    await storage.push("doc-1", b"stale")
                buffered = asyncio.ensure_future(
                    channel.emit_with_ack("echo", "after-reconnect", timeout=5.0)
                )

                assert await asyncio.wait_for(buffered, 5.0) == "after-reconnect"
                # The handshake was queued on connect, ahead of this request
                assert await channel.emit_with_ack("echo", "fence", timeout=5.0) == "fence"

                events = [frame["event"] for frame in drain_frames(app)]
                assert events.count("client-handshake-sync") == 1
                assert "client-update-v2" not in events
                assert channel.connected is True
            finally:
                await channel.close()
