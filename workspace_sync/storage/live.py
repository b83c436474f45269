"""
Live document sync over a bidirectional channel.

The client announces itself for its workspace on every connect, so
the server re-establishes interest after reconnects. Pull and push
are acknowledged requests with a fixed timeout; remote deltas arrive
through ``subscribe``.
"""

from __future__ import annotations

from typing import Any

from .. import protocol
from ..channel.base import Channel, Handler
from ..codec import decode, encode
from ..exceptions import RemoteProtocolError, SubscriptionError, TransportError
from ..lifecycle import CleanupService
from ..logging_utils import SyncLogSink, workspace_logger
from .base import DisconnectCallback, DocSyncStorage, PullResult, Subscription, UpdateCallback


class ChannelSubscription(Subscription):
    """Subscription that owns a set of channel listeners."""

    def __init__(self, channel: Channel) -> None:
        self._channel = channel
        self._listeners: list[tuple[str, Handler]] = []

    @property
    def active(self) -> bool:
        return bool(self._listeners)

    def attach(self, event: str, handler: Handler) -> None:
        self._channel.on(event, handler)
        self._listeners.append((event, handler))

    def cancel(self) -> None:
        listeners, self._listeners = self._listeners, []
        for event, handler in listeners:
            self._channel.off(event, handler)


class CloudSyncStorage(DocSyncStorage):
    """Document sync for one workspace over a live channel.

    The channel may be shared with other workspaces; each client only
    delivers broadcasts addressed to its own workspace. The client never
    closes the channel.

    Example:
        >>> cleanup = CleanupService()
        >>> storage = CloudSyncStorage("ws-1", channel, cleanup)
        >>> result = await storage.pull("doc-1", local_state)
        >>> await storage.push("doc-1", update)
        >>> subscription = await storage.subscribe(apply_update, on_disconnect)
        >>> cleanup.cleanup()  # announces departure
    """

    name = "cloud"

    SEND_TIMEOUT = 30.0

    def __init__(
        self,
        workspace_id: str,
        channel: Channel,
        cleanup_service: CleanupService,
        send_timeout: float | None = None,
        logger: SyncLogSink | None = None,
    ) -> None:
        """Bind to a workspace and announce it on the channel.

        Args:
            workspace_id: The workspace this client serves
            channel: Channel to the sync server
            cleanup_service: Coordinator that runs ``cleanup`` at shutdown
            send_timeout: Seconds to wait for pull/push replies
            logger: Optional log sink (defaults to a workspace-bound logger)
        """
        self.workspace_id = workspace_id
        self.channel = channel
        self.send_timeout = self.SEND_TIMEOUT if send_timeout is None else send_timeout
        self.logger = logger or workspace_logger("live", workspace_id)

        self._subscription: ChannelSubscription | None = None
        self._torn_down = False

        self.channel.on(protocol.CONNECT, self._handle_connect)

        if self.channel.connected:
            self._announce()
        else:
            self.channel.connect()

        cleanup_service.add(self.cleanup)

    def _handle_connect(self) -> None:
        self._announce()

    def _announce(self) -> None:
        self.logger.debug(protocol.HANDSHAKE)
        self.channel.emit(protocol.HANDSHAKE, self.workspace_id)

    async def pull(self, doc_id: str, state: bytes | None = None) -> PullResult | None:
        state_vector = encode(state) if state else None
        request = protocol.load_request(self.workspace_id, doc_id, state_vector)

        self.logger.debug(
            protocol.DOC_LOAD,
            extra={"guid": doc_id, "state_vector": state_vector},
        )

        response = await self.channel.emit_with_ack(
            protocol.DOC_LOAD, request, self.send_timeout
        )

        self.logger.debug(
            "doc-load callback",
            extra={"guid": doc_id, "state_vector": state_vector, "response": response},
        )

        error = protocol.parse_error(response)
        if error is not None:
            if error.code == protocol.DOC_NOT_FOUND:
                return None
            raise RemoteProtocolError(
                protocol.DOC_LOAD, error.code, error.message, error.raw, doc_id
            )

        data = response.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("missing"), str):
            raise RemoteProtocolError(
                protocol.DOC_LOAD,
                protocol.MALFORMED_REPLY,
                "Reply carries neither an error nor missing updates",
                response,
                doc_id,
            )

        remote_state = data.get("state")
        return PullResult(
            data=decode(data["missing"]),
            state=decode(remote_state) if remote_state else None,
        )

    async def push(self, doc_id: str, update: bytes) -> None:
        self.logger.debug(
            protocol.CLIENT_UPDATE,
            extra={"guid": doc_id, "update_size": len(update)},
        )

        request = protocol.update_request(self.workspace_id, doc_id, [encode(update)])
        response = await self.channel.emit_with_ack(
            protocol.CLIENT_UPDATE, request, self.send_timeout
        )

        error = protocol.parse_error(response)
        if error is not None:
            self.logger.error(
                f"{protocol.CLIENT_UPDATE} error",
                extra={"guid": doc_id, "response": response},
            )
            raise RemoteProtocolError(
                protocol.CLIENT_UPDATE, error.code, error.message, error.raw, doc_id
            )

    async def subscribe(
        self,
        on_update: UpdateCallback,
        on_disconnect: DisconnectCallback,
    ) -> ChannelSubscription:
        if self._subscription is not None and self._subscription.active:
            raise SubscriptionError(self.workspace_id)

        subscription = ChannelSubscription(self.channel)

        def handle_update(message: Any) -> None:
            if not protocol.is_broadcast_for(message, self.workspace_id):
                return
            doc_id = message.get("guid")
            encoded = message.get("updates")
            if not isinstance(doc_id, str) or not isinstance(encoded, list):
                self.logger.error(
                    f"Malformed {protocol.SERVER_UPDATES} broadcast",
                    extra={"response": message},
                )
                return
            # Decode the whole batch first so a bad entry delivers nothing
            updates = [decode(update) for update in encoded]
            for update in updates:
                on_update(doc_id, update)

        def handle_disconnect(reason: str) -> None:
            subscription.cancel()
            on_disconnect(reason)

        subscription.attach(protocol.SERVER_UPDATES, handle_update)
        subscription.attach(protocol.DISCONNECT, handle_disconnect)
        self._subscription = subscription
        return subscription

    def cleanup(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True

        try:
            self.channel.emit(protocol.LEAVE, self.workspace_id)
        except TransportError as e:
            self.logger.error(f"{protocol.LEAVE} failed: {e}")
        self.channel.off(protocol.CONNECT, self._handle_connect)
