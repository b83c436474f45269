"""
Read-only document snapshots over HTTP.

Used when no live channel is available. Every pull returns the full
document, so the caller's state vector is ignored.
"""

from __future__ import annotations

from urllib.parse import quote

import aiohttp

from ..exceptions import TransportError, UnsupportedOperationError
from ..logging_utils import SyncLogSink, workspace_logger
from .base import DisconnectCallback, DocSyncStorage, PullResult, Subscription, UpdateCallback

# RFC 9218 urgency; lower is more urgent, 3 is the default
HIGH_PRIORITY = "u=1"


class StaticSyncStorage(DocSyncStorage):
    """Point-in-time document fetches for one workspace."""

    name = "cloud-static"

    def __init__(
        self,
        workspace_id: str,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        logger: SyncLogSink | None = None,
    ) -> None:
        self.workspace_id = workspace_id
        self.base_url = base_url.rstrip("/")
        self._session = session
        self.logger = logger or workspace_logger("static", workspace_id)

    def doc_url(self, doc_id: str) -> str:
        return (
            f"{self.base_url}/api/workspaces/{quote(self.workspace_id, safe='')}"
            f"/docs/{quote(doc_id, safe='')}"
        )

    async def pull(self, doc_id: str, state: bytes | None = None) -> PullResult | None:
        url = self.doc_url(doc_id)
        try:
            if self._session is not None:
                return await self._fetch(self._session, url, doc_id)
            async with aiohttp.ClientSession() as session:
                return await self._fetch(session, url, doc_id)
        except aiohttp.ClientError as e:
            raise TransportError(url, e) from e

    async def _fetch(
        self,
        session: aiohttp.ClientSession,
        url: str,
        doc_id: str,
    ) -> PullResult | None:
        async with session.get(url, headers={"Priority": HIGH_PRIORITY}) as response:
            if 200 <= response.status < 300:
                return PullResult(data=await response.read())

            self.logger.debug(
                f"Snapshot unavailable: {response.status}",
                extra={"guid": doc_id, "status": response.status},
            )
            return None

    async def push(self, doc_id: str, update: bytes) -> None:
        raise UnsupportedOperationError("push", self.name)

    async def subscribe(
        self,
        on_update: UpdateCallback,
        on_disconnect: DisconnectCallback,
    ) -> Subscription:
        raise UnsupportedOperationError("subscribe", self.name)
