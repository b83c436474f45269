"""
Wire protocol for workspace document sync.

Event names, payload builders and reply parsing for the messages
exchanged with the sync server. Field names follow the server's
schema (``workspaceId``, ``guid``), so they stay camelCase here.

Error replies carry ``{"code": str, "message": str}``. A bare string
is accepted as the message with code ``UNKNOWN``. An ``error`` field
that is absent or null means success.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Client -> server
HANDSHAKE = "client-handshake-sync"
LEAVE = "client-leave-sync"
DOC_LOAD = "doc-load-v2"
CLIENT_UPDATE = "client-update-v2"

# Server -> client
SERVER_UPDATES = "server-updates"

# Channel lifecycle
CONNECT = "connect"
DISCONNECT = "disconnect"

# Error codes
DOC_NOT_FOUND = "DOC_NOT_FOUND"
UNKNOWN_ERROR = "UNKNOWN"
MALFORMED_REPLY = "MALFORMED_REPLY"


@dataclass(frozen=True)
class ErrorReply:
    """An error reported by the sync server."""

    code: str
    message: str
    raw: Any = None

    @classmethod
    def from_wire(cls, error: Any) -> ErrorReply:
        if isinstance(error, dict):
            code = str(error.get("code") or UNKNOWN_ERROR)
            message = error.get("message") or code
            return cls(code=code, message=str(message), raw=error)
        return cls(code=UNKNOWN_ERROR, message=str(error), raw=error)


def load_request(workspace_id: str, doc_id: str, state_vector: str | None) -> dict[str, Any]:
    """Payload for ``doc-load-v2``. The state vector key is omitted when absent."""
    payload: dict[str, Any] = {"workspaceId": workspace_id, "guid": doc_id}
    if state_vector is not None:
        payload["stateVector"] = state_vector
    return payload


def update_request(workspace_id: str, doc_id: str, updates: list[str]) -> dict[str, Any]:
    """Payload for ``client-update-v2``. Updates is a list to allow batching."""
    return {"workspaceId": workspace_id, "guid": doc_id, "updates": list(updates)}


def parse_error(reply: Any) -> ErrorReply | None:
    """Return the error carried by a reply, or None for a successful reply."""
    if not isinstance(reply, dict):
        return ErrorReply(
            code=MALFORMED_REPLY,
            message=f"Expected an object reply, got {type(reply).__name__}",
            raw=reply,
        )
    error = reply.get("error")
    if error is None:
        return None
    return ErrorReply.from_wire(error)


def is_broadcast_for(message: Any, workspace_id: str) -> bool:
    """Whether a ``server-updates`` message targets the given workspace."""
    return isinstance(message, dict) and message.get("workspaceId") == workspace_id
