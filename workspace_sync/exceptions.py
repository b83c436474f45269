"""
Custom exceptions for workspace sync.

Both storage modes raise these exceptions so callers can treat
any failure as "sync temporarily unavailable" and retry at a
higher layer.
"""

from typing import Any


class SyncStorageError(Exception):
    """Base exception for all workspace sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RemoteProtocolError(SyncStorageError):
    """Raised when the remote peer reports a failure for a request.

    Also raised when the reply does not match the wire schema at all.
    """

    def __init__(
        self,
        event: str,
        code: str,
        message: str,
        error: Any = None,
        doc_id: str | None = None,
    ):
        details: dict[str, Any] = {"event": event, "code": code}
        if doc_id:
            details["doc_id"] = doc_id
        super().__init__(message, details)
        self.event = event
        self.code = code
        self.error = error
        self.doc_id = doc_id


class RequestTimeoutError(SyncStorageError, TimeoutError):
    """Raised when the remote peer does not acknowledge a request in time."""

    def __init__(self, event: str, timeout: float):
        super().__init__(
            f"No reply to {event} within {timeout}s",
            {"event": event, "timeout": timeout},
        )
        self.event = event
        self.timeout = timeout


class UnsupportedOperationError(SyncStorageError, NotImplementedError):
    """Raised by storage modes that cannot perform an operation."""

    def __init__(self, operation: str, storage: str):
        super().__init__(
            f"{operation} is not supported by {storage} storage",
            {"operation": operation, "storage": storage},
        )
        self.operation = operation
        self.storage = storage


class TransportError(SyncStorageError):
    """Raised when the underlying channel or HTTP transport fails."""

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Transport failure for {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class SubscriptionError(SyncStorageError):
    """Raised when subscribing while another subscription is still active."""

    def __init__(self, workspace_id: str):
        super().__init__(
            f"Workspace {workspace_id} already has an active subscription",
            {"workspace_id": workspace_id},
        )
        self.workspace_id = workspace_id


class CodecError(SyncStorageError, ValueError):
    """Raised when a payload is not valid base64 text."""

    def __init__(self, reason: str):
        super().__init__(f"Malformed payload: {reason}", {"reason": reason})
        self.reason = reason


class ConfigurationError(SyncStorageError):
    """Raised when sync configuration is missing or invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid sync configuration for {field}: {reason}",
            {"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason
