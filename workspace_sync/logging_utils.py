"""
Logging helpers for workspace sync.

Sync traffic is noisy and mostly interesting per workspace, so every
client binds its workspace id into the records it emits. The JSON
formatter lifts those bound fields to top-level keys so log pipelines
can filter on them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Protocol

PACKAGE_LOGGER = "workspace_sync"

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class SyncLogSink(Protocol):
    """Anything a sync client can log to."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


def _context_value(value: Any) -> Any:
    # Document payloads are opaque and can be large: log their size only.
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"bytes": len(value)}
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Keys: ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``, ``message``,
    ``exception`` when present, then every context field passed via
    ``extra`` or bound by :class:`SyncLoggerAdapter`.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            entry[key] = _context_value(value)

        return json.dumps(entry)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
    stream=None,
) -> logging.Logger:
    """
    Send a logger's records to ``stream`` (stdout by default) as JSON lines.

    Any handlers already attached to the logger are replaced, so calling
    this twice does not duplicate output.
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_sync_logger(name: str) -> logging.Logger:
    """Logger for a sync component, named ``workspace_sync.<name>``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Merges bound context into each call's ``extra``.

    Bound fields override per-call fields of the same name: a record logged
    by a workspace client always reports that client's workspace.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**(kwargs.get("extra") or {}), **self.extra}
        return msg, kwargs


def workspace_logger(component: str, workspace_id: str) -> SyncLoggerAdapter:
    """Logger for one component bound to one workspace."""
    return SyncLoggerAdapter(get_sync_logger(component), {"workspace_id": workspace_id})
