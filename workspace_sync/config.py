"""
Sync configuration.

Configuration can be provided directly, via environment variables
or via the ``sync`` section of a YAML settings file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import yaml

from .exceptions import ConfigurationError


class SyncMode(Enum):
    """How a workspace talks to the sync server.

    LIVE: Bidirectional channel with pull, push and live updates
    STATIC: Read-only HTTP snapshots (no channel available)
    """

    LIVE = "live"
    STATIC = "static"


@dataclass
class SyncConfig:
    """Configuration for workspace sync.

    Environment Variables:
        WORKSPACE_SYNC_SERVER_URL: Base URL of the sync server (required)
        WORKSPACE_SYNC_MODE: live or static (default: live)
        WORKSPACE_SYNC_SOCKET_PATH: WebSocket path (default: /sync)
        WORKSPACE_SYNC_AUTH_TOKEN: Optional bearer token
        WORKSPACE_SYNC_SEND_TIMEOUT: Seconds to wait for request replies (default: 30)
        WORKSPACE_SYNC_AUTO_RECONNECT: Reconnect after disconnects (default: true)
        WORKSPACE_SYNC_RECONNECT_DELAY: Seconds between reconnects (default: 5)

    Attributes:
        server_url: Base URL of the sync server, e.g. https://app.example.com
        mode: Live channel or static HTTP fallback
        socket_path: Path of the WebSocket endpoint on the server
        auth_token: Optional bearer token for the channel
        send_timeout: Seconds to wait for pull/push replies
        auto_reconnect: Whether the channel reconnects on its own
        reconnect_delay: Seconds to wait before reconnecting
    """

    server_url: str
    mode: SyncMode = SyncMode.LIVE
    socket_path: str = "/sync"
    auth_token: str | None = None
    send_timeout: float = 30.0
    auto_reconnect: bool = True
    reconnect_delay: float = 5.0

    # Additional options
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.server_url:
            raise ConfigurationError("server_url", "must be set")
        scheme = urlsplit(self.server_url).scheme
        if scheme not in ("http", "https"):
            raise ConfigurationError("server_url", f"unsupported scheme {scheme!r}")
        if self.send_timeout <= 0:
            raise ConfigurationError("send_timeout", "must be positive")

    @property
    def websocket_url(self) -> str:
        """WebSocket URL derived from ``server_url`` and ``socket_path``."""
        parts = urlsplit(self.server_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + "/" + self.socket_path.lstrip("/")
        return urlunsplit((scheme, parts.netloc, path, "", ""))

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables.

        Returns:
            SyncConfig populated from environment variables

        Raises:
            ConfigurationError: If required variables are missing or invalid
        """
        return cls._from_mapping(
            {
                "server_url": os.environ.get("WORKSPACE_SYNC_SERVER_URL"),
                "mode": os.environ.get("WORKSPACE_SYNC_MODE"),
                "socket_path": os.environ.get("WORKSPACE_SYNC_SOCKET_PATH"),
                "auth_token": os.environ.get("WORKSPACE_SYNC_AUTH_TOKEN"),
                "send_timeout": os.environ.get("WORKSPACE_SYNC_SEND_TIMEOUT"),
                "auto_reconnect": os.environ.get("WORKSPACE_SYNC_AUTO_RECONNECT"),
                "reconnect_delay": os.environ.get("WORKSPACE_SYNC_RECONNECT_DELAY"),
            }
        )

    @classmethod
    def from_settings_file(cls, path: Path) -> SyncConfig:
        """Create configuration from the ``sync`` section of a YAML file.

        ```yaml
        sync:
          server_url: "https://app.example.com"
          mode: live
          send_timeout: 30
        ```
        """
        try:
            content = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError("settings_file", f"cannot read {path}: {e}") from e

        section = content.get("sync") if isinstance(content, dict) else None
        if not isinstance(section, dict):
            raise ConfigurationError("sync", f"missing sync section in {path}")
        return cls._from_mapping(section)

    @classmethod
    def _from_mapping(cls, values: dict[str, Any]) -> SyncConfig:
        kwargs: dict[str, Any] = {"server_url": values.get("server_url") or ""}

        mode = values.get("mode")
        if mode:
            try:
                kwargs["mode"] = SyncMode(str(mode).lower())
            except ValueError:
                raise ConfigurationError("mode", f"unknown mode {mode!r}") from None

        if values.get("socket_path"):
            kwargs["socket_path"] = str(values["socket_path"])
        if values.get("auth_token"):
            kwargs["auth_token"] = str(values["auth_token"])

        for name in ("send_timeout", "reconnect_delay"):
            value = values.get(name)
            if value is None or value == "":
                continue
            try:
                kwargs[name] = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(name, f"not a number: {value!r}") from None

        auto_reconnect = values.get("auto_reconnect")
        if isinstance(auto_reconnect, bool):
            kwargs["auto_reconnect"] = auto_reconnect
        elif auto_reconnect:
            kwargs["auto_reconnect"] = str(auto_reconnect).lower() in ("1", "true", "yes")

        options = values.get("options")
        if isinstance(options, dict):
            kwargs["options"] = dict(options)

        return cls(**kwargs)
