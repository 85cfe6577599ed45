"""
Client configuration.

Configuration can be provided directly, via environment variables, or
via the ``chatroom`` section of a YAML settings file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import yaml

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8080"
DEFAULT_WS_PATH = "/ws"
DEFAULT_STORAGE_PATH = "~/.chatroom"
DEFAULT_SETTINGS_PATH = Path.home() / ".chatroom" / "settings.yaml"


def _float_or_default(raw: Any, default: float | None) -> float | None:
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid numeric setting: {raw!r}")
        return default


def _heartbeat_or_default(raw: Any, default: float | None) -> float | None:
    # "off"/"none" disable the heartbeat; a non-positive interval does too
    if isinstance(raw, str) and raw.strip().lower() in ("off", "none"):
        return None
    value = _float_or_default(raw, default)
    if value is not None and value <= 0:
        return None
    return value


@dataclass
class ClientConfig:
    """Configuration for the chatroom session client.

    Environment Variables:
        CHATROOM_BASE_URL: Base URL of the chat server (default: http://127.0.0.1:8080)
        CHATROOM_WS_PATH: WebSocket path on the server (default: /ws)
        CHATROOM_STORAGE_PATH: Directory for persisted transcripts (default: ~/.chatroom)
        CHATROOM_REQUEST_TIMEOUT: Room directory request timeout in seconds
        CHATROOM_CLOSE_TIMEOUT: Seconds to wait for the transport to close on leave
        CHATROOM_HEARTBEAT: WebSocket ping interval in seconds ("off" disables it)

    Attributes:
        base_url: HTTP base URL of the chat server
        websocket_path: Path of the WebSocket endpoint
        storage_path: Directory holding the per-room transcript slots
        request_timeout: Timeout for room directory requests
        close_timeout: Timeout for the transport close handshake
        heartbeat: WebSocket heartbeat interval, or None to disable
    """

    base_url: str = DEFAULT_BASE_URL
    websocket_path: str = DEFAULT_WS_PATH
    storage_path: str = DEFAULT_STORAGE_PATH
    request_timeout: float = 10.0
    close_timeout: float = 5.0
    heartbeat: float | None = 5.0

    # Additional options
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def websocket_url(self) -> str:
        """WebSocket URL derived from base_url (http -> ws, https -> wss)."""
        parts = urlsplit(self.base_url.rstrip("/"))
        scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
        path = parts.path.rstrip("/") + "/" + self.websocket_path.lstrip("/")
        return urlunsplit((scheme, parts.netloc, path, "", ""))

    @property
    def storage_dir(self) -> Path:
        """Expanded storage directory."""
        return Path(self.storage_path).expanduser()

    @classmethod
    def from_environment(cls, base: ClientConfig | None = None) -> ClientConfig:
        """Create configuration from environment variables.

        Args:
            base: Values to fall back to when a variable is unset

        Returns:
            ClientConfig populated from environment variables
        """
        base = base or cls()
        return cls(
            base_url=os.environ.get("CHATROOM_BASE_URL", base.base_url),
            websocket_path=os.environ.get("CHATROOM_WS_PATH", base.websocket_path),
            storage_path=os.environ.get("CHATROOM_STORAGE_PATH", base.storage_path),
            request_timeout=_float_or_default(
                os.environ.get("CHATROOM_REQUEST_TIMEOUT"), base.request_timeout
            ),
            close_timeout=_float_or_default(
                os.environ.get("CHATROOM_CLOSE_TIMEOUT"), base.close_timeout
            ),
            heartbeat=_heartbeat_or_default(os.environ.get("CHATROOM_HEARTBEAT"), base.heartbeat),
            options=dict(base.options),
        )

    @classmethod
    def from_file(cls, path: Path | None = None) -> ClientConfig:
        """Create configuration from a YAML settings file.

        Configuration in ~/.chatroom/settings.yaml:

        ```yaml
        chatroom:
          base_url: "https://chat.example.com"
          storage_path: "~/.chatroom"
          heartbeat: 10
        ```

        Environment variables take precedence over file values. A missing
        or unreadable file yields the defaults.
        """
        path = path or DEFAULT_SETTINGS_PATH
        section = _load_settings(path).get("chatroom") or {}
        if not isinstance(section, dict):
            section = {}

        defaults = cls()
        from_file = cls(
            base_url=str(section.get("base_url", defaults.base_url)),
            websocket_path=str(section.get("websocket_path", defaults.websocket_path)),
            storage_path=str(section.get("storage_path", defaults.storage_path)),
            request_timeout=_float_or_default(
                section.get("request_timeout"), defaults.request_timeout
            ),
            close_timeout=_float_or_default(section.get("close_timeout"), defaults.close_timeout),
            heartbeat=(
                None
                if "heartbeat" in section and section["heartbeat"] is None
                else _heartbeat_or_default(section.get("heartbeat"), defaults.heartbeat)
            ),
            options=dict(section.get("options") or {}),
        )
        return cls.from_environment(base=from_file)


def _load_settings(path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    path = Path(path).expanduser()
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read settings file {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}
