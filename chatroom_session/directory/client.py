"""
Room directory HTTP client.

Stateless request/response calls used before a session exists: create a
room, check a join (room exists, password matches), change a password and
list rooms. Every endpoint answers with an envelope of the form
``{"success": bool, "data": ..., "message": str | null}``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from types import TracebackType
from typing import Any

import aiohttp

from ..config import ClientConfig
from ..exceptions import DirectoryRequestError, ValidationError
from .types import RoomSummary

logger = logging.getLogger(__name__)


def _require(field: str, value: str | None) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field, "must not be empty")
    return cleaned


def _optional(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


class RoomDirectoryClient:
    """Client for the room directory endpoints.

    Example:
        >>> async with RoomDirectoryClient("http://127.0.0.1:8080") as directory:
        ...     room_id = await directory.create_room("general")
        ...     rooms = await directory.list_rooms()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: HTTP base URL of the chat server
            timeout: Total timeout per request in seconds
            session: Optional shared aiohttp session (not closed by this client)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: ClientConfig) -> RoomDirectoryClient:
        return cls(config.base_url, timeout=config.request_timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def create_room(self, name: str, password: str | None = None) -> str:
        """Create a room.

        Returns:
            The new room id
        """
        payload = {"name": _require("name", name), "password": _optional(password)}
        body = await self._request("POST", "/api/rooms", "create_room", payload)
        data = body.get("data") or {}
        if "room_id" not in data:
            raise DirectoryRequestError("create_room", "response is missing room_id")
        room_id = str(data["room_id"])
        logger.info(f"Created room {room_id}")
        return room_id

    async def join_room(self, room_id: str, password: str | None = None) -> str:
        """Check that a room can be joined with the given password.

        This precedes the transport-level join; it does not make the
        client a member of the room.

        Returns:
            The room's display name
        """
        payload = {"room_id": _require("room_id", room_id), "password": _optional(password)}
        body = await self._request("POST", "/api/rooms/join", "join_room", payload)
        data = body.get("data") or {}
        return str(data.get("room_name") or payload["room_id"])

    async def change_password(self, room_id: str, new_password: str) -> None:
        """Change a room's password."""
        payload = {
            "room_id": _require("room_id", room_id),
            "new_password": _require("new_password", new_password),
        }
        await self._request("POST", "/api/rooms/password", "change_password", payload)
        logger.info(f"Changed password of room {payload['room_id']}")

    async def list_rooms(self) -> list[RoomSummary]:
        """List rooms known to the directory."""
        body = await self._request("GET", "/api/rooms", "list_rooms")
        entries = body.get("data") or []
        if not isinstance(entries, list):
            raise DirectoryRequestError("list_rooms", "room list is not an array")

        rooms = []
        for entry in entries:
            try:
                rooms.append(RoomSummary.from_dict(entry))
            except (KeyError, TypeError, AttributeError):
                logger.warning(f"Skipping malformed room entry: {entry!r}")
        return rooms

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and unwrap the success envelope.

        Raises:
            DirectoryRequestError: On network failure, a non-JSON body, or
                an envelope with success=false
        """
        session = self._get_session()
        url = f"{self.base_url}{path}"

        try:
            async with session.request(method, url, json=payload) as response:
                status = response.status
                try:
                    body = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, json.JSONDecodeError, ValueError):
                    body = None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Directory request {operation} failed: {e}")
            raise DirectoryRequestError(operation, "network error", cause=e) from e

        if not isinstance(body, dict):
            raise DirectoryRequestError(operation, f"unexpected response (HTTP {status})", status)

        if not body.get("success") or status >= 400:
            reason = body.get("message") or f"HTTP {status}"
            raise DirectoryRequestError(operation, str(reason), status)

        return body

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> RoomDirectoryClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
