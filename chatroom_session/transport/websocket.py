"""
WebSocket transport channel built on aiohttp.

Text frames are delivered as ``MESSAGE`` events in the order aiohttp reads
them; the channel never buffers or reorders beyond aiohttp's own reader.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from ..config import ClientConfig
from ..exceptions import NotConnectedError, TransportError
from .base import TransportChannel, TransportEvent, TransportState

logger = logging.getLogger(__name__)


class WebSocketTransport(TransportChannel):
    """Transport channel over a single aiohttp WebSocket connection.

    Example:
        >>> transport = WebSocketTransport(heartbeat=5.0)
        >>> await transport.open("ws://127.0.0.1:8080/ws")
        >>> async for event in transport.events():
        ...     print(event.event_type, event.payload)
    """

    def __init__(
        self,
        heartbeat: float | None = 5.0,
        connect_timeout: float | None = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            heartbeat: Seconds between protocol pings; None disables them
            connect_timeout: Seconds allowed for the opening handshake
            headers: Extra headers for the upgrade request
        """
        super().__init__()
        self.heartbeat = heartbeat
        self.connect_timeout = connect_timeout
        self.headers = headers or {}
        self.url: str | None = None

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._close_started = False

    @classmethod
    def from_config(cls, config: ClientConfig) -> WebSocketTransport:
        return cls(heartbeat=config.heartbeat, connect_timeout=config.request_timeout)

    async def open(self, url: str) -> None:
        if self._state is not TransportState.NEW:
            raise RuntimeError("WebSocketTransport can only be opened once")

        self.url = url
        self._state = TransportState.CONNECTING
        self._session = aiohttp.ClientSession()

        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(url, heartbeat=self.heartbeat, headers=self.headers),
                timeout=self.connect_timeout,
            )
        except asyncio.CancelledError:
            await self._release()
            raise
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"WebSocket connection to {url} failed: {e}")
            await self._release()
            self._emit(TransportEvent.failed(str(TransportError(url, e))))
            return

        if self._close_started:
            # close() ran while the handshake was in flight
            await self._ws.close()
            await self._release()
            return

        self._state = TransportState.OPEN
        logger.info(f"WebSocket connected: {url}")
        self._emit(TransportEvent.opened())
        self._reader_task = asyncio.create_task(self._read_loop(self._ws))

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Forward frames until the socket closes or fails."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._emit(TransportEvent.message(msg.data))
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    logger.warning("Ignoring unexpected binary frame")
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = TransportError(self.url or "", ws.exception(), "websocket error")
                    self._emit(TransportEvent.failed(str(error)))
                    return

            reason = f"closed with code {ws.close_code}" if ws.close_code else None
            self._emit(TransportEvent.closed(reason))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"WebSocket reader failed: {e}")
            self._emit(TransportEvent.failed(str(TransportError(self.url or "", e))))
        finally:
            self._state = TransportState.CLOSED
            await self._release()

    async def send(self, payload: dict[str, Any]) -> None:
        ws = self._ws
        if self._state is not TransportState.OPEN or ws is None or ws.closed:
            raise NotConnectedError("send")

        try:
            await ws.send_json(payload)
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            raise TransportError(self.url or "", e, "send failed") from e

    async def close(self) -> None:
        if self._close_started:
            return
        self._close_started = True

        if self._state is TransportState.NEW:
            self._state = TransportState.CLOSED
            self._terminated = True
            return

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if self._reader_task is not None:
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        self._state = TransportState.CLOSED
        self._emit(TransportEvent.closed())
        await self._release()
        logger.info(f"WebSocket closed: {self.url}")

    async def _release(self) -> None:
        """Close the HTTP session; safe to call more than once."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
