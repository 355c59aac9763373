"""
WebSocket Signaling Channel

Persistent relay connection over `websockets`. Each event travels as one
JSON text frame: {"event": <name>, "data": <payload>}.

A single reader task dispatches inbound frames one at a time, which keeps
the relay's per-connection ordering.
"""
import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed

from peercall.services.call.exceptions import SignalingError
from .channel import SignalingChannel

logger = logging.getLogger(__name__)


class WebSocketSignalingChannel(SignalingChannel):
    """Signaling channel backed by a single WebSocket connection."""

    def __init__(self, url: str, token: Optional[str] = None):
        super().__init__()
        self.url = url
        self.token = token
        self._ws = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def _connect_url(self) -> str:
        if not self.token:
            return self.url
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode({'token': self.token})}"

    async def connect(self) -> None:
        """Open the relay connection and start the reader task."""
        if self._ws is not None:
            return

        try:
            self._ws = await websockets.connect(self._connect_url())
        except (OSError, websockets.InvalidURI, websockets.InvalidHandshake) as e:
            raise SignalingError(f"Could not connect to {self.url}: {e}") from e

        logger.info(f"[Signaling] Connected to {self.url}")
        self._reader = asyncio.create_task(self._read_loop())

    async def disconnect(self) -> None:
        """Close the connection. Safe to call more than once."""
        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.error(f"[Signaling] Error closing connection: {e}")
            logger.info("[Signaling] Disconnected")

    async def emit(self, event: str, payload: Any = None) -> None:
        if self._ws is None:
            raise SignalingError(f"Cannot emit '{event}': channel not connected")

        frame = json.dumps({"event": event, "data": payload})
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            raise SignalingError(f"Cannot emit '{event}': {e}") from e

        logger.debug(f"[Signaling] -> {event}")

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except (TypeError, json.JSONDecodeError):
                    logger.warning("[Signaling] Invalid JSON received")
                    continue

                event = message.get("event") if isinstance(message, dict) else None
                if not event:
                    logger.warning("[Signaling] Frame without event name ignored")
                    continue

                logger.debug(f"[Signaling] <- {event}")
                await self.dispatch(event, message.get("data"))

        except ConnectionClosed as e:
            logger.info(f"[Signaling] Connection closed by relay: {e}")

        finally:
            if self._ws is ws:
                self._ws = None
