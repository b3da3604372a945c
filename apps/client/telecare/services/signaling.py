"""WebSocket signaling channel for call rooms.

The channel connects in the background and exposes everything it learns as a
single ordered stream of typed events: the synthetic transport events
(connected, connection failed, disconnected) interleaved with the frames the
remote side sends. There is no reconnection; once the stream ends the channel
is spent.
"""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import AsyncGenerator, Optional
from urllib.parse import urlencode

import websockets
from pydantic import BaseModel, ValidationError
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..schemas.signaling import (
    Connected,
    ConnectionFailed,
    Disconnected,
    JoinRoom,
    LeaveRoom,
    SignalingEvent,
    remote_event_adapter,
)

logger = logging.getLogger(__name__)


def room_endpoint(base_url: str, room_id: str) -> str:
    """Append the room id to the configured signaling URL."""

    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'room_id': room_id})}"


class SignalingChannel:
    """Authenticated, bidirectional event channel for one room visit."""

    def __init__(self, *, connect_timeout: float = 15.0) -> None:
        self._connect_timeout = connect_timeout
        self._events: asyncio.Queue[SignalingEvent | None] = asyncio.Queue()
        self._ws: Optional[ClientConnection] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False
        self._finished = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, endpoint: str, token: str) -> "SignalingChannel":
        """Start connecting; the outcome arrives as the first event."""

        if self._task is not None or self._closed:
            raise RuntimeError("Signaling channel can only be opened once")
        self._task = asyncio.create_task(self._run(endpoint, token), name="signaling-channel")
        return self

    async def events(self) -> AsyncGenerator[SignalingEvent, None]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def announce_join(self, room_id: str, user_id: str, display_name: str) -> bool:
        return await self._send(JoinRoom(room_id=room_id, user_id=user_id, user_name=display_name))

    async def announce_leave(self, room_id: str, user_id: str) -> bool:
        return await self._send(LeaveRoom(room_id=room_id, user_id=user_id))

    async def close(self) -> None:
        """Close the socket and end the event stream; safe to call repeatedly."""

        if self._closed:
            return
        self._closed = True

        ws, self._ws = self._ws, None
        if ws is not None:
            with suppress(ConnectionClosed, OSError):
                await ws.close()

        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        self._finish()
        logger.info("Signaling channel closed")

    async def _run(self, endpoint: str, token: str) -> None:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            ws = await websockets.connect(
                endpoint,
                additional_headers=headers,
                open_timeout=self._connect_timeout,
            )
        except TimeoutError:
            logger.warning("Signaling connect timed out after %ss", self._connect_timeout)
            self._emit(ConnectionFailed(reason="timeout"))
            self._finish()
            return
        except (OSError, WebSocketException) as exc:
            logger.warning("Signaling connect failed: %s", exc)
            self._emit(ConnectionFailed(reason=str(exc) or type(exc).__name__))
            self._finish()
            return

        if self._closed:
            with suppress(ConnectionClosed, OSError):
                await ws.close()
            return

        self._ws = ws
        logger.info("Signaling channel connected")
        self._emit(Connected())

        reason: str | None = None
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    continue
                event = _parse_frame(message)
                if event is not None:
                    self._emit(event)
        except ConnectionClosed as exc:
            reason = str(exc)

        if not self._closed:
            logger.warning("Signaling channel dropped by remote: %s", reason or "closed")
            self._ws = None
            self._emit(Disconnected(reason=reason))
            self._finish()

    async def _send(self, command: BaseModel) -> bool:
        ws = self._ws
        if ws is None or self._closed:
            logger.debug("Skipping %s; channel is not open", command.__class__.__name__)
            return False
        try:
            await ws.send(command.model_dump_json())
        except ConnectionClosed as exc:
            logger.warning("Could not send %s: %s", command.__class__.__name__, exc)
            return False
        return True

    def _emit(self, event: SignalingEvent) -> None:
        if not self._finished:
            self._events.put_nowait(event)

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._events.put_nowait(None)


def _parse_frame(message: str) -> SignalingEvent | None:
    try:
        data = json.loads(message)
    except json.JSONDecodeError:
        logger.warning("Ignoring non-JSON signaling frame")
        return None
    try:
        return remote_event_adapter.validate_python(data)
    except ValidationError:
        kind = data.get("type") if isinstance(data, dict) else None
        logger.debug("Ignoring unrecognised signaling frame type=%s", kind)
        return None
