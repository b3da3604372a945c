"""Shared fakes for the client tests."""
from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx
import pytest

from telecare.schemas.session import User, UserRole
from telecare.schemas.signaling import Connected, ConnectionFailed
from telecare.services.api_client import ApiClient
from telecare.services.notifications import Notifier

BASE_URL = "http://backend.test/api"
SIGNALING_URL = "ws://backend.test/ws/video"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeChannel:
    """In-memory stand-in for the signaling channel.

    ``connect`` controls what happens on open: True emits ``Connected``, False
    emits ``ConnectionFailed``, None leaves the connection pending. Tests push
    further events and ``await channel.settled()`` until every event has been
    handled.
    """

    def __init__(self, *, connect: bool | None = True) -> None:
        self._connect = connect
        self.opened_with: tuple[str, str] | None = None
        self.commands: list[tuple[Any, ...]] = []
        self.close_calls = 0
        self._connected = False
        self._closed = False
        self._finished = False
        self.queue: asyncio.Queue = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._connected and not self._closed

    @property
    def leave_announcements(self) -> list[tuple[Any, ...]]:
        return [command for command in self.commands if command[0] == "leave"]

    async def open(self, endpoint: str, token: str) -> "FakeChannel":
        self.opened_with = (endpoint, token)
        if self._connect is True:
            self.push(Connected())
        elif self._connect is False:
            self.push(ConnectionFailed(reason="refused"))
        return self

    def push(self, event: Any) -> None:
        if isinstance(event, Connected):
            self._connected = True
        self.queue.put_nowait(event)

    async def settled(self) -> None:
        await asyncio.wait_for(self.queue.join(), timeout=2)

    async def events(self):
        while True:
            event = await self.queue.get()
            try:
                if event is None:
                    return
                yield event
            finally:
                self.queue.task_done()

    async def announce_join(self, room_id: str, user_id: str, display_name: str) -> bool:
        self.commands.append(("join", room_id, user_id, display_name))
        return True

    async def announce_leave(self, room_id: str, user_id: str) -> bool:
        self.commands.append(("leave", room_id, user_id))
        return True

    async def close(self) -> None:
        self.close_calls += 1
        if self._closed:
            return
        self._closed = True
        if not self._finished:
            self._finished = True
            self.queue.put_nowait(None)


class RecordingHandler:
    """httpx mock handler that records requests and replays canned responses."""

    def __init__(self, routes: dict[tuple[str, str], tuple[int, Any]] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        status_code, body = route
        return httpx.Response(status_code, json=body)

    def paths(self, method: str | None = None) -> list[str]:
        return [req.url.path for req in self.requests if method is None or req.method == method]


def make_api(handler: Handler, notifier: Notifier, session_store: Any = None) -> ApiClient:
    return ApiClient(
        BASE_URL,
        notifier=notifier,
        session_store=session_store,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def patient() -> User:
    return User(id="12", name="Bruno", role=UserRole.PATIENT)


@pytest.fixture
def professional() -> User:
    return User.model_validate({"id": 7, "name": "Ana", "user_type": "professional"})
