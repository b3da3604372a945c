"""Process-wide wiring for the console app: session, API client, current call."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Optional

import httpx

from ..core.config import Settings
from ..schemas.session import User
from .api_client import ApiClient
from .call_session import CallSessionController, ChannelFactory
from .media import MediaAcquirer, MediaSource, build_media_source
from .notifications import Notifier
from .session_store import SessionStore, TokenStorage
from .signaling import SignalingChannel

logger = logging.getLogger(__name__)


class Console:
    """Owns the collaborators the view layer talks to."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        media_source: MediaSource | None = None,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self.settings = settings
        self.notifier = Notifier()
        self.session = SessionStore(TokenStorage(settings.token_path), self.notifier)
        self.api = ApiClient(
            settings.api_base_url,
            notifier=self.notifier,
            session_store=self.session,
            timeout=settings.request_timeout,
            transport=transport,
        )
        self._media_source = media_source or build_media_source(settings.media_source)
        self._channel_factory = channel_factory or self._default_channel
        self.call: Optional[CallSessionController] = None
        self.enter_task: Optional[asyncio.Task] = None

    def _default_channel(self) -> SignalingChannel:
        return SignalingChannel(connect_timeout=self.settings.signaling_connect_timeout)

    async def startup(self) -> None:
        await self.session.bootstrap(self.api)

    def new_call(self) -> CallSessionController:
        return CallSessionController(
            api=self.api,
            media=MediaAcquirer(self._media_source, timeout=self.settings.media_acquire_timeout),
            notifier=self.notifier,
            signaling_url=self.settings.signaling_url,
            token_provider=lambda: self.session.token,
            channel_factory=self._channel_factory,
        )

    async def start_call(self, room_id: str, user: User) -> CallSessionController:
        """Leave any current room, then enter ``room_id`` in the background."""

        await self.leave_call()
        call = self.new_call()
        self.call = call
        self.enter_task = asyncio.create_task(call.enter_room(room_id, user), name=f"enter-room-{room_id}")
        return call

    async def leave_call(self) -> None:
        """Navigate away from the call room; teardown is unconditional."""

        call = self.call
        if call is None:
            return
        await call.close()
        logger.info("Left call room %s", call.room_id)

    async def aclose(self) -> None:
        await self.leave_call()
        task = self.enter_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self.api.aclose()
