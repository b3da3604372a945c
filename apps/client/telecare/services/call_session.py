"""Call-room lifecycle: room fetch, local media, signaling, teardown.

One controller drives one visit to a call room through
``idle -> loading -> awaiting_media -> connecting -> connected -> ending -> ended``
with ``failed`` reachable from the three waiting phases. Everything runs on the
event loop; signaling events are pulled from the channel one at a time and
handled to completion before the next, so the state needs no locking. Every
await is followed by a check of the active flag so a result that arrives after
teardown is discarded (or released, for media).
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing, suppress
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Callable, Optional, Protocol

from pydantic import ValidationError as SchemaValidationError

from ..schemas.session import User, UserRole
from ..schemas.signaling import (
    Connected,
    ConnectionFailed,
    Disconnected,
    ParticipantJoined,
    ParticipantLeft,
    Signal,
    SignalingEvent,
)
from ..schemas.video import CallFailure, CallPhase, CallStateView, ConnectionStatus, FailureReason, Room
from .api_client import ApiClient, ApiError, UnauthorizedError
from .media import MediaAcquirer, MediaError, MediaErrorKind, MediaHandle, TrackKind
from .notifications import Notifier
from .peer import LoggingPeerLink, PeerLink
from .signaling import SignalingChannel, room_endpoint

logger = logging.getLogger(__name__)

SIGNALING_FAILED_MESSAGE = "Could not connect to the video server."
SIGNALING_LOST_MESSAGE = "Connection to the video server was lost."
NOT_SIGNED_IN_MESSAGE = "Sign in again to join the call."
INTERNAL_ERROR_MESSAGE = "Could not start the video call."

_MEDIA_REASONS = {
    MediaErrorKind.PERMISSION_DENIED: FailureReason.MEDIA_PERMISSION_DENIED,
    MediaErrorKind.DEVICE_UNAVAILABLE: FailureReason.MEDIA_DEVICE_UNAVAILABLE,
    MediaErrorKind.UNKNOWN: FailureReason.MEDIA_ERROR,
}

_WAITING_PHASES = (CallPhase.LOADING, CallPhase.AWAITING_MEDIA, CallPhase.CONNECTING)


class CallSessionError(RuntimeError):
    """Base exception for call session errors."""


class InvalidTransitionError(CallSessionError):
    """Raised when a command is issued in a phase that cannot accept it."""


class Channel(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def open(self, endpoint: str, token: str) -> Any: ...

    def events(self) -> AsyncGenerator[SignalingEvent, None]: ...

    async def announce_join(self, room_id: str, user_id: str, display_name: str) -> bool: ...

    async def announce_leave(self, room_id: str, user_id: str) -> bool: ...

    async def close(self) -> None: ...


ChannelFactory = Callable[[], Channel]
TokenProvider = Callable[[], Optional[str]]


@dataclass
class CallState:
    phase: CallPhase = CallPhase.IDLE
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    participants: set[str] = field(default_factory=set)
    local_video_enabled: bool = True
    local_audio_enabled: bool = True
    call_active: bool = False
    failure: Optional[CallFailure] = None
    room: Optional[Room] = None


class CallSessionController:
    """Own the media handle, signaling channel and peer link of one call visit."""

    def __init__(
        self,
        *,
        api: ApiClient,
        media: MediaAcquirer,
        notifier: Notifier,
        signaling_url: str,
        token_provider: TokenProvider,
        channel_factory: ChannelFactory | None = None,
        peer: PeerLink | None = None,
    ) -> None:
        self._api = api
        self._media = media
        self._notifier = notifier
        self._signaling_url = signaling_url
        self._token_provider = token_provider
        self._channel_factory: ChannelFactory = channel_factory or SignalingChannel
        self._peer: PeerLink = peer or LoggingPeerLink()

        self._state = CallState()
        self._room_id: Optional[str] = None
        self._user: Optional[User] = None
        self._active = False
        self._media_handle: Optional[MediaHandle] = None
        self._channel: Optional[Channel] = None
        self._events_task: Optional[asyncio.Task[None]] = None
        self._leave_announced = False
        self._peer_closed = False
        self._backend_notified = True

    async def __aenter__(self) -> "CallSessionController":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def phase(self) -> CallPhase:
        return self._state.phase

    @property
    def room_id(self) -> Optional[str]:
        return self._room_id

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def media_handle(self) -> Optional[MediaHandle]:
        return self._media_handle

    @property
    def events_task(self) -> Optional[asyncio.Task[None]]:
        return self._events_task

    def snapshot(self) -> CallStateView:
        state = self._state
        participants = sorted(state.participants)
        return CallStateView(
            room_id=self._room_id,
            title=state.room.title if state.room else None,
            phase=state.phase,
            connection_status=state.connection_status,
            participants=participants,
            participant_count=len(participants) + 1,
            local_video_enabled=state.local_video_enabled,
            local_audio_enabled=state.local_audio_enabled,
            call_active=state.call_active,
            failure=state.failure,
        )

    async def enter_room(self, room_id: str, user: User) -> CallPhase:
        """Bring the room from ``idle`` to ``connecting``; the rest is event driven."""

        if self._state.phase is not CallPhase.IDLE:
            raise InvalidTransitionError(f"Cannot enter a room from phase {self._state.phase.value}")

        self._room_id = room_id
        self._user = user
        self._active = True
        try:
            await self._enter(room_id, user)
        except Exception as exc:  # noqa: BLE001 - every failure ends in the failed phase
            logger.exception("Unexpected error entering room %s: %s", room_id, exc)
            await self._fail(FailureReason.INTERNAL, INTERNAL_ERROR_MESSAGE)
        return self._state.phase

    async def _enter(self, room_id: str, user: User) -> None:
        self._transition(CallPhase.LOADING)
        try:
            data = await self._api.get_room(room_id)
            room = Room.model_validate({"id": room_id, **data} if isinstance(data, dict) else data)
        except UnauthorizedError as exc:
            await self._fail(FailureReason.UNAUTHORIZED, exc.message, notify=False)
            return
        except ApiError as exc:
            # The API client already told the user.
            await self._fail(FailureReason.ROOM_UNAVAILABLE, exc.message, notify=False)
            return
        except SchemaValidationError as exc:
            logger.warning("Room %s metadata was malformed: %s", room_id, exc)
            await self._fail(FailureReason.ROOM_UNAVAILABLE, "The video room could not be loaded.")
            return
        if not self._active:
            return

        self._state.room = room
        self._transition(CallPhase.AWAITING_MEDIA)
        try:
            handle = await self._media.acquire()
        except MediaError as exc:
            self._media_handle = None
            await self._fail(_MEDIA_REASONS[exc.kind], exc.message)
            return
        if not self._active:
            logger.info("Releasing media acquired after teardown of room %s", room_id)
            handle.release()
            return

        self._media_handle = handle
        self._state.local_video_enabled = handle.is_enabled(TrackKind.VIDEO)
        self._state.local_audio_enabled = handle.is_enabled(TrackKind.AUDIO)
        self._state.call_active = True

        token = self._token_provider()
        if not token:
            await self._fail(FailureReason.UNAUTHORIZED, NOT_SIGNED_IN_MESSAGE)
            return

        self._transition(CallPhase.CONNECTING)
        self._state.connection_status = ConnectionStatus.CONNECTING
        channel = self._channel_factory()
        self._channel = channel
        await channel.open(room_endpoint(self._signaling_url, room_id), token)
        if not self._active:
            await channel.close()
            return
        self._events_task = asyncio.create_task(self._consume(channel), name=f"call-events-{room_id}")

    async def _consume(self, channel: Channel) -> None:
        try:
            async with aclosing(channel.events()) as events:
                async for event in events:
                    if not self._active:
                        break
                    await self.handle_event(event)
        except Exception as exc:  # noqa: BLE001 - the view must never see a crashed task
            logger.exception("Signaling event handling failed in room %s: %s", self._room_id, exc)
            if self._state.phase in _WAITING_PHASES:
                await self._fail(FailureReason.INTERNAL, INTERNAL_ERROR_MESSAGE)
            else:
                self._notifier.error(INTERNAL_ERROR_MESSAGE)
                await self.close()

    async def handle_event(self, event: SignalingEvent) -> None:
        """Apply a single signaling event to the call state."""

        if not self._active:
            return
        phase = self._state.phase

        if isinstance(event, Connected):
            if phase is not CallPhase.CONNECTING:
                return
            self._transition(CallPhase.CONNECTED)
            self._state.connection_status = ConnectionStatus.CONNECTED
            if self._channel is not None and self._room_id and self._user:
                await self._channel.announce_join(self._room_id, self._user.id, self._user.name)
        elif isinstance(event, ConnectionFailed):
            if phase is CallPhase.CONNECTING:
                logger.warning("Signaling connection failed for room %s: %s", self._room_id, event.reason)
                await self._fail(FailureReason.SIGNALING_FAILED, SIGNALING_FAILED_MESSAGE)
        elif isinstance(event, Disconnected):
            if phase is CallPhase.CONNECTING:
                await self._fail(FailureReason.SIGNALING_FAILED, SIGNALING_FAILED_MESSAGE)
            elif phase is CallPhase.CONNECTED:
                self._state.connection_status = ConnectionStatus.DISCONNECTED
                self._notifier.warning(SIGNALING_LOST_MESSAGE)
                await self.close()
        elif phase is not CallPhase.CONNECTED:
            logger.debug("Ignoring %s in phase %s", event.type, phase.value)
        elif isinstance(event, ParticipantJoined):
            self._participant_joined(event.participant_id)
        elif isinstance(event, ParticipantLeft):
            self._participant_left(event.participant_id)
        elif isinstance(event, Signal):
            self._peer.handle_signal(event.from_id, event.payload)

    def _participant_joined(self, participant_id: str) -> None:
        if self._user is not None and participant_id == self._user.id:
            return
        if participant_id in self._state.participants:
            return
        self._state.participants.add(participant_id)
        self._notifier.info(f"{participant_id} joined the room")

    def _participant_left(self, participant_id: str) -> None:
        if participant_id not in self._state.participants:
            return
        self._state.participants.discard(participant_id)
        self._notifier.info(f"{participant_id} left the room")

    def toggle_video(self) -> bool:
        return self._toggle(TrackKind.VIDEO)

    def toggle_audio(self) -> bool:
        return self._toggle(TrackKind.AUDIO)

    def _toggle(self, kind: TrackKind) -> bool:
        attr = "local_video_enabled" if kind is TrackKind.VIDEO else "local_audio_enabled"
        current = getattr(self._state, attr)
        handle = self._media_handle
        if handle is None or not handle.set_track_enabled(kind, not current):
            return current
        setattr(self._state, attr, not current)
        return not current

    async def end_call(self, role: UserRole | str | None = None) -> bool:
        """Hang up; returns False only when the backend could not be told."""

        phase = self._state.phase
        if phase in (CallPhase.ENDING, CallPhase.ENDED):
            return self._backend_notified
        if phase is CallPhase.FAILED:
            await self.teardown()
            return True
        if phase not in (CallPhase.CONNECTING, CallPhase.CONNECTED):
            await self.close()
            return True

        if role is None:
            resolved = self._user.role if self._user else UserRole.PATIENT
        else:
            resolved = UserRole(role)

        self._transition(CallPhase.ENDING)
        notified = True
        if resolved is UserRole.PROFESSIONAL and self._room_id:
            try:
                await self._api.end_room(self._room_id)
                self._notifier.success("Consultation finished.")
            except ApiError as exc:
                logger.warning("Could not mark room %s as finished: %s", self._room_id, exc)
                notified = False
            except Exception as exc:  # noqa: BLE001 - hang-up always proceeds to teardown
                logger.exception("Unexpected error finishing room %s: %s", self._room_id, exc)
                self._notifier.error("Could not finish the consultation.")
                notified = False
        else:
            self._notifier.info("You left the consultation.")

        self._backend_notified = notified
        await self.teardown()
        self._transition(CallPhase.ENDED)
        return notified

    async def close(self) -> None:
        """Tear down and settle in a terminal phase (navigating away)."""

        await self.teardown()
        if self._state.phase not in (CallPhase.FAILED, CallPhase.ENDED):
            self._transition(CallPhase.ENDED)

    async def teardown(self) -> None:
        """Release media, leave and close signaling, drop the peer link. Idempotent."""

        self._active = False

        handle, self._media_handle = self._media_handle, None
        if handle is not None:
            handle.release()
        self._state.call_active = False

        channel = self._channel
        if channel is not None:
            if channel.is_open and not self._leave_announced and self._room_id and self._user:
                self._leave_announced = True
                try:
                    await channel.announce_leave(self._room_id, self._user.id)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Leave announcement failed for room %s: %s", self._room_id, exc)
            await channel.close()

        if not self._peer_closed:
            self._peer_closed = True
            self._peer.close()

        task = self._events_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        self._state.connection_status = ConnectionStatus.DISCONNECTED
        self._state.participants.clear()

    async def _fail(self, reason: FailureReason, message: str, *, notify: bool = True) -> None:
        if self._state.phase in (CallPhase.FAILED, CallPhase.ENDED):
            return
        logger.warning("Call in room %s failed (%s): %s", self._room_id, reason.value, message)
        self._state.failure = CallFailure(reason=reason, message=message)
        self._transition(CallPhase.FAILED)
        if notify:
            self._notifier.error(message)
        await self.teardown()

    def _transition(self, phase: CallPhase) -> None:
        previous = self._state.phase
        self._state.phase = phase
        logger.info("Room %s: %s -> %s", self._room_id, previous.value, phase.value)
