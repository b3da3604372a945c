"""Events and commands exchanged over the signaling channel.

Inbound frames are JSON objects discriminated by ``type``. The transport-level
events (``connected``, ``connection_failed``, ``disconnected``) never travel on
the wire; the channel synthesizes them so the controller consumes a single
ordered stream.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class Connected(BaseModel):
    type: Literal["connected"] = "connected"


class ConnectionFailed(BaseModel):
    type: Literal["connection_failed"] = "connection_failed"
    reason: str


class Disconnected(BaseModel):
    type: Literal["disconnected"] = "disconnected"
    reason: str | None = None


class ParticipantJoined(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["user_joined"] = "user_joined"
    participant_id: str = Field(alias="user_id")

    @field_validator("participant_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class ParticipantLeft(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["user_left"] = "user_left"
    participant_id: str = Field(alias="user_id")

    @field_validator("participant_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class Signal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["video_signal"] = "video_signal"
    from_id: str = Field(alias="from")
    payload: Any = None

    @field_validator("from_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


SignalingEvent = Annotated[
    Union[Connected, ConnectionFailed, Disconnected, ParticipantJoined, ParticipantLeft, Signal],
    Field(discriminator="type"),
]

# Frames a remote peer may legitimately send; transport events are local only.
RemoteEvent = Annotated[
    Union[ParticipantJoined, ParticipantLeft, Signal],
    Field(discriminator="type"),
]

remote_event_adapter: TypeAdapter[ParticipantJoined | ParticipantLeft | Signal] = TypeAdapter(RemoteEvent)


class JoinRoom(BaseModel):
    type: Literal["join_room"] = "join_room"
    room_id: str
    user_id: str
    user_name: str


class LeaveRoom(BaseModel):
    type: Literal["leave_room"] = "leave_room"
    room_id: str
    user_id: str
