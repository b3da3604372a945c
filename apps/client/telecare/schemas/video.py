"""Schemas for video rooms and the call-room state exposed to the console."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CallPhase(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    AWAITING_MEDIA = "awaiting_media"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ENDING = "ending"
    ENDED = "ended"
    FAILED = "failed"


class ConnectionStatus(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class FailureReason(str, enum.Enum):
    ROOM_UNAVAILABLE = "room_unavailable"
    UNAUTHORIZED = "unauthorized"
    MEDIA_PERMISSION_DENIED = "media_permission_denied"
    MEDIA_DEVICE_UNAVAILABLE = "media_device_unavailable"
    MEDIA_ERROR = "media_error"
    SIGNALING_FAILED = "signaling_failed"
    INTERNAL = "internal"


class RoomAppointment(BaseModel):
    model_config = ConfigDict(extra="allow")

    professional_name: str | None = None
    patient_name: str | None = None
    appointment_date: datetime | None = None


class Room(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    appointment: RoomAppointment | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @property
    def title(self) -> str:
        """Counterpart name shown in the room header."""

        if self.appointment is None:
            return "Consultation"
        name = self.appointment.professional_name or self.appointment.patient_name
        return f"Consultation - {name}" if name else "Consultation"


class CallFailure(BaseModel):
    reason: FailureReason
    message: str


class CallStateView(BaseModel):
    room_id: str | None = None
    title: str | None = None
    phase: CallPhase
    connection_status: ConnectionStatus
    participants: list[str] = Field(default_factory=list)
    participant_count: int = Field(default=1, ge=1, description="Remote participants plus the local user")
    local_video_enabled: bool
    local_audio_enabled: bool
    call_active: bool
    failure: CallFailure | None = None


class ToggleResponse(BaseModel):
    enabled: bool


class EndCallResponse(BaseModel):
    phase: CallPhase
    backend_notified: bool
