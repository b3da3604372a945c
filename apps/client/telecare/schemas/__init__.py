"""Expose the client's data contracts."""
from .session import LoginRequest, RegisterRequest, Session, SessionView, User, UserRole
from .video import CallFailure, CallPhase, CallStateView, ConnectionStatus, FailureReason, Room

__all__ = [
    "CallFailure",
    "CallPhase",
    "CallStateView",
    "ConnectionStatus",
    "FailureReason",
    "LoginRequest",
    "RegisterRequest",
    "Room",
    "Session",
    "SessionView",
    "User",
    "UserRole",
]
