"""Call-room endpoints: enter, inspect, toggle media, hang up, leave."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_console
from ..schemas.video import CallStateView, EndCallResponse, ToggleResponse
from ..services.call_session import CallSessionController
from ..services.console import Console

router = APIRouter()


def _current_call(console: Console) -> CallSessionController:
    if console.call is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No call in progress")
    return console.call


@router.post("/{room_id}", response_model=CallStateView, status_code=status.HTTP_202_ACCEPTED)
async def enter_room(room_id: str, console: Console = Depends(get_console)) -> CallStateView:
    """Start entering the room; poll ``/current`` for progress."""

    user = console.session.user
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to join a call")

    call = await console.start_call(room_id, user)
    return call.snapshot()


@router.get("/current", response_model=CallStateView)
async def current_call(console: Console = Depends(get_console)) -> CallStateView:
    return _current_call(console).snapshot()


@router.post("/current/video", response_model=ToggleResponse)
async def toggle_video(console: Console = Depends(get_console)) -> ToggleResponse:
    return ToggleResponse(enabled=_current_call(console).toggle_video())


@router.post("/current/audio", response_model=ToggleResponse)
async def toggle_audio(console: Console = Depends(get_console)) -> ToggleResponse:
    return ToggleResponse(enabled=_current_call(console).toggle_audio())


@router.post("/current/end", response_model=EndCallResponse)
async def end_call(console: Console = Depends(get_console)) -> EndCallResponse:
    """Hang up; professionals also mark the consultation as finished."""

    call = _current_call(console)
    user = console.session.user or call.user
    role = user.role if user is not None else None
    notified = await call.end_call(role)
    return EndCallResponse(phase=call.phase, backend_notified=notified)


@router.delete("/current", response_model=CallStateView)
async def leave_call(console: Console = Depends(get_console)) -> CallStateView:
    """Navigate away from the room; tears everything down even mid-setup."""

    call = _current_call(console)
    await console.leave_call()
    return call.snapshot()
