"""Sign-in, registration and session endpoints for the console."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_console
from ..schemas.session import LoginRequest, RegisterRequest, SessionView
from ..services.api_client import ApiError
from ..services.console import Console

router = APIRouter()


def _as_http_error(exc: ApiError) -> HTTPException:
    return HTTPException(status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY, detail=exc.message)


@router.post("/login", response_model=SessionView)
async def login(payload: LoginRequest, console: Console = Depends(get_console)) -> SessionView:
    """Exchange credentials for a session and persist its token."""

    try:
        session = await console.session.login(console.api, payload.email, payload.password)
    except ApiError as exc:
        raise _as_http_error(exc) from exc
    return SessionView(authenticated=True, user=session.user)


@router.post("/register", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, console: Console = Depends(get_console)) -> SessionView:
    """Create an account and sign in with it."""

    try:
        session = await console.session.register(console.api, payload)
    except ApiError as exc:
        raise _as_http_error(exc) from exc
    return SessionView(authenticated=True, user=session.user)


@router.post("/logout", response_model=SessionView)
async def logout(console: Console = Depends(get_console)) -> SessionView:
    await console.leave_call()
    console.session.logout()
    return SessionView(authenticated=False)


@router.get("/me", response_model=SessionView)
async def me(console: Console = Depends(get_console)) -> SessionView:
    user = console.session.user
    return SessionView(authenticated=user is not None, user=user)
