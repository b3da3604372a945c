"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

from fastapi import Request

from .services.console import Console


def get_console(request: Request) -> Console:
    """Return the console attached to the running app."""

    return request.app.state.console
