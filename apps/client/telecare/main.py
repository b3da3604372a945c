"""Local console for the telehealth client: call room plus session plumbing."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from .core.config import Settings, settings as default_settings
from .core.logging import configure_logging
from .dependencies import get_console
from .routers import auth as auth_router
from .routers import calls as calls_router
from .services.console import Console

logger = logging.getLogger(__name__)

HTML_PAGE = """<!DOCTYPE html>
<html lang=\"en\">
<head>
    <meta charset=\"UTF-8\" />
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\" />
    <title>Telecare Call Room</title>
    <script src=\"https://cdn.tailwindcss.com\"></script>
</head>
<body class=\"min-h-screen bg-gray-900 text-slate-100\">
    <header class=\"flex items-center justify-between bg-white px-6 py-4 text-gray-900 shadow-sm\">
        <h1 id=\"title\" class=\"text-xl font-bold\">Consultation</h1>
        <div class=\"flex gap-2 text-sm\">
            <span id=\"connection\" class=\"rounded-full bg-red-100 px-3 py-1 text-red-700\">Disconnected</span>
            <span id=\"count\" class=\"rounded-full bg-gray-100 px-3 py-1\">1 participants</span>
        </div>
    </header>
    <main class=\"mx-auto max-w-3xl space-y-4 px-6 py-8\">
        <form id=\"enterForm\" class=\"flex gap-2\">
            <input id=\"roomId\" class=\"flex-1 rounded bg-gray-800 px-3 py-2\" placeholder=\"Room id\" />
            <button class=\"rounded bg-emerald-500 px-4 py-2 font-semibold text-black\">Enter room</button>
        </form>
        <p id=\"status\" class=\"text-sm text-slate-400\">Not in a call.</p>
        <div class=\"flex gap-3\">
            <button data-action=\"audio\" class=\"rounded-full bg-gray-700 px-4 py-2\">Mic</button>
            <button data-action=\"video\" class=\"rounded-full bg-gray-700 px-4 py-2\">Camera</button>
            <button data-action=\"end\" class=\"rounded-full bg-red-600 px-4 py-2\">Hang up</button>
        </div>
        <ul id=\"notifications\" class=\"space-y-1 text-sm\"></ul>
    </main>
    <script>
        const statusEl = document.getElementById('status');
        const notificationsEl = document.getElementById('notifications');

        function render(state) {
            if (!state) {
                statusEl.textContent = 'Not in a call.';
                return;
            }
            document.getElementById('title').textContent = state.title || 'Consultation';
            const connection = document.getElementById('connection');
            connection.textContent = state.connection_status === 'connected' ? 'Connected' : 'Disconnected';
            document.getElementById('count').textContent = `${state.participant_count} participants`;
            const failure = state.failure ? ` - ${state.failure.message}` : '';
            statusEl.textContent = `${state.call_active ? 'Call active' : state.phase}${failure}`;
        }

        async function refresh() {
            const response = await fetch('/api/calls/current');
            render(response.ok ? await response.json() : null);
            const notes = await (await fetch('/api/notifications')).json();
            for (const note of notes) {
                const item = document.createElement('li');
                item.textContent = `[${note.level}] ${note.message}`;
                notificationsEl.prepend(item);
            }
        }

        document.getElementById('enterForm').addEventListener('submit', async (event) => {
            event.preventDefault();
            const roomId = document.getElementById('roomId').value.trim();
            if (roomId) {
                await fetch(`/api/calls/${encodeURIComponent(roomId)}`, { method: 'POST' });
            }
        });

        document.querySelectorAll('[data-action]').forEach((button) => {
            button.addEventListener('click', async () => {
                await fetch(`/api/calls/current/${button.dataset.action}`, { method: 'POST' });
                await refresh();
            });
        });

        window.addEventListener('beforeunload', () => {
            fetch('/api/calls/current', { method: 'DELETE', keepalive: true });
        });

        setInterval(refresh, 1000);
    </script>
</body>
</html>
"""


def create_app(settings: Settings | None = None, console: Console | None = None) -> FastAPI:
    """Build the console app; tests pass their own console."""

    resolved_settings = settings or default_settings
    configure_logging(resolved_settings.log_level)
    resolved_console = console or Console(resolved_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await resolved_console.startup()
        try:
            yield
        finally:
            await resolved_console.aclose()

    app = FastAPI(title="Telecare Console", version="0.1.0", lifespan=lifespan)
    app.state.console = resolved_console

    if resolved_settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=resolved_settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(auth_router.router, prefix="/api/auth", tags=["auth"])
    app.include_router(calls_router.router, prefix="/api/calls", tags=["calls"])

    @app.get("/", response_class=HTMLResponse, tags=["meta"])
    async def index() -> HTMLResponse:
        """Serve the single-page call room."""

        return HTMLResponse(content=HTML_PAGE)

    @app.get("/api/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Simple liveness probe."""

        return {"status": "ok"}

    @app.head("/api/health", tags=["meta"])
    async def health_head() -> Response:
        return Response(status_code=200)

    @app.get("/api/notifications", tags=["meta"])
    async def notifications(request_console: Console = Depends(get_console)) -> list[dict]:
        """Drain the notifications waiting to be shown."""

        return [item.as_dict() for item in request_console.notifier.drain()]

    return app


app = create_app()
