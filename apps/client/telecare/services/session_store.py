"""Authentication session owned by the client process.

The bearer token is the only value persisted between runs. It lives in a small
JSON file under a single well-known key and is removed on logout or whenever
the backend answers 401.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from ..schemas.session import RegisterRequest, Session, User
from .api_client import ApiError

if TYPE_CHECKING:
    from .api_client import ApiClient
    from .notifications import Notifier

TOKEN_KEY = "token"

logger = logging.getLogger(__name__)


class TokenStorage:
    """File-backed storage for the bearer token."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable token file at %s", self._path)
            return None
        token = data.get(TOKEN_KEY) if isinstance(data, dict) else None
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({TOKEN_KEY: token}), encoding="utf-8")
        try:
            os.chmod(self._path, 0o600)
        except OSError:  # pragma: no cover - filesystems without POSIX modes
            logger.debug("Could not restrict permissions on %s", self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class SessionStore:
    """Holds the token and current user for the lifetime of the process."""

    def __init__(self, storage: TokenStorage, notifier: "Notifier") -> None:
        self._storage = storage
        self._notifier = notifier
        self._session: Optional[Session] = None
        self._pending_token: Optional[str] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user(self) -> Optional[User]:
        return self._session.user if self._session else None

    @property
    def token(self) -> Optional[str]:
        """Token to attach to outbound requests, including during bootstrap."""

        if self._session is not None:
            return self._session.token
        return self._pending_token

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    async def bootstrap(self, api: "ApiClient") -> Optional[Session]:
        """Restore the session from the persisted token, if it is still valid."""

        token = self._storage.load()
        if not token:
            return None

        self._pending_token = token
        try:
            data = await api.me()
            user = User.model_validate(_extract_user(data))
        except (ApiError, ValueError) as exc:
            logger.info("Persisted token rejected during bootstrap: %s", exc)
            self.clear()
            return None
        finally:
            self._pending_token = None

        self._session = Session(token=token, user=user)
        logger.info("Restored session for user %s", user.id)
        return self._session

    async def login(self, api: "ApiClient", email: str, password: str) -> Session:
        data = await api.login(email, password)
        session = self._start(data)
        self._notifier.success("Signed in successfully.")
        return session

    async def register(self, api: "ApiClient", payload: RegisterRequest) -> Session:
        data = await api.register(payload.model_dump(mode="json"))
        session = self._start(data)
        self._notifier.success("Account created successfully.")
        return session

    def logout(self) -> None:
        self.clear()
        self._notifier.info("You have been signed out.")

    def clear(self) -> None:
        """Forget the session and the persisted token."""

        if self._session is not None:
            logger.info("Clearing session for user %s", self._session.user.id)
        self._session = None
        self._storage.clear()

    def _start(self, data: dict[str, Any]) -> Session:
        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            raise ValueError("Authentication response did not include an access token")
        user = User.model_validate(_extract_user(data))
        self._session = Session(token=token, user=user)
        self._storage.save(token)
        logger.info("Started session for user %s", user.id)
        return self._session


def _extract_user(data: dict[str, Any]) -> dict[str, Any]:
    user = data.get("user") if isinstance(data, dict) else None
    if not isinstance(user, dict):
        raise ValueError("Authentication response did not include a user")
    return user
