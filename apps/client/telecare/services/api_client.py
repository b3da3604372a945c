"""HTTP client for the telehealth REST API.

Every failed call is translated into exactly one user-facing notification and
a typed exception. A 401 anywhere also clears the current session.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Any, Iterable

import httpx

from .notifications import Notifier

if TYPE_CHECKING:
    from .session_store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred."
UNAUTHORIZED_MESSAGE = "Session expired or unauthorized. Please sign in again."
VALIDATION_MESSAGE = "Validation error."
CONNECTIVITY_MESSAGE = "Could not reach the server. Check your connection."


class ApiError(RuntimeError):
    """Raised when a request fails; ``status_code`` is None for transport errors."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class UnauthorizedError(ApiError):
    """The backend rejected the bearer token."""


class NotFoundError(ApiError):
    """The requested resource does not exist."""


class ValidationError(ApiError):
    """The backend rejected the request body with field-level messages."""

    def __init__(self, messages: list[str], payload: Any = None) -> None:
        super().__init__("; ".join(messages) or VALIDATION_MESSAGE, status_code=422, payload=payload)
        self.messages = messages


class ConnectivityError(ApiError):
    """The request never got an HTTP response."""


class ApiClient:
    """Thin async wrapper around the REST API rooted at ``base_url``."""

    def __init__(
        self,
        base_url: str,
        *,
        notifier: Notifier,
        session_store: "SessionStore | None" = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._notifier = notifier
        self._session_store = session_store
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def bind_session(self, session_store: "SessionStore") -> None:
        self._session_store = session_store

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # auth

    async def me(self) -> dict[str, Any]:
        return await self._request("GET", "auth/me")

    async def login(self, email: str, password: str) -> dict[str, Any]:
        return await self._request("POST", "auth/login", json={"email": email, "password": password})

    async def register(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "auth/register", json=payload)

    # professionals

    async def list_professionals(self, **filters: Any) -> dict[str, Any]:
        return await self._request("GET", "professionals", params=_clean_params(filters))

    async def get_professional(self, professional_id: str | int) -> dict[str, Any]:
        return await self._request("GET", f"professionals/{professional_id}")

    async def get_availability(self, professional_id: str | int, on: date | str) -> dict[str, Any]:
        day = on.isoformat() if isinstance(on, date) else on
        return await self._request("GET", f"professionals/{professional_id}/availability", params={"date": day})

    async def list_specialties(self) -> dict[str, Any]:
        return await self._request("GET", "professionals/specialties")

    async def search_professionals(self, query: str, **filters: Any) -> dict[str, Any]:
        params = _clean_params({"q": query, **filters})
        return await self._request("GET", "professionals/search", params=params)

    # appointments

    async def list_appointments(self, *, status: str | None = None, page: int | None = None) -> dict[str, Any]:
        return await self._request("GET", "appointments", params=_clean_params({"status": status, "page": page}))

    async def create_appointment(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "appointments", json=payload)

    async def update_appointment_status(self, appointment_id: str | int, status: str) -> dict[str, Any]:
        return await self._request("PUT", f"appointments/{appointment_id}/status", json={"status": status})

    async def appointment_stats(self) -> dict[str, Any]:
        return await self._request("GET", "appointments/stats")

    async def upcoming_appointments(self) -> dict[str, Any]:
        return await self._request("GET", "appointments/upcoming")

    async def get_appointment(self, appointment_id: str | int) -> dict[str, Any]:
        return await self._request("GET", f"appointments/{appointment_id}")

    # payments

    async def payment_methods(self) -> dict[str, Any]:
        return await self._request("GET", "payments/methods")

    async def generate_pix(self, payment_id: str | int) -> dict[str, Any]:
        return await self._request("POST", "payments/pix/generate", json={"payment_id": payment_id})

    async def process_payment(
        self,
        payment_id: str | int,
        payment_method: str,
        card_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"payment_method": payment_method}
        if card_data is not None:
            payload["card_data"] = card_data
        return await self._request("POST", f"payments/{payment_id}/process", json=payload)

    # video

    async def get_room(self, room_id: str) -> dict[str, Any]:
        return await self._request("GET", f"video/room/{room_id}")

    async def end_room(self, room_id: str) -> dict[str, Any]:
        return await self._request("POST", f"video/room/{room_id}/end")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers: dict[str, str] = {}
        token = self._session_store.token if self._session_store is not None else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed before a response: %s", method, path, exc)
            self._notifier.error(CONNECTIVITY_MESSAGE)
            raise ConnectivityError(CONNECTIVITY_MESSAGE) from exc

        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                logger.warning("%s %s returned a non-JSON body", method, path)
                self._notifier.error(DEFAULT_ERROR_MESSAGE)
                raise ApiError(DEFAULT_ERROR_MESSAGE, status_code=response.status_code) from exc

        raise self._translate_error(method, path, response)

    def _translate_error(self, method: str, path: str, response: httpx.Response) -> ApiError:
        payload = _safe_json(response)
        status_code = response.status_code
        logger.info("%s %s -> %s", method, path, status_code)

        if status_code == httpx.codes.UNAUTHORIZED:
            message = _message_from(payload) or UNAUTHORIZED_MESSAGE
            self._notifier.error(message)
            if self._session_store is not None:
                self._session_store.clear()
            return UnauthorizedError(message, status_code=status_code, payload=payload)

        if status_code == httpx.codes.UNPROCESSABLE_ENTITY:
            messages = _validation_messages(payload)
            for message in messages:
                self._notifier.error(message)
            return ValidationError(messages, payload=payload)

        message = _message_from(payload) or DEFAULT_ERROR_MESSAGE
        self._notifier.error(message)
        if status_code == httpx.codes.NOT_FOUND:
            return NotFoundError(message, status_code=status_code, payload=payload)
        return ApiError(message, status_code=status_code, payload=payload)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _message_from(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in ("message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _validation_messages(payload: Any) -> list[str]:
    """Flatten ``errors`` (dict or list of field messages) into display strings."""

    if not isinstance(payload, dict):
        return [VALIDATION_MESSAGE]

    errors = payload.get("errors")
    if isinstance(errors, dict):
        messages = list(_flatten(errors.values()))
    elif isinstance(errors, list):
        messages = list(_flatten(errors))
    elif isinstance(errors, str) and errors.strip():
        messages = [errors]
    else:
        messages = []

    if messages:
        return messages
    return [_message_from(payload) or VALIDATION_MESSAGE]


def _flatten(values: Iterable[Any]) -> Iterable[str]:
    for value in values:
        if isinstance(value, str):
            yield value
        elif isinstance(value, (list, tuple)):
            yield from _flatten(value)
        elif isinstance(value, dict) and isinstance(value.get("msg"), str):
            yield value["msg"]
        elif value is not None:
            yield str(value)


def _clean_params(params: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value not in (None, "")}
