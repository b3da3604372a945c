"""Tests for REST error translation and endpoint wiring."""
from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from conftest import RecordingHandler, make_api
from telecare.services.api_client import (
    ApiError,
    ConnectivityError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from telecare.services.notifications import NotificationLevel
from telecare.services.session_store import SessionStore, TokenStorage


@pytest.fixture
def session_store(tmp_path, notifier):
    return SessionStore(TokenStorage(tmp_path / "session.json"), notifier)


async def signed_in(session_store, notifier) -> None:
    handler = RecordingHandler(
        {("POST", "/api/auth/login"): (200, {"access_token": "tok-1", "user": {"id": 1, "name": "Bruno"}})}
    )
    api = make_api(handler, notifier, session_store)
    await session_store.login(api, "bruno@example.com", "secret")
    await api.aclose()
    notifier.drain()


@pytest.mark.asyncio
async def test_bearer_token_is_attached_once_signed_in(session_store, notifier):
    await signed_in(session_store, notifier)
    handler = RecordingHandler({("GET", "/api/appointments/upcoming"): (200, {"appointments": []})})
    api = make_api(handler, notifier, session_store)

    body = await api.upcoming_appointments()

    assert body == {"appointments": []}
    assert handler.requests[0].headers["Authorization"] == "Bearer tok-1"


@pytest.mark.asyncio
async def test_requests_without_session_carry_no_authorization(notifier):
    handler = RecordingHandler({("GET", "/api/professionals/specialties"): (200, {"specialties": ["cardiology"]})})
    api = make_api(handler, notifier)

    await api.list_specialties()

    assert "Authorization" not in handler.requests[0].headers


@pytest.mark.asyncio
async def test_unauthorized_clears_session_and_notifies_once(session_store, notifier, tmp_path):
    await signed_in(session_store, notifier)
    assert (tmp_path / "session.json").exists()
    handler = RecordingHandler({("GET", "/api/appointments/stats"): (401, {"message": "Token expired"})})
    api = make_api(handler, notifier, session_store)

    with pytest.raises(UnauthorizedError):
        await api.appointment_stats()

    assert session_store.session is None
    assert not (tmp_path / "session.json").exists()
    assert [(n.level, n.message) for n in notifier.pending()] == [(NotificationLevel.ERROR, "Token expired")]


@pytest.mark.asyncio
async def test_validation_errors_notify_each_field(notifier):
    handler = RecordingHandler(
        {
            ("POST", "/api/appointments"): (
                422,
                {"errors": {"date": "Date is in the past", "notes": ["Too long", "Invalid characters"]}},
            )
        }
    )
    api = make_api(handler, notifier)

    with pytest.raises(ValidationError) as info:
        await api.create_appointment({"date": "2020-01-01"})

    expected = ["Date is in the past", "Too long", "Invalid characters"]
    assert info.value.messages == expected
    assert [n.message for n in notifier.pending()] == expected


@pytest.mark.asyncio
async def test_validation_error_with_plain_message(notifier):
    handler = RecordingHandler({("POST", "/api/auth/register"): (422, {"message": "Email already taken"})})
    api = make_api(handler, notifier)

    with pytest.raises(ValidationError):
        await api.register({"email": "x@example.com"})

    assert [n.message for n in notifier.pending()] == ["Email already taken"]


@pytest.mark.asyncio
async def test_server_error_uses_error_field_then_default(notifier):
    handler = RecordingHandler(
        {
            ("GET", "/api/payments/methods"): (500, {"error": "Gateway down"}),
            ("POST", "/api/payments/9/process"): (503, {}),
        }
    )
    api = make_api(handler, notifier)

    with pytest.raises(ApiError) as first:
        await api.payment_methods()
    with pytest.raises(ApiError) as second:
        await api.process_payment(9, "pix")

    assert first.value.status_code == 500
    assert first.value.message == "Gateway down"
    assert second.value.message == "An unexpected error occurred."
    assert len(notifier.pending()) == 2


@pytest.mark.asyncio
async def test_not_found_is_typed(notifier):
    api = make_api(RecordingHandler(), notifier)

    with pytest.raises(NotFoundError) as info:
        await api.get_room("nope")

    assert info.value.status_code == 404


@pytest.mark.asyncio
async def test_transport_failure_is_connectivity_error(notifier):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    api = make_api(handler, notifier)

    with pytest.raises(ConnectivityError) as info:
        await api.get_room("r42")

    assert info.value.status_code is None
    assert [n.message for n in notifier.pending()] == ["Could not reach the server. Check your connection."]


@pytest.mark.asyncio
async def test_endpoint_paths_and_payloads(notifier):
    handler = RecordingHandler(
        {
            ("GET", "/api/professionals/4/availability"): (200, {"slots": []}),
            ("GET", "/api/professionals/search"): (200, {"professionals": []}),
            ("PUT", "/api/appointments/11/status"): (200, {}),
            ("POST", "/api/payments/pix/generate"): (200, {"qr_code": "000201"}),
            ("POST", "/api/video/room/r42/end"): (200, {}),
        }
    )
    api = make_api(handler, notifier)

    await api.get_availability(4, date(2025, 10, 10))
    await api.search_professionals("ana", specialty="cardiology", min_price=None)
    await api.update_appointment_status(11, "confirmed")
    await api.generate_pix(5)
    await api.end_room("r42")

    availability, search, status, pix, end = handler.requests
    assert availability.url.params["date"] == "2025-10-10"
    assert dict(search.url.params) == {"q": "ana", "specialty": "cardiology"}
    assert status.method == "PUT"
    assert json.loads(status.content) == {"status": "confirmed"}
    assert json.loads(pix.content) == {"payment_id": 5}
    assert end.url.path == "/api/video/room/r42/end"
    assert notifier.pending() == []
