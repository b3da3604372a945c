from __future__ import annotations

import json

import pytest

from conftest import RecordingHandler, make_api
from telecare.schemas.session import RegisterRequest, UserRole
from telecare.services.api_client import ValidationError
from telecare.services.notifications import NotificationLevel
from telecare.services.session_store import SessionStore, TokenStorage

ME = {"user": {"id": 7, "name": "Ana", "email": "ana@example.com", "user_type": "professional", "crm": "12345"}}


@pytest.fixture
def storage(tmp_path):
    return TokenStorage(tmp_path / "nested" / "session.json")


def test_token_storage_round_trip(storage):
    assert storage.load() is None

    storage.save("tok-9")

    assert json.loads(storage.path.read_text()) == {"token": "tok-9"}
    assert storage.load() == "tok-9"
    storage.clear()
    storage.clear()
    assert storage.load() is None


def test_token_storage_ignores_corrupt_file(storage):
    storage.path.parent.mkdir(parents=True)
    storage.path.write_text("{not json")

    assert storage.load() is None


@pytest.mark.asyncio
async def test_bootstrap_restores_session_with_persisted_token(storage, notifier):
    storage.save("tok-9")
    store = SessionStore(storage, notifier)
    handler = RecordingHandler({("GET", "/api/auth/me"): (200, ME)})
    api = make_api(handler, notifier, store)

    session = await store.bootstrap(api)

    assert session is not None
    assert store.is_authenticated
    assert store.user.id == "7"
    assert store.user.role is UserRole.PROFESSIONAL
    assert store.user.model_extra == {"crm": "12345"}
    assert handler.requests[0].headers["Authorization"] == "Bearer tok-9"
    assert notifier.pending() == []


@pytest.mark.asyncio
async def test_bootstrap_with_rejected_token_clears_storage(storage, notifier):
    storage.save("stale")
    store = SessionStore(storage, notifier)
    handler = RecordingHandler({("GET", "/api/auth/me"): (401, {"message": "Invalid token"})})
    api = make_api(handler, notifier, store)

    assert await store.bootstrap(api) is None

    assert not store.is_authenticated
    assert store.token is None
    assert storage.load() is None


@pytest.mark.asyncio
async def test_bootstrap_without_token_skips_the_backend(storage, notifier):
    store = SessionStore(storage, notifier)
    handler = RecordingHandler()

    assert await store.bootstrap(make_api(handler, notifier, store)) is None
    assert handler.requests == []


@pytest.mark.asyncio
async def test_register_persists_token_and_notifies(storage, notifier):
    store = SessionStore(storage, notifier)
    handler = RecordingHandler(
        {("POST", "/api/auth/register"): (201, {"access_token": "tok-new", "user": {"id": 30, "name": "Carla"}})}
    )
    api = make_api(handler, notifier, store)

    await store.register(api, RegisterRequest(name="Carla", email="carla@example.com", password="pw", phone="555"))

    assert storage.load() == "tok-new"
    assert json.loads(handler.requests[0].content)["phone"] == "555"
    assert [(n.level, n.message) for n in notifier.drain()] == [
        (NotificationLevel.SUCCESS, "Account created successfully.")
    ]

    store.logout()

    assert storage.load() is None
    assert [n.level for n in notifier.drain()] == [NotificationLevel.INFO]


@pytest.mark.asyncio
async def test_failed_login_keeps_no_session(storage, notifier):
    store = SessionStore(storage, notifier)
    handler = RecordingHandler({("POST", "/api/auth/login"): (422, {"errors": {"email": ["Invalid email"]}})})
    api = make_api(handler, notifier, store)

    with pytest.raises(ValidationError):
        await store.login(api, "nope", "pw")

    assert not store.is_authenticated
    assert [n.message for n in notifier.pending()] == ["Invalid email"]


@pytest.mark.asyncio
async def test_login_without_token_in_response_is_rejected(storage, notifier):
    store = SessionStore(storage, notifier)
    handler = RecordingHandler({("POST", "/api/auth/login"): (200, {"user": {"id": 1, "name": "Bruno"}})})

    with pytest.raises(ValueError):
        await store.login(make_api(handler, notifier, store), "bruno@example.com", "pw")

    assert storage.load() is None
