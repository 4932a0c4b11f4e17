"""Tests for the Blood Bank HTTP API."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from bloodbank.api.main import create_app
from bloodbank.api.sessions import SESSION_COOKIE, SESSION_HEADER, ClientRegistry
from bloodbank.config import AppSettings
from bloodbank.core.client import LOGIN_FAILED
from bloodbank.core.errors import ConfigError
from bloodbank.core.request_handler import FILL_ALL_FIELDS, HOSPITAL_NOT_FOUND
from bloodbank.core.state import INIT_FAILED
from bloodbank.db.memory import MemoryDocumentStore

from tests.conftest import FakeIdentityProvider, VALID_TOKEN

APP_SETTINGS = AppSettings(app_id="test-app", backend="memory", snapshot_wait_seconds=2)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def api(store):
    registry = ClientRegistry(store, APP_SETTINGS, identity_factory=FakeIdentityProvider)
    with TestClient(create_app(registry_factory=lambda: registry)) as test_client:
        yield test_client


@pytest.fixture
def signed_in(api):
    response = api.post("/api/session", json={})
    assert response.status_code == 200
    return api


def stored_inventory(store, doc_id):
    docs = asyncio.run(store.list_documents(APP_SETTINGS.collection_path))
    return {d.doc_id: d.data for d in docs}[doc_id]["inventory"]


def test_health(api):
    body = api.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["backend"] == "memory"
    assert body["database"] == "connected"


def test_sign_in_returns_seeded_state(api):
    response = api.post("/api/session", json={})

    assert response.status_code == 200
    assert SESSION_COOKIE in response.cookies
    body = response.json()
    assert body["view"] == "home"
    assert body["synced"]
    assert body["session"]["is_anonymous"]
    assert [b["name"] for b in body["banks"]] == [
        "City General Hospital",
        "Community Health Center",
        "Regional Trauma Center",
    ]
    assert body["banks"][0]["total_units"] == 153


def test_token_sign_in(api):
    body = api.post("/api/session", json={"token": VALID_TOKEN}).json()
    assert body["session"] == {"uid": "user-1", "is_anonymous": False}


def test_rejected_token(api):
    response = api.post("/api/session", json={"token": "forged"})

    assert response.status_code == 401
    assert response.json()["detail"] == LOGIN_FAILED
    assert api.get("/api/state").status_code == 401


def test_state_requires_session(api):
    assert api.get("/api/state").status_code == 401
    assert api.post("/api/requests", json={}).status_code == 401


def test_request_success(signed_in, store):
    response = signed_in.post(
        "/api/requests",
        json={"blood_type": "O+", "hospital": "City General Hospital", "amount": 20},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["kind"] == "success"
    assert body["message"] == (
        "Successfully requested 20 units of O+ blood from City General Hospital."
    )
    assert body["map_url"] == (
        "https://www.google.com/maps/search/?api=1&query=City%20General%20Hospital"
    )
    assert stored_inventory(store, "hospital-A")["O+"] == 30
    assert stored_inventory(store, "hospital-B")["O+"] == 25


def test_request_shortage(signed_in, store):
    body = signed_in.post(
        "/api/requests",
        json={"blood_type": "A-", "hospital": "City General Hospital", "amount": "999"},
    ).json()

    assert body["kind"] == "error"
    assert body["message"] == (
        "Not enough A- blood available at City General Hospital. Only 12 units available."
    )
    assert body["map_url"] is None
    assert stored_inventory(store, "hospital-A")["A-"] == 12


def test_request_validation_messages(signed_in):
    missing = signed_in.post("/api/requests", json={"blood_type": "O+"}).json()
    assert missing["message"] == FILL_ALL_FIELDS

    unknown = signed_in.post(
        "/api/requests", json={"blood_type": "O+", "hospital": "Nowhere", "amount": 1}
    ).json()
    assert unknown["message"] == HOSPITAL_NOT_FOUND

    state = signed_in.get("/api/state").json()
    assert state["request_status"]["message"] == HOSPITAL_NOT_FOUND


def test_requester_age_checked(signed_in):
    response = signed_in.post(
        "/api/requests",
        json={"blood_type": "O+", "hospital": "City General Hospital", "amount": 1, "requester_age": 12},
    )
    assert response.status_code == 422


def test_view_and_banks(signed_in):
    assert signed_in.post("/api/view", json={"view": "request"}).json()["view"] == "request"
    assert signed_in.post("/api/view", json={"view": "elsewhere"}).status_code == 422

    banks = signed_in.get("/api/banks").json()
    assert [b["id"] for b in banks] == ["hospital-A", "hospital-B", "hospital-C"]


def test_donation_flow(signed_in):
    assert signed_in.post("/api/donate/open").json()["show_donate"]

    response = signed_in.post(
        "/api/donations", json={"name": "Asha", "weight_kg": 61, "age": 29}
    )

    assert response.json()["message"].startswith("Thank you for your donation")
    assert not signed_in.get("/api/state").json()["show_donate"]


def test_contact(signed_in):
    response = signed_in.post(
        "/api/contact", json={"name": "Ravi", "email": "ravi@example.com", "message": "Hi"}
    )
    assert response.status_code == 200


def test_static_pages(api):
    about = api.get("/api/pages/about").json()
    assert about["title"] == "About Us"
    assert len(api.get("/api/pages/home").json()["features"]) == 3
    assert api.get("/api/pages/missing").status_code == 404


def test_sign_out(signed_in):
    response = signed_in.delete("/api/session")

    assert response.status_code == 200
    assert signed_in.get("/api/state").status_code == 401


def test_config_error_blocks_api():
    def broken_registry():
        raise ConfigError("LAKEBASE_HOST is not set")

    with TestClient(create_app(registry_factory=broken_registry)) as api:
        response = api.post("/api/session", json={})
        assert response.status_code == 503
        assert response.json()["detail"] == INIT_FAILED
        assert api.get("/api/health").json()["status"] == "misconfigured"


def build_api(store, **limits):
    settings = APP_SETTINGS.model_copy(update=limits)
    registry = ClientRegistry(store, settings, identity_factory=FakeIdentityProvider)
    return registry, TestClient(create_app(registry_factory=lambda: registry))


def test_least_recently_used_clients_are_closed(store):
    registry, test_client = build_api(store, max_clients=2)
    with test_client as api:
        first = api.post("/api/session", json={}).json()["client_id"]
        api.cookies.clear()
        for _ in range(4):
            api.post("/api/session", json={})
            api.cookies.clear()

        assert len(registry) == 2
        assert store.watcher_count == 2
        stale = api.get("/api/state", headers={SESSION_HEADER: first})
        assert stale.status_code == 401


def test_recently_used_client_survives_eviction(store):
    registry, test_client = build_api(store, max_clients=2)
    with test_client as api:
        kept = api.post("/api/session", json={}).json()["client_id"]
        api.cookies.clear()
        dropped = api.post("/api/session", json={}).json()["client_id"]
        api.cookies.clear()

        assert api.get("/api/state", headers={SESSION_HEADER: kept}).status_code == 200
        api.post("/api/session", json={})

        assert registry.get(kept) is not None
        assert registry.get(dropped) is None


def test_idle_clients_expire(store):
    registry, test_client = build_api(store, client_idle_seconds=0)
    with test_client as api:
        api.post("/api/session", json={})
        api.cookies.clear()
        api.post("/api/session", json={})

        assert len(registry) == 1
        assert store.watcher_count == 1


def test_sign_in_with_cookie_reuses_client(api):
    first = api.post("/api/session", json={}).json()["client_id"]
    second = api.post("/api/session", json={}).json()["client_id"]

    assert first == second
