"""HTTP endpoints through the ASGI app."""

from datetime import timedelta

import httpx
import pytest

from api_server import app
from database.models import SessionType
from tests.conftest import CRON_SECRET, T0, add_chat_entries, add_registration, add_schedule_config, add_session

AUTH = {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
async def client(container):
    app.state.container = container
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http
    app.state.container = None


async def test_cron_endpoints_require_secret(client):
    assert (await client.post("/api/cron/generate-sessions")).status_code == 401
    assert (await client.post("/api/cron/generate-sessions", headers={"Authorization": "Bearer wrong"})).status_code == 401
    assert (await client.get("/api/cron/process-notifications")).status_code == 401


async def test_generate_sessions_reports_batch(client):
    await add_schedule_config("good")
    await add_schedule_config("bad", timezone="Nowhere/Land")

    response = await client.post("/api/cron/generate-sessions", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert (body["processed"], body["created"], body["existing"]) == (1, 13, 0)
    assert [err["webinarId"] for err in body["errors"]] == ["bad"]

    again = (await client.post("/api/cron/generate-sessions", headers={"X-Cron-Secret": CRON_SECRET})).json()
    assert (again["created"], again["existing"]) == (0, 13)


async def test_process_notifications_accepts_get_and_post(client):
    for method in ("GET", "POST"):
        response = await client.request(method, "/api/cron/process-notifications", headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"sent": 0, "failed": 0, "skipped": 0}


async def test_viewer_flow(client, clock):
    session = await add_session()
    await add_registration(session)

    clock.set(T0 + timedelta(minutes=5))
    state = (await client.get("/api/webinar/access-state", params={"token": "token-viewer"})).json()
    assert state["phase"] == "LIVE_WATCHING"
    assert state["allowedCeiling"] == 300
    assert state["sessionType"] == "EVERGREEN"
    assert state["scheduledAt"] == "2024-01-01T10:00:00Z"

    progress = await client.post("/api/webinar/progress", json={"token": "token-viewer", "positionSeconds": 300})
    assert progress.json() == {"accepted": True, "maxVideoPosition": 300.0}

    state = (await client.get("/api/webinar/access-state", params={"token": "token-viewer"})).json()
    assert state["phase"] == "CAUGHT_UP_WAITING"

    ahead = await client.post("/api/webinar/progress", json={"token": "token-viewer", "positionSeconds": 900})
    assert ahead.json() == {"accepted": False, "maxVideoPosition": 300.0}

    clock.set(T0 + timedelta(hours=1, minutes=5))
    state = (await client.get("/api/webinar/access-state", params={"token": "token-viewer"})).json()
    assert state["phase"] == "ENDED_REPLAY_AVAILABLE"
    assert state["allowedCeiling"] is None


async def test_invalid_token_gets_uniform_401(client):
    responses = [
        await client.get("/api/webinar/access-state", params={"token": "nope"}),
        await client.get("/api/webinar/access-state"),
        await client.get("/api/webinar/chat", params={"token": "nope"}),
        await client.post("/api/webinar/progress", json={"token": "nope", "positionSeconds": 1}),
    ]
    assert {r.status_code for r in responses} == {401}
    assert {r.json()["detail"] for r in responses} == {"invalid or expired access token"}


async def test_chat_endpoint_is_capped_at_live_edge(client, clock):
    await add_registration(await add_session())
    await add_chat_entries("webinar-1", [(10, "Host", "Welcome"), (50, "Sam", "Hi"), (500, "Lee", "Later")])
    clock.set(T0 + timedelta(seconds=60))

    capped = (await client.get("/api/webinar/chat", params={"token": "token-viewer", "from": 0, "to": 1000})).json()
    default = (await client.get("/api/webinar/chat", params={"token": "token-viewer", "from": 20})).json()

    assert [e["appearsAt"] for e in capped["entries"]] == [10, 50]
    assert [e["senderName"] for e in default["entries"]] == ["Sam"]


async def test_live_session_chat_is_empty(client, clock):
    await add_registration(await add_session(session_type=SessionType.LIVE))
    await add_chat_entries("webinar-1", [(10, "Host", "Welcome")])
    clock.set(T0 + timedelta(minutes=1))

    body = (await client.get("/api/webinar/chat", params={"token": "token-viewer", "to": 60})).json()
    assert body == {"entries": []}


async def test_register_and_list_sessions(client):
    first = await add_session(scheduled_at=T0 + timedelta(hours=1))
    await add_session(scheduled_at=T0 + timedelta(hours=3))

    listing = (await client.get("/api/webinar/webinar-1/sessions")).json()
    assert [s["id"] for s in listing["sessions"]][0] == first.id
    assert listing["sessions"][0]["scheduledAt"] == "2024-01-01T11:00:00Z"

    response = await client.post("/api/webinar/webinar-1/register", json={"email": "new@example.com", "firstName": "Bo"})
    assert response.status_code == 200
    body = response.json()
    assert body["sessionId"] == first.id
    assert body["created"] is True

    state = await client.get("/api/webinar/access-state", params={"token": body["accessToken"]})
    assert state.json()["phase"] == "NOT_STARTED"


async def test_register_rejects_bad_input(client):
    await add_session(scheduled_at=T0 + timedelta(hours=1))

    bad_email = await client.post("/api/webinar/webinar-1/register", json={"email": "nope"})
    no_sessions = await client.post("/api/webinar/other/register", json={"email": "a@example.com"})

    assert bad_email.status_code == 400
    assert no_sessions.status_code == 400


async def test_health(client):
    body = (await client.get("/health")).json()
    assert body["status"] == "ok"
    assert body["database_ok"] is True
