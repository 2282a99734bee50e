"""Tests for the tutorial control API."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lyceum.core.event_bus import TUTORIAL_EVENTS
from lyceum.http.tutorial import _sse_generator, create_tutorial_router
from lyceum.session.models import SessionStatus, SessionVisual, VisualType
from lyceum.session.orchestrator import TutorialSession


# ─── Fixtures ─────────────────────────────────────────────────


@pytest.fixture
def session(connector, backend, bus, settings, clock):
    return TutorialSession(connector, backend=backend, bus=bus, settings=settings, now=clock)


@pytest.fixture
def client(session, bus):
    app = FastAPI()
    app.include_router(create_tutorial_router(session, bus))
    with TestClient(app) as test_client:
        yield test_client
        test_client.post("/v1/tutorial/end")


# ─── Lifecycle ────────────────────────────────────────────────


def test_start_returns_snapshot(client, connector):
    response = client.post("/v1/tutorial/start")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "connected"
    assert data["session_id"] == "sess-1"
    assert data["can_restart"] is True
    assert data["formatted_time"] == "0:00"
    assert len(connector.connections) == 1


def test_start_failure_is_502_with_error_state(failing_connector, backend, bus, settings, clock):
    session = TutorialSession(failing_connector, backend=backend, bus=bus, settings=settings, now=clock)
    app = FastAPI()
    app.include_router(create_tutorial_router(session, bus))
    with TestClient(app) as client:
        response = client.post("/v1/tutorial/start")

    assert response.status_code == 502
    body = response.json()
    assert "Microphone unavailable" in body["error"]
    assert body["state"]["status"] == "error"


def test_end_resets_to_idle(client, backend):
    client.post("/v1/tutorial/start")
    response = client.post("/v1/tutorial/end")
    assert response.status_code == 200
    assert response.json()["status"] == "idle"
    backend.submit_session_end.assert_awaited_once()


# ─── Pause / Resume ───────────────────────────────────────────


def test_pause_and_resume(client, connector):
    client.post("/v1/tutorial/start")

    paused = client.post("/v1/tutorial/pause")
    assert paused.status_code == 200
    assert paused.json()["paused"] is True
    assert paused.json()["state"]["status"] == "paused"

    again = client.post("/v1/tutorial/pause")
    assert again.status_code == 409
    assert again.json()["paused"] is False

    resumed = client.post("/v1/tutorial/resume")
    assert resumed.status_code == 200
    assert resumed.json()["state"]["status"] == "connected"
    assert "conversation.item.create" in connector.last.sent_types()


def test_pause_without_session_is_409(client):
    assert client.post("/v1/tutorial/pause").status_code == 409
    assert client.post("/v1/tutorial/resume").status_code == 409


# ─── Restart ──────────────────────────────────────────────────


def test_restart_inside_window(client, connector, backend):
    client.post("/v1/tutorial/start")
    response = client.post("/v1/tutorial/restart")
    assert response.status_code == 200
    assert response.json()["status"] == "connected"
    assert len(connector.connections) == 2
    backend.submit_session_end.assert_not_awaited()


def test_restart_after_window_is_409(client, session):
    client.post("/v1/tutorial/start")
    session.state.elapsed_seconds = 301

    response = client.post("/v1/tutorial/restart")
    assert response.status_code == 409
    assert "first 5 minutes" in response.json()["error"]
    assert session.state.status is SessionStatus.CONNECTED


# ─── Views ────────────────────────────────────────────────────


def test_state_when_idle(client):
    data = client.get("/v1/tutorial/state").json()
    assert data["status"] == "idle"
    assert data["can_restart"] is False
    assert data["minutes_remaining"] == 35


def test_dismiss_topics(client):
    response = client.post("/v1/tutorial/topics/dismiss")
    assert response.json() == {"status": "dismissed"}


def test_dismiss_visual(client, session):
    assert client.post("/v1/tutorial/visuals/0/dismiss").status_code == 404

    session.state.visuals.append(SessionVisual(type=VisualType.WHITEBOARD, description="forces"))
    response = client.post("/v1/tutorial/visuals/0/dismiss")
    assert response.status_code == 200
    assert response.json() == {"status": "dismissed", "index": 0}
    assert client.get("/v1/tutorial/state").json()["dismissed_visuals"] == [0]


def test_metrics(client):
    client.post("/v1/tutorial/start")
    data = client.get("/v1/tutorial/metrics").json()
    assert "session.connect_s" in data["histograms"]


# ─── SSE ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_sse_stream_starts_with_state(session, bus):
    stream = _sse_generator(session, bus)

    first = await stream.__anext__()
    assert first.startswith("event: state\n")
    assert json.loads(first.split("data: ", 1)[1])["status"] == "idle"
    assert bus.subscriber_count(TUTORIAL_EVENTS) == 1

    bus.publish(TUTORIAL_EVENTS, {"type": "visual", "data": {"type": "diagram"}})
    bus.publish_end(TUTORIAL_EVENTS)

    rest = [chunk async for chunk in stream]
    assert rest == [
        'event: visual\ndata: {"type": "diagram"}\n\n',
        "event: done\ndata: {}\n\n",
    ]
    assert bus.subscriber_count(TUTORIAL_EVENTS) == 0
