"""Shared fixtures: a fake connection, a manual clock, a mocked backend."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from lyceum.core.config import LyceumConfig, SessionTimingConfig
from lyceum.core.errors import RealtimeConnectionError
from lyceum.core.event_bus import EventBus
from lyceum.core.metrics import metrics
from lyceum.realtime.base import END_OF_STREAM, Connection
from lyceum.services.backend import LessonPlanResult, SessionGrant
from lyceum.session.models import TopicOption


class FakeConnection(Connection):
    """In-memory connection that records what the session sends."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[dict] = []
        self.open = True
        self.input_enabled = True
        self.playback_paused = False
        self.teardown_calls = 0

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, event: dict) -> bool:
        if not self.open:
            return False
        # Round-trip through JSON like the real data channel
        self.sent.append(json.loads(json.dumps(event)))
        return True

    def set_input_enabled(self, enabled: bool) -> None:
        self.input_enabled = enabled

    def pause_playback(self) -> None:
        self.playback_paused = True

    def resume_playback(self) -> None:
        self.playback_paused = False

    async def teardown(self) -> None:
        self.teardown_calls += 1
        if not self.open:
            return
        self.open = False
        self.inbound.put_nowait(END_OF_STREAM)

    # Test helpers

    def sent_types(self) -> list[str]:
        return [e["type"] for e in self.sent]

    def feed(self, event: dict) -> None:
        self.inbound.put_nowait(json.dumps(event))


class FakeConnector:
    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.keys: list[str] = []
        self.error: Exception | None = None

    async def connect(self, ephemeral_key: str) -> FakeConnection:
        self.keys.append(ephemeral_key)
        if self.error is not None:
            raise self.error
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class ManualClock:
    """Monotonic time source advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_grant(**overrides: Any) -> SessionGrant:
    fields: dict[str, Any] = {
        "ephemeral_key": "ek_test",
        "session_id": "sess-1",
        "topics": (
            TopicOption(id="t1", title="Why do we dream?", description="Sleep and memory"),
            TopicOption(id="t2", title="Is money real?", description="Shared fictions"),
            TopicOption(id="t3", title="How do bridges stand?", description="Forces"),
        ),
        "learner_profile": {"interest_tags": ["space", "music"]},
        "user_name": "Sam",
        "age_bracket": "16-18",
        "session_count": 4,
    }
    fields.update(overrides)
    return SessionGrant(**fields)


def make_backend(grant: SessionGrant | None = None) -> MagicMock:
    backend = MagicMock()
    backend.create_session = AsyncMock(return_value=grant or make_grant())
    backend.generate_lesson_plan = AsyncMock(
        return_value=LessonPlanResult(formatted_plan="# LESSON PLAN FOR: X")
    )
    backend.submit_session_end = AsyncMock(return_value=None)
    return backend


def response_done(*calls: tuple[str, str, dict | str]) -> dict:
    """A response.done frame carrying function calls (name, call_id, args)."""
    return {
        "type": "response.done",
        "response": {
            "id": "resp_1",
            "status": "completed",
            "output": [
                {
                    "type": "function_call",
                    "name": name,
                    "call_id": call_id,
                    "arguments": args if isinstance(args, str) else json.dumps(args),
                }
                for name, call_id, args in calls
            ],
        },
    }


async def drain(rounds: int = 20) -> None:
    """Yield to the loop so the consumer and detached tasks catch up."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def timing() -> SessionTimingConfig:
    # Loops effectively never fire on their own; tests drive tick()/broadcast()
    return SessionTimingConfig(
        tick_interval=3600.0,
        time_update_interval=3600.0,
        resume_delay=0.0,
        selection_display_seconds=0.0,
    )


@pytest.fixture
def settings(timing) -> LyceumConfig:
    return LyceumConfig(timing=timing)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def backend() -> MagicMock:
    return make_backend()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def failing_connector() -> FakeConnector:
    c = FakeConnector()
    c.error = RealtimeConnectionError("Microphone unavailable: denied")
    return c
