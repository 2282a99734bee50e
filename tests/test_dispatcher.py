"""Tests for the inbound event dispatcher."""

import json
from unittest.mock import MagicMock

import pytest

from conftest import FakeConnection, response_done

from lyceum.core.metrics import metrics
from lyceum.realtime.base import END_OF_STREAM
from lyceum.realtime.protocol import LessonPlanReady, TopicSelectorDismissed
from lyceum.session.bridge import ToolCallBridge
from lyceum.session.dispatcher import EventDispatcher
from lyceum.session.models import Role, SessionStatus, TutorialPhase
from lyceum.session.state import SessionState


@pytest.fixture
def state():
    return SessionState(status=SessionStatus.CONNECTED, session_id="sess-1")


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def hooks():
    return MagicMock()


@pytest.fixture
def dispatcher(state, connection, hooks):
    bridge = ToolCallBridge(
        state,
        connection,
        notify=hooks.notify,
        on_selection_confirmed=hooks.confirmed,
        on_topic_selected=hooks.selected,
    )
    return EventDispatcher(
        state,
        connection,
        bridge,
        notify=hooks.notify,
        on_instructions_changed=hooks.instructions_changed,
    )


def _user_item(text, item_id="item_u", event_type="conversation.item.done"):
    return {
        "type": event_type,
        "item": {
            "id": item_id,
            "role": "user",
            "content": [{"type": "input_audio", "transcript": text}],
        },
    }


class TestTranscript:
    def test_assistant_turn_then_user_reply(self, dispatcher, state):
        dispatcher.on_message({"type": "response.output_audio_transcript.delta", "delta": "What "})
        dispatcher.on_message({"type": "response.output_audio_transcript.delta", "delta": "do you think?"})
        dispatcher.on_message(
            {"type": "response.output_audio_transcript.done", "transcript": "What do you think?"}
        )
        dispatcher.on_message(_user_item("Gravity, maybe"))

        assert [(e.role, e.text) for e in state.transcript] == [
            (Role.ASSISTANT, "What do you think?"),
            (Role.USER, "Gravity, maybe"),
        ]

    def test_only_finalized_user_items_count(self, dispatcher, state):
        dispatcher.on_message(_user_item("partial", event_type="conversation.item.added"))
        assert state.transcript == []

    def test_speech_start_closes_assistant_turn(self, dispatcher, state):
        dispatcher.on_message({"type": "response.output_audio_transcript.delta", "delta": "So"})
        dispatcher.on_message({"type": "input_audio_buffer.speech_started"})
        dispatcher.on_message({"type": "response.output_audio_transcript.delta", "delta": "Yes?"})
        assert [e.text for e in state.transcript] == ["So", "Yes?"]

    def test_injected_item_is_skipped_once(self, dispatcher, state):
        state.injected_item_ids.add("resume_abc")
        dispatcher.on_message(_user_item("(The session was paused.)", item_id="resume_abc"))
        assert state.transcript == []
        assert "resume_abc" not in state.injected_item_ids


class TestToolCalls:
    def test_calls_dispatched_in_order(self, dispatcher, state, connection):
        dispatcher.on_message(
            response_done(
                ("transition_phase", "c1", {"phase": "diagnostic"}),
                ("transition_phase", "c2", {"phase": "transfer"}),
            )
        )
        assert state.phase is TutorialPhase.TRANSFER
        acks = [e["item"]["call_id"] for e in connection.sent if e["type"] == "conversation.item.create"]
        assert acks == ["c1", "c2"]


class TestErrors:
    @pytest.mark.parametrize(
        "frame",
        [
            "{definitely not json",
            {"type": "response.done", "response": "oops"},
            {"type": "conversation.item.done", "item": ["x"]},
            {"type": "error", "error": "boom"},
        ],
    )
    def test_undecodable_frame_is_dropped(self, dispatcher, state, frame):
        dispatcher.on_message(frame)
        assert metrics.counter("session.decode_errors") == 1
        assert state.error is None
        assert state.transcript == []

    def test_engine_error_is_surfaced(self, dispatcher, state, hooks):
        dispatcher.on_message({"type": "error", "error": {"message": "Invalid session"}})
        assert state.error == "Invalid session"
        assert state.status is SessionStatus.CONNECTED
        hooks.notify.assert_called_with("error", {"code": None, "message": "Invalid session"})

    @pytest.mark.parametrize(
        "error",
        [
            {"code": "response_cancel_not_active", "message": "Cancellation failed"},
            {"message": "Error committing input audio buffer: audio_buffer.clear on empty buffer"},
            {"message": "response.cancel: no active response"},
        ],
    )
    def test_pause_side_effects_suppressed_only_while_paused(self, dispatcher, state, error):
        state.status = SessionStatus.PAUSED
        dispatcher.on_message({"type": "error", "error": error})
        assert state.error is None
        assert metrics.counter("session.suppressed_pause_errors") == 1

        state.status = SessionStatus.CONNECTED
        dispatcher.on_message({"type": "error", "error": error})
        assert state.error is not None

    def test_unrelated_error_while_paused_is_surfaced(self, dispatcher, state):
        state.status = SessionStatus.PAUSED
        dispatcher.on_message({"type": "error", "error": {"message": "Rate limit exceeded"}})
        assert state.error == "Rate limit exceeded"


class TestLocalEvents:
    def test_lesson_plan_ready(self, dispatcher, state, hooks):
        dispatcher.handle(LessonPlanReady("Tides", "[LESSON PLAN] tides"))
        assert state.lesson_plan == "[LESSON PLAN] tides"
        hooks.instructions_changed.assert_called_once_with()

    def test_selector_dismissed(self, dispatcher, state):
        state.show_topic_selector = True
        dispatcher.handle(TopicSelectorDismissed(2))
        assert state.show_topic_selector is False


class TestRun:
    @pytest.mark.asyncio
    async def test_run_processes_in_order_until_end_of_stream(self, dispatcher, connection, state):
        connection.feed({"type": "response.output_audio_transcript.delta", "delta": "Hi"})
        connection.inbound.put_nowait("garbage")
        connection.post_local(TopicSelectorDismissed(None))
        connection.feed(_user_item("hello"))
        connection.inbound.put_nowait(END_OF_STREAM)

        await dispatcher.run()

        assert [e.text for e in state.transcript] == ["Hi", "hello"]
        assert metrics.counter("session.decode_errors") == 1

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_stop_loop(self, dispatcher, connection, state, hooks):
        hooks.notify.side_effect = [RuntimeError("render failed"), None, None, None]
        connection.feed({"type": "response.output_audio_transcript.delta", "delta": "One"})
        connection.feed(_user_item("two"))
        connection.inbound.put_nowait(END_OF_STREAM)

        await dispatcher.run()

        assert [e.text for e in state.transcript] == ["One", "two"]

    def test_bytes_frames_are_decoded(self, dispatcher, state):
        dispatcher.process(json.dumps(_user_item("bytes")).encode())
        assert state.transcript[0].text == "bytes"
