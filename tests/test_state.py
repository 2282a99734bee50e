"""Tests for SessionState transcript, phase and topic rules."""

import pytest

from lyceum.session.models import (
    Activity,
    Role,
    SessionStatus,
    SessionVisual,
    TutorialPhase,
    VisualType,
)
from lyceum.session.state import SessionArtifact, SessionState


class TestTranscript:
    def test_deltas_coalesce_into_one_entry(self):
        state = SessionState()
        for delta in ("Hel", "lo ", "there"):
            state.append_assistant_delta(delta)
        assert len(state.transcript) == 1
        assert state.transcript[0].text == "Hello there"

    def test_closed_turn_starts_new_entry(self):
        state = SessionState()
        state.append_assistant_delta("First.")
        state.close_assistant_turn()
        state.append_assistant_delta("Second.")
        assert [e.text for e in state.transcript] == ["First.", "Second."]

    def test_user_text_interrupts_assistant_turn(self):
        state = SessionState()
        state.append_assistant_delta("So what do")
        state.append_user_text("  wait  ")
        state.append_assistant_delta("Go on.")
        assert [(e.role, e.text) for e in state.transcript] == [
            (Role.ASSISTANT, "So what do"),
            (Role.USER, "wait"),
            (Role.ASSISTANT, "Go on."),
        ]

    def test_final_transcript_replaces_streamed_text(self):
        state = SessionState()
        state.append_assistant_delta("Helo th")
        state.finish_assistant_transcript("Hello there.")
        assert [e.text for e in state.transcript] == ["Hello there."]

    def test_final_transcript_without_deltas_is_appended(self):
        state = SessionState()
        state.finish_assistant_transcript("Hello there.")
        state.finish_assistant_transcript("   ")
        assert [e.text for e in state.transcript] == ["Hello there."]

    def test_empty_user_text_is_dropped(self):
        state = SessionState()
        state.append_user_text("   ")
        assert state.transcript == []


class TestPhase:
    @pytest.mark.parametrize(
        "phase,activity",
        [
            (TutorialPhase.DIAGNOSTIC, Activity.DISCUSSING),
            (TutorialPhase.DEEPENING, Activity.DISCUSSING),
            (TutorialPhase.REFLECTION, Activity.REFLECTING),
            (TutorialPhase.WARM_ENTRY, Activity.GREETING),
        ],
    )
    def test_activity_follows_phase(self, phase, activity):
        state = SessionState()
        state.transition_to(phase)
        assert state.phase is phase
        assert state.activity is activity

    def test_reflection_is_not_a_hard_lock(self):
        state = SessionState()
        state.transition_to(TutorialPhase.REFLECTION)
        state.transition_to(TutorialPhase.TRANSFER)
        assert state.phase is TutorialPhase.TRANSFER
        assert state.activity is Activity.DISCUSSING


class TestTopics:
    @pytest.mark.parametrize("order", [(1, 2, 3), (3, 1, 2), (2, 2, 1, 3, 3, 1), (1, 1, 1)])
    def test_one_entry_per_option_number(self, order):
        state = SessionState()
        for n in order:
            state.present_topic(n, f"Topic {n}", "")
        assert sorted(state.presented_topics) == sorted(set(order))
        assert len(state.presented_topics) <= 3

    def test_first_presentation_wins(self):
        state = SessionState()
        assert state.present_topic(1, "Dreams", "a") is True
        assert state.present_topic(1, "Something else", "b") is False
        assert state.presented_topics[1].title == "Dreams"

    def test_presenting_sets_activity(self):
        state = SessionState()
        state.present_topic(1, "A", "")
        assert state.activity is Activity.OFFERING_TOPICS
        assert state.show_topic_selector is True
        state.present_topic(3, "C", "")
        assert state.activity is Activity.AWAITING_SELECTION

    @pytest.mark.parametrize("first,second", [(1, 2), (2, 2), (3, 1)])
    def test_exactly_one_selected(self, first, second):
        state = SessionState()
        for n in (1, 2, 3):
            state.present_topic(n, f"Topic {n}", "")
        state.select_option(first)
        chosen = state.select_option(second)

        selected = [t.option_number for t in state.ordered_topics() if t.is_selected]
        assert selected == [second]
        assert chosen.title == f"Topic {second}"
        assert state.chosen_topic == f"Topic {second}"
        assert state.selected_option == second

    def test_selecting_unpresented_option(self):
        state = SessionState()
        state.present_topic(1, "A", "")
        assert state.select_option(2) is None
        assert state.chosen_topic is None
        assert not state.presented_topics[1].is_selected


class TestSnapshotAndArtifact:
    def test_snapshot_is_plain_data(self):
        state = SessionState(status=SessionStatus.CONNECTED, session_id="s")
        state.present_topic(2, "B", "")
        state.present_topic(1, "A", "")
        snap = state.snapshot()
        assert snap["status"] == "connected"
        assert [t["optionNumber"] for t in snap["presented_topics"]] == [1, 2]
        assert snap["has_lesson_plan"] is False

    def test_artifact_requires_session_id(self):
        with pytest.raises(ValueError):
            SessionArtifact.from_state(SessionState())

    def test_artifact_is_a_copy(self):
        state = SessionState(session_id="s")
        state.append_assistant_delta("Hi")
        artifact = SessionArtifact.from_state(state)
        state.append_assistant_delta(" there")
        assert artifact.transcript[0].text == "Hi"

    def test_payload_omits_missing_topic(self):
        payload = SessionArtifact.from_state(SessionState(session_id="s")).to_payload()
        assert "topicChosen" not in payload
        assert payload["phase"] == "warm_entry"
        assert payload["visuals"] == []

    def test_dismissing_visual_hides_it_only_in_snapshot(self):
        state = SessionState(session_id="s")
        state.visuals.append(SessionVisual(type=VisualType.CHART, description="tide heights"))

        assert state.dismiss_visual(0) is True
        assert state.dismiss_visual(1) is False
        assert state.dismiss_visual(-1) is False
        assert state.snapshot()["dismissed_visuals"] == [0]
        payload = SessionArtifact.from_state(state).to_payload()
        assert [v["description"] for v in payload["visuals"]] == ["tide heights"]
        assert "dismissed_visuals" not in payload
