"""
SessionState — the single mutable record one tutorial owns.

The bridge, pause controller, timers and dispatcher all hold the same
handle and read it live on every call. Nothing keeps a copy of a field
across an await.

Transcript rules:
- Assistant deltas append to the trailing entry while that entry is an
  open assistant turn.
- A closing event (response done, transcript done, finalized assistant
  item, finalized user item, speech start) closes the open turn.
- Finalized user items always open a new entry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from lyceum.session.models import (
    Activity,
    LessonPlanModification,
    OpenLoop,
    PresentedTopic,
    Role,
    SessionMisconception,
    SessionStatus,
    SessionVisual,
    SkillObservation,
    TopicOption,
    TranscriptEntry,
    TutorialPhase,
)

MAX_PRESENTED_TOPICS = 3


@dataclass
class SessionState:
    status: SessionStatus = SessionStatus.IDLE
    phase: TutorialPhase = TutorialPhase.WARM_ENTRY
    activity: Activity = Activity.GREETING
    elapsed_seconds: int = 0
    session_id: str | None = None

    transcript: list[TranscriptEntry] = field(default_factory=list)
    skill_observations: list[SkillObservation] = field(default_factory=list)
    open_loops: list[OpenLoop] = field(default_factory=list)
    visuals: list[SessionVisual] = field(default_factory=list)
    lesson_plan_mods: list[LessonPlanModification] = field(default_factory=list)
    misconceptions: list[SessionMisconception] = field(default_factory=list)
    presented_topics: dict[int, PresentedTopic] = field(default_factory=dict)

    pre_pause_status: SessionStatus | None = None
    topic_options: list[TopicOption] = field(default_factory=list)
    learner_profile: dict[str, Any] = field(default_factory=dict)
    chosen_topic: str | None = None
    show_topic_selector: bool = False
    selected_option: int | None = None
    # Visual indexes hidden in the UI; the visuals log itself is append-only
    dismissed_visuals: set[int] = field(default_factory=set)
    error: str | None = None

    # Instruction sections merged into the prompt on every session.update
    lesson_plan: str | None = None
    time_update: str | None = None

    # Ids of conversation items this process injected (resume context)
    injected_item_ids: set[str] = field(default_factory=set, repr=False)
    _assistant_open: bool = field(default=False, repr=False)

    # ─── Transcript ──────────────────────────────────────────────

    def append_assistant_delta(self, delta: str) -> None:
        if not delta:
            return
        last = self.transcript[-1] if self.transcript else None
        if self._assistant_open and last is not None and last.role is Role.ASSISTANT:
            last.text += delta
            return
        self.transcript.append(TranscriptEntry(role=Role.ASSISTANT, text=delta))
        self._assistant_open = True

    def finish_assistant_transcript(self, transcript: str) -> None:
        """
        Close the open assistant turn. The final transcript replaces the
        streamed text; with no open turn a non-empty transcript becomes
        its own entry (the deltas never arrived).
        """
        text = transcript.strip()
        last = self.transcript[-1] if self.transcript else None
        if self._assistant_open and last is not None and last.role is Role.ASSISTANT:
            if text:
                last.text = text
        elif text:
            self.transcript.append(TranscriptEntry(role=Role.ASSISTANT, text=text))
        self._assistant_open = False

    def close_assistant_turn(self) -> None:
        self._assistant_open = False

    def append_user_text(self, text: str) -> None:
        self._assistant_open = False
        text = text.strip()
        if text:
            self.transcript.append(TranscriptEntry(role=Role.USER, text=text))

    def append_system_note(self, text: str) -> None:
        self._assistant_open = False
        self.transcript.append(TranscriptEntry(role=Role.SYSTEM, text=text))

    # ─── Phase / Activity ────────────────────────────────────────

    def transition_to(self, phase: TutorialPhase) -> None:
        """Set the phase and derive the activity from it."""
        self.phase = phase
        if phase is TutorialPhase.REFLECTION:
            self.activity = Activity.REFLECTING
        elif phase is not TutorialPhase.WARM_ENTRY:
            self.activity = Activity.DISCUSSING

    # ─── Topics ──────────────────────────────────────────────────

    def present_topic(self, option_number: int, title: str, description: str) -> bool:
        """
        Record a presented option. The first write for a number wins;
        returns False for a repeat.
        """
        self.show_topic_selector = True
        self.activity = (
            Activity.AWAITING_SELECTION
            if option_number == MAX_PRESENTED_TOPICS
            else Activity.OFFERING_TOPICS
        )
        if option_number in self.presented_topics:
            return False
        self.presented_topics[option_number] = PresentedTopic(
            option_number=option_number, title=title, description=description
        )
        return True

    def select_option(self, option_number: int) -> PresentedTopic | None:
        self.selected_option = option_number
        for number, topic in self.presented_topics.items():
            topic.is_selected = number == option_number
        chosen = self.presented_topics.get(option_number)
        if chosen is not None:
            self.chosen_topic = chosen.title
        return chosen

    def ordered_topics(self) -> list[PresentedTopic]:
        return [self.presented_topics[n] for n in sorted(self.presented_topics)]

    # ─── Visuals ─────────────────────────────────────────────────

    def dismiss_visual(self, index: int) -> bool:
        if not 0 <= index < len(self.visuals):
            return False
        self.dismissed_visuals.add(index)
        return True

    # ─── Views ───────────────────────────────────────────────────

    @property
    def is_live(self) -> bool:
        return self.status in (SessionStatus.CONNECTED, SessionStatus.PAUSED)

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict copy for the rendering layer."""
        return {
            "status": self.status.value,
            "phase": self.phase.value,
            "activity": self.activity.value,
            "elapsed_seconds": self.elapsed_seconds,
            "session_id": self.session_id,
            "transcript": [e.to_dict() for e in self.transcript],
            "skill_observations": [o.to_dict() for o in self.skill_observations],
            "open_loops": [o.to_dict() for o in self.open_loops],
            "visuals": [v.to_dict() for v in self.visuals],
            "dismissed_visuals": sorted(self.dismissed_visuals),
            "lesson_plan_mods": [m.to_dict() for m in self.lesson_plan_mods],
            "misconceptions": [m.to_dict() for m in self.misconceptions],
            "presented_topics": [t.to_dict() for t in self.ordered_topics()],
            "topic_options": [t.to_dict() for t in self.topic_options],
            "chosen_topic": self.chosen_topic,
            "show_topic_selector": self.show_topic_selector,
            "selected_option": self.selected_option,
            "has_lesson_plan": self.lesson_plan is not None,
            "error": self.error,
        }


@dataclass(frozen=True)
class SessionArtifact:
    """Everything handed to persistence when a session ends."""

    session_id: str
    transcript: tuple[TranscriptEntry, ...]
    skill_observations: tuple[SkillObservation, ...]
    open_loops: tuple[OpenLoop, ...]
    lesson_plan_mods: tuple[LessonPlanModification, ...]
    misconceptions: tuple[SessionMisconception, ...]
    visuals: tuple[SessionVisual, ...]
    duration: int
    phase: TutorialPhase
    topic_chosen: str | None = None
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_state(cls, state: SessionState) -> SessionArtifact:
        if state.session_id is None:
            raise ValueError("cannot build an artifact without a session id")
        return cls(
            session_id=state.session_id,
            transcript=tuple(
                TranscriptEntry(role=e.role, text=e.text, timestamp=e.timestamp)
                for e in state.transcript
            ),
            skill_observations=tuple(state.skill_observations),
            open_loops=tuple(state.open_loops),
            lesson_plan_mods=tuple(state.lesson_plan_mods),
            misconceptions=tuple(state.misconceptions),
            visuals=tuple(state.visuals),
            duration=state.elapsed_seconds,
            phase=state.phase,
            topic_chosen=state.chosen_topic,
        )

    def to_payload(self) -> dict[str, Any]:
        """Request body for the session-end endpoint."""
        payload: dict[str, Any] = {
            "sessionId": self.session_id,
            "transcript": [e.to_dict() for e in self.transcript],
            "skillObservations": [o.to_dict() for o in self.skill_observations],
            "openLoops": [o.to_dict() for o in self.open_loops],
            "lessonPlanMods": [m.to_dict() for m in self.lesson_plan_mods],
            "misconceptions": [m.to_dict() for m in self.misconceptions],
            "visuals": [v.to_dict() for v in self.visuals],
            "duration": self.duration,
            "phase": self.phase.value,
        }
        if self.topic_chosen:
            payload["topicChosen"] = self.topic_chosen
        return payload
