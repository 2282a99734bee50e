"""
Session Models — the records a tutorial accumulates.

Enums are str-valued so they serialize straight onto the wire.
Log records are frozen dataclasses: once the engine declares something
it is only ever appended, never edited. TranscriptEntry is the one
mutable record because assistant deltas coalesce into the trailing entry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _ms(ts: float) -> int:
    return int(ts * 1000)


class SessionStatus(str, Enum):
    """Lifecycle status of the live session."""

    IDLE = "idle"  # Not started
    CONNECTING = "connecting"  # Fetching credential + negotiating WebRTC
    CONNECTED = "connected"  # Active session
    PAUSED = "paused"  # User paused
    ENDING = "ending"  # Tearing down + saving
    ERROR = "error"  # Connection failed


class TutorialPhase(str, Enum):
    """Pedagogical phases, in their usual order."""

    WARM_ENTRY = "warm_entry"  # 2-4 min: greet, offer topics
    DIAGNOSTIC = "diagnostic"  # 3-5 min: gauge level
    SCAFFOLDING = "scaffolding"  # 10-15 min: build understanding
    DEEPENING = "deepening"  # 5-10 min: challenge
    TRANSFER = "transfer"  # 3-5 min: connect to other domains
    REFLECTION = "reflection"  # 3-5 min: synthesize and close


class Activity(str, Enum):
    """Finer-grained position inside the tutorial, used to author resume messages."""

    GREETING = "greeting"
    OFFERING_TOPICS = "offering_topics"
    AWAITING_SELECTION = "awaiting_selection"
    DISCUSSING = "discussing"
    REFLECTING = "reflecting"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SkillName(str, Enum):
    """The nine cognitive skills the tutor observes."""

    EXPLANATORY = "explanatory"
    ARGUMENTATION = "argumentation"
    HYPOTHETICAL = "hypothetical"
    EPISTEMIC = "epistemic"
    METACOGNITION = "metacognition"
    SYNTHESIS = "synthesis"
    QUESTION_ASKING = "question_asking"
    TRANSFER = "transfer"
    AFFECTIVE = "affective"


class Classification(str, Enum):
    STRENGTH = "strength"
    STRUGGLE = "struggle"
    NEUTRAL = "neutral"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VisualType(str, Enum):
    DIAGRAM = "diagram"
    IMAGE = "image"
    WHITEBOARD = "whiteboard"
    CHART = "chart"


@dataclass
class TranscriptEntry:
    role: Role
    text: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": _ms(self.timestamp),
        }


@dataclass(frozen=True)
class SkillObservation:
    skill: SkillName
    observation: str
    strength_or_struggle: Classification
    evidence: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill.value,
            "observation": self.observation,
            "evidence": self.evidence,
            "strength_or_struggle": self.strength_or_struggle.value,
            "timestamp": _ms(self.timestamp),
        }


@dataclass(frozen=True)
class OpenLoop:
    """Something the learner was curious about, for a future session."""

    topic: str
    context: str
    priority: Priority = Priority.MEDIUM
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "context": self.context,
            "priority": self.priority.value,
            "timestamp": _ms(self.timestamp),
        }


@dataclass(frozen=True)
class SessionVisual:
    type: VisualType
    description: str
    content: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "description": self.description,
            "timestamp": _ms(self.timestamp),
        }
        if self.content is not None:
            data["content"] = self.content
        return data


@dataclass(frozen=True)
class LessonPlanModification:
    modification: str
    rationale: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "modification": self.modification,
            "rationale": self.rationale,
            "timestamp": _ms(self.timestamp),
        }


@dataclass(frozen=True)
class SessionMisconception:
    misconception: str
    topic_area: str
    addressed: bool
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "misconception": self.misconception,
            "topic_area": self.topic_area,
            "addressed": self.addressed,
            "timestamp": _ms(self.timestamp),
        }


@dataclass
class PresentedTopic:
    """A topic option as the tutor presented it aloud (option 1-3)."""

    option_number: int
    title: str
    description: str
    is_selected: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "optionNumber": self.option_number,
            "title": self.title,
            "description": self.description,
            "isSelected": self.is_selected,
            "timestamp": _ms(self.timestamp),
        }


@dataclass(frozen=True)
class TopicOption:
    """A topic issued with the session credential, before the tutor presents it."""

    id: str
    title: str
    description: str = ""
    difficulty: str = "moderate"
    cognitive_focus: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TopicOption:
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            difficulty=str(data.get("difficulty", "moderate")),
            cognitive_focus=tuple(data.get("cognitive_focus") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "difficulty": self.difficulty,
            "cognitive_focus": list(self.cognitive_focus),
        }
