"""
Tutor tools — the closed vocabulary of model-initiated calls.

Each tool is a name + description + parameters, exported to the realtime
engine in its flat function format (type/name/description/parameters).
Inbound calls are parsed into one typed argument dataclass per tool, so
the bridge works with a tagged union instead of loose dicts.

Tools are called silently by the tutor; the learner never hears about them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from lyceum.core.errors import ToolArgumentError
from lyceum.session.models import (
    Classification,
    Priority,
    SkillName,
    TutorialPhase,
    VisualType,
)


class ToolName(str, Enum):
    TRANSITION_PHASE = "transition_phase"
    LOG_SKILL_OBSERVATION = "log_skill_observation"
    CREATE_OPEN_LOOP = "create_open_loop"
    DISPLAY_VISUAL = "display_visual"
    UPDATE_LESSON_PLAN = "update_lesson_plan"
    FLAG_MISCONCEPTION = "flag_misconception"
    PRESENT_TOPIC_OPTION = "present_topic_option"
    CONFIRM_TOPIC_SELECTION = "confirm_topic_selection"
    SELECT_TOPIC = "select_topic"


@dataclass
class ToolParam:
    """A single parameter for a tool."""

    name: str
    type: str  # "string", "integer", "boolean"
    description: str
    required: bool = True
    enum: list[str] | None = None


@dataclass
class ToolSpec:
    name: ToolName
    description: str
    parameters: list[ToolParam] = field(default_factory=list)

    def to_realtime_schema(self) -> dict:
        """Convert to the realtime session.update tool format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "function",
            "name": self.name.value,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }


def _values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


TUTOR_TOOLS: dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name=ToolName.TRANSITION_PHASE,
            description=(
                "Internally mark when you are transitioning to a different tutorial "
                "phase. Do not announce this to the user - just call this silently "
                "when you naturally shift approach."
            ),
            parameters=[
                ToolParam(
                    "phase",
                    "string",
                    "The phase you are transitioning to",
                    enum=_values(TutorialPhase),
                ),
                ToolParam(
                    "rationale",
                    "string",
                    "Brief note on why you are transitioning now (for logging)",
                    required=False,
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.LOG_SKILL_OBSERVATION,
            description=(
                "Silently log an observation about the learner's cognitive skill "
                "demonstration. Call this whenever you notice something notable about "
                "their thinking - strengths or struggles. Do not announce to the user."
            ),
            parameters=[
                ToolParam(
                    "skill",
                    "string",
                    "Which of the 9 cognitive skills this observation is about",
                    enum=_values(SkillName),
                ),
                ToolParam(
                    "observation",
                    "string",
                    'What you noticed (e.g., "Struggled to articulate causation")',
                ),
                ToolParam(
                    "evidence",
                    "string",
                    "Brief quote or paraphrase from what they said as evidence",
                    required=False,
                ),
                ToolParam(
                    "strength_or_struggle",
                    "string",
                    "Whether this was a strength, struggle, or neutral observation",
                    enum=_values(Classification),
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.CREATE_OPEN_LOOP,
            description=(
                "Record something the user expressed curiosity about for future "
                "sessions. Call this when they ask about something you won't fully "
                "cover, or express interest in a tangent."
            ),
            parameters=[
                ToolParam("topic", "string", "The topic or question they want to explore"),
                ToolParam("context", "string", "How it came up in conversation"),
                ToolParam(
                    "priority",
                    "string",
                    "How excited they seemed (high = very eager, low = passing mention)",
                    enum=_values(Priority),
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.DISPLAY_VISUAL,
            description=(
                "Show a visual to the user (diagram, image, chart). Always give verbal "
                'context before calling this - say something like "Let me show you..." '
                "first."
            ),
            parameters=[
                ToolParam(
                    "type",
                    "string",
                    "Type of visual to display",
                    enum=_values(VisualType),
                ),
                ToolParam(
                    "description",
                    "string",
                    "What the visual shows, specific enough that it could be generated",
                ),
                ToolParam(
                    "content",
                    "string",
                    "Optional inline content (e.g. whiteboard text)",
                    required=False,
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.UPDATE_LESSON_PLAN,
            description=(
                "Note when you are significantly changing your approach or plan for "
                "this session. Call this when adapting based on how the learner is doing."
            ),
            parameters=[
                ToolParam("modification", "string", "What you are changing"),
                ToolParam(
                    "rationale",
                    "string",
                    "Why you made this change based on the learner's responses",
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.FLAG_MISCONCEPTION,
            description=(
                "Record a misconception the user holds. Call this when you detect an "
                "incorrect belief or understanding that should be addressed."
            ),
            parameters=[
                ToolParam("misconception", "string", "The incorrect belief they have"),
                ToolParam("topic_area", "string", "What topic this relates to"),
                ToolParam(
                    "addressed",
                    "string",
                    "Whether you have addressed/corrected it in this session",
                    enum=["true", "false"],
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.PRESENT_TOPIC_OPTION,
            description=(
                "Call as you present each of the 3 topic options aloud, so the option "
                "appears on the learner's screen."
            ),
            parameters=[
                ToolParam(
                    "option_number",
                    "string",
                    "Which option this is",
                    enum=["1", "2", "3"],
                ),
                ToolParam("title", "string", "The topic title as you said it"),
                ToolParam("description", "string", "The one-line hook you gave"),
            ],
        ),
        ToolSpec(
            name=ToolName.CONFIRM_TOPIC_SELECTION,
            description="Call when the learner has chosen one of the presented options.",
            parameters=[
                ToolParam(
                    "selected_option",
                    "string",
                    "The option number the learner chose",
                    enum=["1", "2", "3"],
                ),
            ],
        ),
        ToolSpec(
            name=ToolName.SELECT_TOPIC,
            description=(
                "Call after confirm_topic_selection, once the learner has said what they "
                "already know. Triggers lesson planning for the chosen topic."
            ),
            parameters=[
                ToolParam("topic_title", "string", "The chosen topic title"),
                ToolParam(
                    "user_prior_knowledge",
                    "string",
                    "What the learner said they already know or think",
                    required=False,
                ),
            ],
        ),
    )
}


def session_tools() -> list[dict]:
    """All tool schemas, ready for session.update."""
    return [spec.to_realtime_schema() for spec in TUTOR_TOOLS.values()]


# ─── Argument Parsing ────────────────────────────────────────────


def _require(tool: ToolName, args: dict, key: str) -> str:
    value = args.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ToolArgumentError(tool.value, f"missing required field '{key}'")
    return str(value)


def _optional(args: dict, key: str, default: str | None = None) -> str | None:
    value = args.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return str(value)


def _member(tool: ToolName, enum_cls: type[Enum], raw: str, key: str) -> Any:
    try:
        return enum_cls(raw)
    except ValueError:
        raise ToolArgumentError(
            tool.value, f"invalid {key} {raw!r}"
        ) from None


def _option_number(tool: ToolName, raw: str, key: str) -> int:
    try:
        number = int(str(raw).strip())
    except ValueError:
        raise ToolArgumentError(tool.value, f"{key} is not a number: {raw!r}") from None
    if number not in (1, 2, 3):
        raise ToolArgumentError(tool.value, f"{key} out of range: {number}")
    return number


def parse_bool(raw: Any) -> bool:
    """Boolean-like strings from the engine ("true", "yes", "1") → bool."""
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("true", "yes", "1")


@dataclass(frozen=True)
class TransitionPhase:
    phase: TutorialPhase
    rationale: str = ""


@dataclass(frozen=True)
class LogSkillObservation:
    skill: SkillName
    observation: str
    strength_or_struggle: Classification
    evidence: str = ""


@dataclass(frozen=True)
class CreateOpenLoop:
    topic: str
    context: str
    priority: Priority = Priority.MEDIUM


@dataclass(frozen=True)
class DisplayVisual:
    type: VisualType
    description: str
    content: str | None = None


@dataclass(frozen=True)
class UpdateLessonPlan:
    modification: str
    rationale: str


@dataclass(frozen=True)
class FlagMisconception:
    misconception: str
    topic_area: str
    addressed: bool


@dataclass(frozen=True)
class PresentTopicOption:
    option_number: int
    title: str
    description: str


@dataclass(frozen=True)
class ConfirmTopicSelection:
    selected_option: int


@dataclass(frozen=True)
class SelectTopic:
    topic_title: str
    user_prior_knowledge: str = "none stated"


ToolArguments = Union[
    TransitionPhase,
    LogSkillObservation,
    CreateOpenLoop,
    DisplayVisual,
    UpdateLessonPlan,
    FlagMisconception,
    PresentTopicOption,
    ConfirmTopicSelection,
    SelectTopic,
]


def parse_arguments(name: ToolName, args: dict) -> ToolArguments:
    """Build the typed argument variant for a call. Raises ToolArgumentError."""
    if name is ToolName.TRANSITION_PHASE:
        return TransitionPhase(
            phase=_member(name, TutorialPhase, _require(name, args, "phase"), "phase"),
            rationale=_optional(args, "rationale", "") or "",
        )
    if name is ToolName.LOG_SKILL_OBSERVATION:
        return LogSkillObservation(
            skill=_member(name, SkillName, _require(name, args, "skill"), "skill"),
            observation=_require(name, args, "observation"),
            strength_or_struggle=_member(
                name,
                Classification,
                _require(name, args, "strength_or_struggle"),
                "strength_or_struggle",
            ),
            evidence=_optional(args, "evidence", "") or "",
        )
    if name is ToolName.CREATE_OPEN_LOOP:
        priority = _optional(args, "priority", Priority.MEDIUM.value)
        return CreateOpenLoop(
            topic=_require(name, args, "topic"),
            context=_require(name, args, "context"),
            priority=_member(name, Priority, priority, "priority"),
        )
    if name is ToolName.DISPLAY_VISUAL:
        return DisplayVisual(
            type=_member(name, VisualType, _require(name, args, "type"), "type"),
            description=_require(name, args, "description"),
            content=_optional(args, "content"),
        )
    if name is ToolName.UPDATE_LESSON_PLAN:
        return UpdateLessonPlan(
            modification=_require(name, args, "modification"),
            rationale=_require(name, args, "rationale"),
        )
    if name is ToolName.FLAG_MISCONCEPTION:
        return FlagMisconception(
            misconception=_require(name, args, "misconception"),
            topic_area=_require(name, args, "topic_area"),
            addressed=parse_bool(args.get("addressed", "false")),
        )
    if name is ToolName.PRESENT_TOPIC_OPTION:
        return PresentTopicOption(
            option_number=_option_number(
                name, _require(name, args, "option_number"), "option_number"
            ),
            title=_require(name, args, "title"),
            description=_optional(args, "description", "") or "",
        )
    if name is ToolName.CONFIRM_TOPIC_SELECTION:
        return ConfirmTopicSelection(
            selected_option=_option_number(
                name, _require(name, args, "selected_option"), "selected_option"
            ),
        )
    if name is ToolName.SELECT_TOPIC:
        return SelectTopic(
            topic_title=_require(name, args, "topic_title"),
            user_prior_knowledge=_optional(args, "user_prior_knowledge", "none stated")
            or "none stated",
        )
    raise ToolArgumentError(str(name), "no argument parser")


@dataclass(frozen=True)
class ToolCall:
    """One function call embedded in a completed model turn."""

    name: str
    call_id: str
    arguments: dict = field(default_factory=dict)
    # Set when the raw argument string could not be decoded
    malformed: str | None = None

    @classmethod
    def from_output_item(cls, item: dict) -> ToolCall:
        """Build from a response.done output item of type function_call."""
        raw_args = item.get("arguments") or "{}"
        malformed = None
        arguments: dict = {}
        if isinstance(raw_args, dict):
            arguments = raw_args
        else:
            try:
                decoded = json.loads(raw_args)
                if isinstance(decoded, dict):
                    arguments = decoded
                else:
                    malformed = "arguments are not a JSON object"
            except (json.JSONDecodeError, TypeError) as e:
                malformed = f"arguments are not valid JSON: {e}"
        return cls(
            name=str(item.get("name", "")),
            call_id=str(item.get("call_id", "")),
            arguments=arguments,
            malformed=malformed,
        )

    @property
    def tool(self) -> ToolName | None:
        """The vocabulary entry, or None for a name outside it."""
        try:
            return ToolName(self.name)
        except ValueError:
            return None
