"""
Tool-Call Bridge — applies the engine's tool calls to the session.

One call at a time, in turn order. Every call, recognised or not, is
acknowledged exactly once with its call_id, then followed by a
response.create so the engine keeps talking. While paused the
acknowledgment still goes out but the continue request is withheld;
resume issues its own.

The handler table covers the whole ToolName vocabulary; a missing entry
fails at import.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from lyceum.core.errors import ToolArgumentError
from lyceum.core.metrics import metrics
from lyceum.realtime import protocol
from lyceum.realtime.base import Connection
from lyceum.realtime.tools import (
    ConfirmTopicSelection,
    CreateOpenLoop,
    DisplayVisual,
    FlagMisconception,
    LogSkillObservation,
    PresentTopicOption,
    SelectTopic,
    ToolCall,
    ToolName,
    TransitionPhase,
    UpdateLessonPlan,
    parse_arguments,
)
from lyceum.session.models import (
    Activity,
    LessonPlanModification,
    OpenLoop,
    SessionMisconception,
    SessionStatus,
    SessionVisual,
    SkillObservation,
)
from lyceum.session.state import SessionState

logger = logging.getLogger(__name__)

Notify = Callable[[str, Any], None]


class ToolCallBridge:
    def __init__(
        self,
        state: SessionState,
        connection: Connection,
        notify: Notify,
        on_selection_confirmed: Callable[[int], None],
        on_topic_selected: Callable[[SelectTopic], None],
    ) -> None:
        self.state = state
        self.connection = connection
        self._notify = notify
        self._on_selection_confirmed = on_selection_confirmed
        self._on_topic_selected = on_topic_selected

    def dispatch(self, call: ToolCall) -> bool:
        """Apply one call and acknowledge it. Returns True if it was applied."""
        tool = call.tool
        metrics.inc("session.tool_calls", labels={"tool": call.name or "unknown"})
        log_extra = {
            "session_id": self.state.session_id,
            "call_id": call.call_id,
            "tool": call.name,
        }

        if tool is None:
            logger.warning("Unknown tool call: %s", call.name, extra=log_extra)
            self._acknowledge(call, f"unknown tool: {call.name}")
            return False

        if call.malformed:
            logger.warning(
                "Malformed %s arguments: %s", call.name, call.malformed, extra=log_extra
            )
            self._acknowledge(call, call.malformed)
            return False

        try:
            args = parse_arguments(tool, call.arguments)
        except ToolArgumentError as e:
            logger.warning("Rejected %s call: %s", call.name, e, extra=log_extra)
            metrics.inc("session.tool_errors", labels={"tool": call.name})
            self._acknowledge(call, str(e))
            return False

        try:
            _HANDLERS[tool](self, args)
        except Exception as e:
            logger.error(
                "Tool handler %s failed: %s", call.name, e, exc_info=True, extra=log_extra
            )
            metrics.inc("session.tool_errors", labels={"tool": call.name})
            self._acknowledge(call, str(e))
            return False

        logger.debug("Applied %s", call.name, extra=log_extra)
        self._acknowledge(call)
        return True

    def _acknowledge(self, call: ToolCall, error: str | None = None) -> None:
        output: dict[str, Any] = {"success": error is None}
        if error is not None:
            output["error"] = error
        if not self.connection.send(protocol.function_call_output(call.call_id, output)):
            logger.warning("Could not acknowledge %s, channel closed", call.call_id)
            return
        if self.state.status is SessionStatus.PAUSED:
            logger.debug("Paused, withholding continue after %s", call.call_id)
            return
        self.connection.send(protocol.response_create())

    # ─── Handlers ────────────────────────────────────────────────

    def _transition_phase(self, args: TransitionPhase) -> None:
        previous = self.state.phase
        self.state.transition_to(args.phase)
        logger.info(
            "Phase %s -> %s%s",
            previous.value,
            args.phase.value,
            f" ({args.rationale})" if args.rationale else "",
            extra={"session_id": self.state.session_id, "phase": args.phase.value},
        )
        self._notify("state", None)

    def _log_skill_observation(self, args: LogSkillObservation) -> None:
        self.state.skill_observations.append(
            SkillObservation(
                skill=args.skill,
                observation=args.observation,
                strength_or_struggle=args.strength_or_struggle,
                evidence=args.evidence,
            )
        )

    def _create_open_loop(self, args: CreateOpenLoop) -> None:
        self.state.open_loops.append(
            OpenLoop(topic=args.topic, context=args.context, priority=args.priority)
        )

    def _display_visual(self, args: DisplayVisual) -> None:
        visual = SessionVisual(
            type=args.type, description=args.description, content=args.content
        )
        self.state.visuals.append(visual)
        self._notify("visual", visual.to_dict())

    def _update_lesson_plan(self, args: UpdateLessonPlan) -> None:
        self.state.lesson_plan_mods.append(
            LessonPlanModification(
                modification=args.modification, rationale=args.rationale
            )
        )

    def _flag_misconception(self, args: FlagMisconception) -> None:
        self.state.misconceptions.append(
            SessionMisconception(
                misconception=args.misconception,
                topic_area=args.topic_area,
                addressed=args.addressed,
            )
        )

    def _present_topic_option(self, args: PresentTopicOption) -> None:
        added = self.state.present_topic(
            args.option_number, args.title, args.description
        )
        if not added:
            logger.debug("Option %d already presented", args.option_number)
        self._notify("topics", None)

    def _confirm_topic_selection(self, args: ConfirmTopicSelection) -> None:
        chosen = self.state.select_option(args.selected_option)
        if chosen is None:
            logger.warning("Option %d was never presented", args.selected_option)
        self._notify("topics", None)
        self._on_selection_confirmed(args.selected_option)

    def _select_topic(self, args: SelectTopic) -> None:
        self.state.activity = Activity.DISCUSSING
        self.state.chosen_topic = args.topic_title
        logger.info(
            "Topic selected: %s",
            args.topic_title,
            extra={"session_id": self.state.session_id},
        )
        self._on_topic_selected(args)


_HANDLERS: dict[ToolName, Callable[[ToolCallBridge, Any], None]] = {
    ToolName.TRANSITION_PHASE: ToolCallBridge._transition_phase,
    ToolName.LOG_SKILL_OBSERVATION: ToolCallBridge._log_skill_observation,
    ToolName.CREATE_OPEN_LOOP: ToolCallBridge._create_open_loop,
    ToolName.DISPLAY_VISUAL: ToolCallBridge._display_visual,
    ToolName.UPDATE_LESSON_PLAN: ToolCallBridge._update_lesson_plan,
    ToolName.FLAG_MISCONCEPTION: ToolCallBridge._flag_misconception,
    ToolName.PRESENT_TOPIC_OPTION: ToolCallBridge._present_topic_option,
    ToolName.CONFIRM_TOPIC_SELECTION: ToolCallBridge._confirm_topic_selection,
    ToolName.SELECT_TOPIC: ToolCallBridge._select_topic,
}

_missing = set(ToolName) - set(_HANDLERS)
if _missing:
    raise RuntimeError(
        f"No handler for tools: {', '.join(sorted(t.value for t in _missing))}"
    )
