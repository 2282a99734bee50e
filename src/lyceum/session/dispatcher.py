"""
Event Dispatcher — the single consumer of a connection's inbound queue.

Each item (a raw control-channel frame or a local event) is processed to
completion before the next is read, so tool-call effects and transcript
entries keep arrival order. A bad frame is logged and dropped; nothing
here may stop the loop except end-of-stream.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from lyceum.core.errors import ProtocolDecodeError, is_pause_side_effect
from lyceum.core.metrics import metrics
from lyceum.realtime.base import END_OF_STREAM, Connection
from lyceum.realtime.protocol import (
    ConversationItem,
    LessonPlanReady,
    ResponseDone,
    ServerError,
    SessionLifecycle,
    SpeechActivity,
    TopicSelectorDismissed,
    TranscriptDelta,
    TranscriptDone,
    UnknownEvent,
    decode_server_event,
)
from lyceum.session.bridge import Notify, ToolCallBridge
from lyceum.session.models import Role, SessionStatus
from lyceum.session.state import SessionState

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(
        self,
        state: SessionState,
        connection: Connection,
        bridge: ToolCallBridge,
        notify: Notify,
        on_instructions_changed: Callable[[], None],
    ) -> None:
        self.state = state
        self.connection = connection
        self.bridge = bridge
        self._notify = notify
        self._on_instructions_changed = on_instructions_changed

    async def run(self) -> None:
        """Consume until the connection pushes END_OF_STREAM."""
        while True:
            item = await self.connection.inbound.get()
            if item is END_OF_STREAM:
                logger.debug("Inbound stream ended")
                return
            try:
                self.process(item)
            except Exception as e:
                logger.error("Dispatcher error: %s", e, exc_info=True)

    def process(self, item: Any) -> None:
        if isinstance(item, (str, bytes, bytearray, dict)):
            self.on_message(item)
        else:
            self.handle(item)

    def on_message(self, raw: str | bytes | dict) -> None:
        """Decode and handle one control-channel frame."""
        try:
            event = decode_server_event(raw)
        except ProtocolDecodeError as e:
            metrics.inc("session.decode_errors")
            logger.warning("Dropping undecodable frame: %s", e)
            return
        self.handle(event)

    def handle(self, event: Any) -> None:
        if isinstance(event, ResponseDone):
            self.state.close_assistant_turn()
            for call in event.tool_calls:
                self.bridge.dispatch(call)

        elif isinstance(event, TranscriptDelta):
            self.state.append_assistant_delta(event.delta)
            self._notify("transcript", None)

        elif isinstance(event, TranscriptDone):
            self.state.finish_assistant_transcript(event.transcript)
            self._notify("transcript", None)

        elif isinstance(event, ConversationItem):
            self._on_item(event)

        elif isinstance(event, SpeechActivity):
            if event.started:
                self.state.close_assistant_turn()
            logger.debug("Learner %s speaking", "started" if event.started else "stopped")

        elif isinstance(event, ServerError):
            self._on_error(event)

        elif isinstance(event, SessionLifecycle):
            logger.info("Session %s", event.kind)

        elif isinstance(event, LessonPlanReady):
            self.state.lesson_plan = event.text
            logger.info(
                "Lesson plan ready for %s",
                event.topic_title,
                extra={"session_id": self.state.session_id},
            )
            self._on_instructions_changed()
            self._notify("state", None)

        elif isinstance(event, TopicSelectorDismissed):
            self.state.show_topic_selector = False
            self._notify("topics", None)

        elif isinstance(event, UnknownEvent):
            logger.debug("Ignoring event: %s", event.type)

        else:
            logger.warning("Unhandled inbound item: %r", event)

    def _on_item(self, item: ConversationItem) -> None:
        # Only finalized items count; added items may still be transcribing
        if not item.done:
            return
        if item.item_id and item.item_id in self.state.injected_item_ids:
            self.state.injected_item_ids.discard(item.item_id)
            return
        if item.role is Role.USER:
            self.state.append_user_text(item.text)
            self._notify("transcript", None)
        elif item.role is Role.ASSISTANT:
            self.state.close_assistant_turn()

    def _on_error(self, error: ServerError) -> None:
        if self.state.status is SessionStatus.PAUSED and is_pause_side_effect(
            error.code, error.message
        ):
            metrics.inc("session.suppressed_pause_errors")
            logger.debug("Suppressed pause side effect: %s", error.message)
            return
        logger.error(
            "Engine error (%s): %s",
            error.code or "no code",
            error.message,
            extra={"session_id": self.state.session_id},
        )
        self.state.error = error.message
        self._notify("error", {"code": error.code, "message": error.message})
