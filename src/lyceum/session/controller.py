"""
Pause/Resume Controller.

The engine has no notion of a resumed conversation, so resume manufactures
exactly one context message whose wording depends on what the learner was
doing when they paused, plus an instruction block for the next response.

Pause issues best-effort cancel/clear requests. The engine may reject
them (nothing in flight, empty buffer); the dispatcher suppresses those
errors while paused.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Callable

from lyceum.core.config import SessionTimingConfig
from lyceum.realtime import protocol
from lyceum.realtime.base import Connection
from lyceum.session.models import Activity, SessionStatus
from lyceum.session.state import SessionState
from lyceum.session.timer import SessionClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumeMessage:
    context: str
    instructions: str


RESUME_MESSAGES: dict[Activity, ResumeMessage] = {
    Activity.GREETING: ResumeMessage(
        context="(The session was paused during the initial greeting.)",
        instructions=(
            "The tutorial was briefly paused during your greeting.\n"
            '1. Say "Welcome back!" warmly.\n'
            "2. Continue with your greeting and then offer the 3 topic options.\n"
            '3. Say "First...", "Second...", "Third..." as you present each option.'
        ),
    ),
    Activity.OFFERING_TOPICS: ResumeMessage(
        context="(The session was paused while you were presenting topic options.)",
        instructions=(
            "The tutorial was paused while you were presenting topic options.\n"
            '1. Say "Welcome back!" briefly.\n'
            "2. You may have been part-way through the topics. Ask if they'd like "
            "you to go through the options again.\n"
            '3. If yes, re-present all 3 options with "First...", "Second...", '
            '"Third...".\n'
            "4. If they remember, ask which one interests them most."
        ),
    ),
    Activity.AWAITING_SELECTION: ResumeMessage(
        context=(
            "(The session was paused after you presented 3 topic options. "
            "I was about to choose.)"
        ),
        instructions=(
            "The tutorial was paused after you presented all 3 topic options.\n"
            '1. Say "Welcome back!" briefly.\n'
            "2. Ask which topic interested them most. Do NOT re-list the topics.\n"
            "3. If they've forgotten, offer to briefly remind them of the options."
        ),
    ),
    Activity.DISCUSSING: ResumeMessage(
        context="(The session was paused during our discussion.)",
        instructions=(
            "The tutorial was paused during the main discussion.\n"
            '1. Say "Welcome back!" or "Let\'s continue" briefly.\n'
            "2. Do NOT discuss the pause.\n"
            "3. Continue exactly where you left off. If you were mid-question, "
            "repeat it.\n"
            "4. If you were waiting for their response, indicate you're listening."
        ),
    ),
    Activity.REFLECTING: ResumeMessage(
        context="(The session was paused during the reflection/wrap-up phase.)",
        instructions=(
            "The tutorial was paused during reflection.\n"
            '1. Say "Welcome back!" briefly.\n'
            "2. Continue the reflection: ask for their summary or final thoughts.\n"
            "3. Be mindful of time and wrap up warmly."
        ),
    ),
}

FALLBACK_RESUME = ResumeMessage(
    context="(The session was paused briefly. I am ready to continue.)",
    instructions=(
        "The tutorial was briefly paused.\n"
        '1. Acknowledge briefly: "Welcome back!" and nothing elaborate.\n'
        "2. Continue where you left off.\n"
        "3. Keep your warm, Socratic tone."
    ),
)


def resume_message(activity: Activity | None) -> ResumeMessage:
    if activity is None:
        return FALLBACK_RESUME
    return RESUME_MESSAGES.get(activity, FALLBACK_RESUME)


class PauseController:
    def __init__(
        self,
        state: SessionState,
        connection: Connection,
        clock: SessionClock,
        timing: SessionTimingConfig,
        on_resumed: Callable[[], None] | None = None,
    ) -> None:
        self.state = state
        self.connection = connection
        self.clock = clock
        self.timing = timing
        self._on_resumed = on_resumed
        # Bumped on every pause so a stale continue never fires
        self._generation = 0
        self.continue_task: asyncio.Task | None = None

    def pause(self) -> bool:
        """Freeze the session. Returns False (and does nothing) if not allowed."""
        if not self.connection.is_open:
            logger.warning("Control channel not available for pause")
            return False
        if self.state.status is not SessionStatus.CONNECTED:
            logger.warning("Cannot pause while %s", self.state.status.value)
            return False

        self._generation += 1
        self.state.pre_pause_status = self.state.status
        self.state.status = SessionStatus.PAUSED
        self.clock.freeze()

        self.connection.set_input_enabled(False)
        self.connection.send(protocol.response_cancel())
        self.connection.send(protocol.output_audio_buffer_clear())
        self.connection.send(protocol.input_audio_buffer_clear())
        self.connection.pause_playback()

        logger.info(
            "Session paused during %s",
            self.state.activity.value,
            extra={"session_id": self.state.session_id, "status": "paused"},
        )
        return True

    def resume(self) -> bool:
        """Unfreeze and re-prime the engine. Returns False if not allowed."""
        if not self.connection.is_open:
            logger.warning("Control channel not available for resume")
            return False
        if self.state.status is not SessionStatus.PAUSED:
            logger.warning("Cannot resume while %s", self.state.status.value)
            return False

        self.connection.set_input_enabled(True)
        self.connection.resume_playback()

        message = resume_message(self.state.activity)
        item_id = f"resume_{uuid.uuid4().hex[:16]}"
        self.state.injected_item_ids.add(item_id)
        self.connection.send(
            protocol.user_text_item(
                message.context,
                item_id=item_id,
                eid=protocol.event_id("resume_context"),
            )
        )

        self.state.status = self.state.pre_pause_status or SessionStatus.CONNECTED
        self.state.pre_pause_status = None
        self.clock.unfreeze()
        self.state.append_system_note(message.context)

        self.continue_task = asyncio.create_task(
            self._continue_after_delay(message.instructions, self._generation),
            name="session-resume-continue",
        )
        logger.info(
            "Session resumed during %s",
            self.state.activity.value,
            extra={"session_id": self.state.session_id, "status": "connected"},
        )
        if self._on_resumed is not None:
            self._on_resumed()
        return True

    async def _continue_after_delay(self, instructions: str, generation: int) -> None:
        # Give the context item time to commit before asking for a response
        await asyncio.sleep(self.timing.resume_delay)
        if generation != self._generation:
            return
        if self.state.status is not SessionStatus.CONNECTED:
            return
        if not self.connection.is_open:
            return
        self.connection.send(
            protocol.response_create(
                instructions=instructions, eid=protocol.event_id("resume_continue")
            )
        )

    def cancel(self) -> None:
        if self.continue_task is not None and not self.continue_task.done():
            self.continue_task.cancel()
