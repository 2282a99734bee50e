"""
TutorialSession — one live tutorial, start to hand-off.

Lifecycle:
  idle → connecting → connected ⇄ paused → ending → idle
                    ↘ error (credential, media or signaling failure)

start() fetches a credential, connects, configures the engine and starts
the consumer loop and timers. end() tears everything down and submits the
session artifact once. Every exit path (explicit end, auto end, lost
connection, restart, shutdown) goes through teardown.

Detached work (lesson plan, selector dismissal, resume continue, auto end)
never writes state directly: it posts local events onto the connection's
inbound queue or calls the public operations here.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Protocol

from lyceum.core.config import LyceumConfig, config
from lyceum.core.errors import (
    PersistenceError,
    RealtimeConnectionError,
    RestartUnavailableError,
)
from lyceum.core.event_bus import TUTORIAL_EVENTS, EventBus, ui_event
from lyceum.core.metrics import metrics
from lyceum.prompts import (
    age_from_bracket,
    build_tutor_instructions,
    compose_instructions,
)
from lyceum.realtime import protocol
from lyceum.realtime.base import Connection
from lyceum.realtime.tools import SelectTopic, session_tools
from lyceum.services.backend import BackendClient, SessionGrant
from lyceum.session.bridge import ToolCallBridge
from lyceum.session.controller import PauseController
from lyceum.session.dispatcher import EventDispatcher
from lyceum.session.lesson_plan import render_plan_section
from lyceum.session.models import SessionStatus
from lyceum.session.state import SessionArtifact, SessionState
from lyceum.session.timer import (
    SessionClock,
    TimerSubsystem,
    format_time,
    minutes_remaining,
)

logger = logging.getLogger(__name__)


class Connector(Protocol):
    async def connect(self, ephemeral_key: str) -> Connection: ...


class TutorialSession:
    """Owns the SessionState and every component that touches it."""

    def __init__(
        self,
        connector: Connector,
        backend: BackendClient | None = None,
        bus: EventBus | None = None,
        settings: LyceumConfig | None = None,
        now: Callable[[], float] = time.monotonic,
    ) -> None:
        self.connector = connector
        self.backend = backend or BackendClient()
        self.bus = bus or EventBus()
        self.settings = settings or config
        self.clock = SessionClock(now)

        self.state = SessionState()
        self.connection: Connection | None = None
        self.grant: SessionGrant | None = None
        self.base_instructions = ""

        self.dispatcher: EventDispatcher | None = None
        self.bridge: ToolCallBridge | None = None
        self.controller: PauseController | None = None
        self.timer: TimerSubsystem | None = None

        self._consumer_task: asyncio.Task | None = None
        self._detached: set[asyncio.Task] = set()
        self._instructions_held = False
        self._ending = False

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> dict[str, Any]:
        """
        Begin a tutorial. Raises RealtimeConnectionError, leaving the
        session in the error status.
        """
        if self.state.status not in (SessionStatus.IDLE, SessionStatus.ERROR):
            logger.warning("Start ignored while %s", self.state.status.value)
            return self.snapshot()

        self.state = SessionState(status=SessionStatus.CONNECTING)
        self.clock.reset()
        self._instructions_held = False
        self._notify("state", None)
        started = time.monotonic()

        try:
            grant = await self.backend.create_session()
            self._apply_grant(grant)
            connection = await self.connector.connect(grant.ephemeral_key)
        except RealtimeConnectionError as e:
            self._connect_failed(str(e))
            raise
        except Exception as e:
            logger.exception("Unexpected failure while connecting")
            self._connect_failed(f"Failed to start session: {e}")
            raise RealtimeConnectionError(self.state.error) from e

        self.connection = connection
        self._wire(connection)
        self.base_instructions = build_tutor_instructions(
            grant.learner_profile,
            grant.topics,
            session_count=grant.session_count,
            age_bracket=grant.age_bracket,
            user_name=grant.user_name,
        )
        connection.send(
            protocol.session_update(
                self.base_instructions,
                tools=session_tools(),
                model=self.settings.realtime.model,
                voice=self.settings.realtime.voice,
            )
        )

        self.state.status = SessionStatus.CONNECTED
        self.clock.start()
        self.timer.start()
        self._consumer_task = asyncio.create_task(
            self._consume(), name="session-consumer"
        )
        metrics.observe("session.connect_s", time.monotonic() - started)
        logger.info(
            "Session live",
            extra={"session_id": self.state.session_id, "status": "connected"},
        )
        self._notify("state", None)
        return self.snapshot()

    def _connect_failed(self, message: str) -> None:
        metrics.inc("session.connect_failures")
        logger.error("Connection failed: %s", message)
        self.state.status = SessionStatus.ERROR
        self.state.error = message
        self._notify("state", None)

    def _apply_grant(self, grant: SessionGrant) -> None:
        self.grant = grant
        self.state.session_id = grant.session_id
        self.state.topic_options = list(grant.topics)
        self.state.learner_profile = dict(grant.learner_profile)

    def _wire(self, connection: Connection) -> None:
        timing = self.settings.timing
        self.bridge = ToolCallBridge(
            self.state,
            connection,
            notify=self._notify,
            on_selection_confirmed=self._schedule_selector_dismissal,
            on_topic_selected=self._request_lesson_plan,
        )
        self.dispatcher = EventDispatcher(
            self.state,
            connection,
            self.bridge,
            notify=self._notify,
            on_instructions_changed=self.push_instructions,
        )
        self.controller = PauseController(
            self.state,
            connection,
            self.clock,
            timing,
            on_resumed=self._on_resumed,
        )
        self.timer = TimerSubsystem(
            self.state,
            self.clock,
            connection,
            timing,
            on_time_update=self._on_time_update,
            on_expired=self.end,
        )

    async def _consume(self) -> None:
        await self.dispatcher.run()
        # The stream ends on teardown; outside end() that means the peer went away
        if not self._ending and self.state.is_live:
            logger.warning(
                "Connection lost", extra={"session_id": self.state.session_id}
            )
            self.state.error = "Connection lost"
            self._spawn(self.end(), "session-end-on-loss")

    async def end(self) -> None:
        """Tear down and hand off. A second concurrent call returns at once."""
        if self._ending:
            return
        if self.connection is None and not self.state.is_live:
            return
        self._ending = True
        try:
            was_live = self.state.is_live
            self.state.status = SessionStatus.ENDING
            self._notify("state", None)

            if was_live:
                elapsed = int(self.clock.elapsed())
                if elapsed > self.state.elapsed_seconds:
                    self.state.elapsed_seconds = elapsed
            self._stop_components()
            await self._teardown()

            if self.state.session_id:
                await self._submit(SessionArtifact.from_state(self.state))
            metrics.observe("session.duration_s", float(self.state.elapsed_seconds))
            logger.info(
                "Session ended after %s in %s",
                format_time(self.state.elapsed_seconds),
                self.state.phase.value,
                extra={"session_id": self.state.session_id, "status": "idle"},
            )
        finally:
            self.state.status = SessionStatus.IDLE
            self.state.session_id = None
            self.state.elapsed_seconds = 0
            self.clock.reset()
            self._ending = False
            self._notify("state", None)

    async def _submit(self, artifact: SessionArtifact) -> None:
        try:
            await self.backend.submit_session_end(artifact)
        except PersistenceError as e:
            metrics.inc("session.persistence_failures")
            logger.error(
                "Error saving session: %s", e, extra={"session_id": artifact.session_id}
            )

    def _stop_components(self) -> None:
        if self.timer is not None:
            self.timer.stop()
        if self.controller is not None:
            self.controller.cancel()
        current = asyncio.current_task()
        if self._consumer_task is not None and self._consumer_task is not current:
            self._consumer_task.cancel()
        self._consumer_task = None
        for task in list(self._detached):
            if task is not current:
                task.cancel()

    async def _teardown(self) -> None:
        connection, self.connection = self.connection, None
        if connection is None:
            return
        try:
            await connection.teardown()
        except Exception:
            logger.exception("Connection teardown failed")

    async def shutdown(self) -> None:
        """App disposal: end a live session, or just release resources."""
        if self.state.is_live:
            await self.end()
            return
        self._stop_components()
        await self._teardown()

    # ─── Pause / Resume / Restart ────────────────────────────────

    def pause(self) -> bool:
        if self.controller is None or self.connection is None:
            logger.warning("No live session to pause")
            return False
        paused = self.controller.pause()
        if paused:
            self._notify("state", None)
        return paused

    def resume(self) -> bool:
        if self.controller is None or self.connection is None:
            logger.warning("No live session to resume")
            return False
        resumed = self.controller.resume()
        if resumed:
            self._notify("state", None)
            self._notify("transcript", None)
        return resumed

    def can_restart(self) -> bool:
        return (
            self.state.is_live
            and self.state.elapsed_seconds <= self.settings.timing.restart_window_seconds
        )

    async def restart(self) -> dict[str, Any]:
        """Discard this attempt and start fresh. Nothing is persisted."""
        if not self.can_restart():
            raise RestartUnavailableError(
                "Restart is only available in the first "
                f"{self.settings.timing.restart_window_seconds // 60} minutes"
            )
        logger.info(
            "Restarting at %s",
            format_time(self.state.elapsed_seconds),
            extra={"session_id": self.state.session_id},
        )
        self._ending = True
        try:
            self._stop_components()
            await self._teardown()
        finally:
            self._ending = False
        self.state.status = SessionStatus.IDLE
        return await self.start()

    # ─── Instructions ────────────────────────────────────────────

    def current_instructions(self) -> str:
        return compose_instructions(
            self.base_instructions, self.state.lesson_plan, self.state.time_update
        )

    def push_instructions(self) -> bool:
        """Send the composed instructions, or hold them until resume."""
        if self.connection is None:
            return False
        if self.state.status is SessionStatus.PAUSED:
            self._instructions_held = True
            logger.debug("Paused, holding instruction update")
            return False
        self._instructions_held = False
        return self.connection.send(
            protocol.session_update(self.current_instructions())
        )

    def _on_time_update(self, text: str) -> None:
        self.state.time_update = text
        self.push_instructions()

    def _on_resumed(self) -> None:
        if self._instructions_held:
            self.push_instructions()

    # ─── Detached work ───────────────────────────────────────────

    def _spawn(self, coro: Any, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._detached.add(task)
        task.add_done_callback(self._detached.discard)
        return task

    def _schedule_selector_dismissal(self, selected_option: int) -> None:
        connection = self.connection
        delay = self.settings.timing.selection_display_seconds

        async def dismiss_later() -> None:
            await asyncio.sleep(delay)
            if connection is self.connection and connection is not None:
                connection.post_local(protocol.TopicSelectorDismissed(selected_option))

        self._spawn(dismiss_later(), "topic-selector-dismiss")

    def _request_lesson_plan(self, args: SelectTopic) -> None:
        connection = self.connection
        grant = self.grant
        user_age = age_from_bracket(grant.age_bracket) if grant else None
        session_count = grant.session_count if grant else 0

        async def fetch_plan() -> None:
            try:
                result = await self.backend.generate_lesson_plan(
                    args.topic_title,
                    args.user_prior_knowledge,
                    user_age=user_age,
                    session_count=session_count,
                )
                if result is None:
                    metrics.inc("session.lesson_plan_failures")
                    return
                text = render_plan_section(
                    args.topic_title,
                    args.user_prior_knowledge,
                    result.lesson_plan,
                    result.formatted_plan,
                )
            except Exception:
                logger.exception("Lesson plan for %r could not be prepared", args.topic_title)
                metrics.inc("session.lesson_plan_failures")
                return
            if connection is self.connection and connection is not None:
                connection.post_local(protocol.LessonPlanReady(args.topic_title, text))

        self._spawn(fetch_plan(), "lesson-plan")

    def dismiss_topic_selector(self) -> bool:
        if self.connection is None:
            self.state.show_topic_selector = False
            return False
        self.connection.post_local(
            protocol.TopicSelectorDismissed(self.state.selected_option)
        )
        return True

    def dismiss_visual(self, index: int) -> bool:
        """Hide a displayed visual. The recorded visuals are kept."""
        if not self.state.dismiss_visual(index):
            return False
        self._notify("visual", {"index": index, "dismissed": True})
        return True

    # ─── Views ───────────────────────────────────────────────────

    def minutes_remaining(self) -> int:
        return minutes_remaining(
            self.state.elapsed_seconds, self.settings.timing.max_session_seconds
        )

    def snapshot(self) -> dict[str, Any]:
        data = self.state.snapshot()
        data["can_restart"] = self.can_restart()
        data["minutes_remaining"] = self.minutes_remaining()
        data["formatted_time"] = format_time(self.state.elapsed_seconds)
        return data

    def _notify(self, kind: str, payload: Any) -> None:
        if payload is None:
            if kind == "state":
                payload = self.snapshot()
            elif kind == "transcript":
                payload = [e.to_dict() for e in self.state.transcript]
            elif kind == "topics":
                payload = {
                    "topics": [t.to_dict() for t in self.state.ordered_topics()],
                    "show": self.state.show_topic_selector,
                    "selected_option": self.state.selected_option,
                }
        self.bus.publish(TUTORIAL_EVENTS, ui_event(kind, payload))
