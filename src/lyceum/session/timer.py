"""
Timer Subsystem — the pause-aware session clock and its two loops.

- elapsed tick (every `tick_interval`): copies clock time into the state
  and fires auto-termination once the ceiling is reached while connected
- time broadcast (every `time_update_interval`): tells the engine how many
  minutes remain, skipped while paused or when the channel is closed

Both loops read the live state handle on every pass.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from lyceum.core.config import SessionTimingConfig
from lyceum.prompts import time_update_instruction
from lyceum.realtime.base import Connection
from lyceum.session.models import SessionStatus
from lyceum.session.state import SessionState

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    """Seconds as M:SS, e.g. 75 -> "1:15"."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def minutes_remaining(elapsed_seconds: int, max_session_seconds: int) -> int:
    """Whole minutes left before the ceiling, never negative."""
    return max(0, (max_session_seconds - int(elapsed_seconds)) // 60)


class SessionClock:
    """
    Elapsed session time that excludes paused intervals.

    `now` is injectable so tests can drive time by hand.
    """

    def __init__(self, now: Callable[[], float] = time.monotonic) -> None:
        self._now = now
        self._started_at: float | None = None
        self._frozen_at: float | None = None

    def start(self, offset: float = 0.0) -> None:
        self._started_at = self._now() - offset
        self._frozen_at = None

    def freeze(self) -> None:
        if self._started_at is not None and self._frozen_at is None:
            self._frozen_at = self.elapsed()

    def unfreeze(self) -> None:
        """Continue from the frozen value; the paused interval is dropped."""
        if self._frozen_at is not None:
            self.start(offset=self._frozen_at)

    def reset(self) -> None:
        self._started_at = None
        self._frozen_at = None

    @property
    def frozen(self) -> bool:
        return self._frozen_at is not None

    def elapsed(self) -> float:
        if self._frozen_at is not None:
            return self._frozen_at
        if self._started_at is None:
            return 0.0
        return max(0.0, self._now() - self._started_at)


class TimerSubsystem:
    def __init__(
        self,
        state: SessionState,
        clock: SessionClock,
        connection: Connection,
        timing: SessionTimingConfig,
        on_time_update: Callable[[str], None],
        on_expired: Callable[[], Awaitable[None]],
    ) -> None:
        self.state = state
        self.clock = clock
        self.connection = connection
        self.timing = timing
        self._on_time_update = on_time_update
        self._on_expired = on_expired
        self._tasks: list[asyncio.Task] = []
        self._expired = False
        # Auto-end runs detached so end() can cancel the loops without
        # cancelling itself
        self.expiry_task: asyncio.Task | None = None

    def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self._tick_loop(), name="session-tick"),
            asyncio.create_task(self._broadcast_loop(), name="session-time-broadcast"),
        ]

    def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []

    @property
    def expired(self) -> bool:
        return self._expired

    def tick(self) -> None:
        """One elapsed-time pass."""
        status = self.state.status
        if status not in (SessionStatus.CONNECTED, SessionStatus.PAUSED):
            return
        elapsed = int(self.clock.elapsed())
        if elapsed > self.state.elapsed_seconds:
            self.state.elapsed_seconds = elapsed

        if (
            status is SessionStatus.CONNECTED
            and not self._expired
            and self.state.elapsed_seconds >= self.timing.max_session_seconds
        ):
            self._expired = True
            logger.info(
                "Session ceiling reached at %s, ending",
                format_time(self.state.elapsed_seconds),
                extra={"session_id": self.state.session_id},
            )
            self.expiry_task = asyncio.create_task(
                self._on_expired(), name="session-auto-end"
            )

    def broadcast(self) -> bool:
        """Send one time-remaining update. Returns False when skipped."""
        if self.state.status is not SessionStatus.CONNECTED:
            return False
        if not self.connection.is_open:
            return False
        remaining = minutes_remaining(
            self.state.elapsed_seconds, self.timing.max_session_seconds
        )
        text = time_update_instruction(
            remaining,
            far=self.timing.far_threshold_minutes,
            near=self.timing.near_threshold_minutes,
            imminent=self.timing.imminent_threshold_minutes,
        )
        logger.debug("Time update: %d minutes remaining", remaining)
        self._on_time_update(text)
        return True

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.timing.tick_interval)
            self.tick()

    async def _broadcast_loop(self) -> None:
        while True:
            await asyncio.sleep(self.timing.time_update_interval)
            self.broadcast()
