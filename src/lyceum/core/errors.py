"""
Error taxonomy for the live tutorial session.

Nothing here is fatal to the process. Connection failures land the
session in the ``error`` status; everything downstream of a live
connection is logged and absorbed.
"""

from __future__ import annotations

from typing import Any


class LyceumError(Exception):
    """Base class for all session errors."""


class RealtimeConnectionError(LyceumError, ConnectionError):
    """Credential fetch, media acquisition, or signaling failed.

    Surfaced to the user with a retry affordance. Never retried automatically.
    """


class ProtocolDecodeError(LyceumError, ValueError):
    """An inbound control-channel frame could not be decoded."""

    def __init__(self, message: str, raw: Any = None) -> None:
        super().__init__(message)
        self.raw = raw


class ToolArgumentError(LyceumError, ValueError):
    """A tool call carried a missing or invalid argument."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool


class PersistenceError(LyceumError):
    """Submitting the session artifact failed."""


class RestartUnavailableError(LyceumError):
    """Restart requested after the early-session window closed."""


# Engine errors the pause path provokes on purpose (cancel with nothing in
# flight, clear on an empty buffer).
_PAUSE_SIDE_EFFECT_MARKERS = ("response.cancel", "audio_buffer.clear")
_PAUSE_SIDE_EFFECT_CODES = frozenset({"response_cancel_not_active"})


def is_pause_side_effect(code: str | None, message: str | None) -> bool:
    """True when an engine error matches a speculative cancel/clear issued on pause."""
    if code and code in _PAUSE_SIDE_EFFECT_CODES:
        return True
    text = message or ""
    return any(marker in text for marker in _PAUSE_SIDE_EFFECT_MARKERS)
