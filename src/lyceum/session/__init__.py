"""
Session — the live tutorial and everything it accumulates.

Key components:
- SessionState: the one mutable record a tutorial owns
- EventDispatcher: consumer loop over the control channel
- ToolCallBridge: applies model tool calls to the state
- PauseController: pause/resume with activity-aware resume messages
- TimerSubsystem: elapsed clock, time broadcasts, the session ceiling
- TutorialSession: start / pause / resume / end / restart
"""

from lyceum.session.models import (
    Activity,
    Role,
    SessionStatus,
    TranscriptEntry,
    TutorialPhase,
)
from lyceum.session.state import SessionArtifact, SessionState

__all__ = [
    "Activity",
    "Role",
    "SessionStatus",
    "TranscriptEntry",
    "TutorialPhase",
    "SessionArtifact",
    "SessionState",
]
