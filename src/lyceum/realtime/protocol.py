"""
Realtime control-channel protocol — typed events in, JSON events out.

Inbound frames are decoded at the boundary into a closed set of frozen
dataclasses; everything downstream pattern-matches on type instead of
poking at dicts. Outbound events are built by small helpers so the
event shapes live in one place.

Two local events (LessonPlanReady, TopicSelectorDismissed) never cross
the wire. Detached tasks push them onto the same inbound queue so the
consumer loop stays the only writer of session state.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Union

from lyceum.core.errors import ProtocolDecodeError
from lyceum.realtime.tools import ToolCall
from lyceum.session.models import Role


# ─── Server Events ───────────────────────────────────────────────


@dataclass(frozen=True)
class SessionLifecycle:
    """session.created / session.updated acknowledgement."""

    kind: str  # "created" | "updated"
    session: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseDone:
    """A completed model turn, with any embedded tool calls in order."""

    response_id: str = ""
    status: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class TranscriptDelta:
    """Incremental assistant speech transcript."""

    delta: str
    item_id: str = ""
    response_id: str = ""


@dataclass(frozen=True)
class TranscriptDone:
    """The assistant finished speaking one item."""

    transcript: str = ""
    item_id: str = ""


@dataclass(frozen=True)
class ConversationItem:
    """A conversation item the engine added or finalized."""

    item_id: str
    role: Role | None
    text: str
    done: bool  # True only for conversation.item.done


@dataclass(frozen=True)
class SpeechActivity:
    started: bool


@dataclass(frozen=True)
class ServerError:
    code: str | None
    message: str
    event_id: str | None = None


@dataclass(frozen=True)
class UnknownEvent:
    type: str
    payload: dict = field(default_factory=dict)


ServerEvent = Union[
    SessionLifecycle,
    ResponseDone,
    TranscriptDelta,
    TranscriptDone,
    ConversationItem,
    SpeechActivity,
    ServerError,
    UnknownEvent,
]


# ─── Local Events ────────────────────────────────────────────────


@dataclass(frozen=True)
class LessonPlanReady:
    """A lesson plan arrived for the chosen topic; merge into instructions."""

    topic_title: str
    text: str


@dataclass(frozen=True)
class TopicSelectorDismissed:
    """Hide the topic selector (auto after the display delay, or by hand)."""

    selected_option: int | None = None


LocalEvent = Union[LessonPlanReady, TopicSelectorDismissed]


# ─── Decoding ────────────────────────────────────────────────────

# Older engine builds emit the audio transcript events without "output_"
_TRANSCRIPT_DELTA_TYPES = frozenset(
    {
        "response.output_audio_transcript.delta",
        "response.audio_transcript.delta",
    }
)
_TRANSCRIPT_DONE_TYPES = frozenset(
    {
        "response.output_audio_transcript.done",
        "response.audio_transcript.done",
    }
)


def _item_text(item: dict) -> str:
    """Join the text carried by an item's content parts."""
    parts = []
    content = item.get("content")
    if not isinstance(content, list):
        return ""
    for part in content:
        if not isinstance(part, dict):
            continue
        text = part.get("text") or part.get("transcript") or ""
        if text:
            parts.append(str(text))
    return " ".join(p.strip() for p in parts if p.strip())


def _as_object(value: Any, what: str, raw: Any) -> dict:
    """Optional nested object; present but not an object is a decode error."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProtocolDecodeError(f"{what} is not an object", raw)
    return value


def _as_list(value: Any, what: str, raw: Any) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProtocolDecodeError(f"{what} is not a list", raw)
    return value


def _role(raw: Any) -> Role | None:
    try:
        return Role(raw)
    except ValueError:
        return None


def decode_server_event(raw: str | bytes | dict) -> ServerEvent:
    """
    Decode one control-channel frame.

    Raises ProtocolDecodeError when the frame is not a JSON object with a
    string ``type``. Well-formed frames of unrecognised type become
    UnknownEvent rather than errors.
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            raise ProtocolDecodeError(f"frame is not valid JSON: {e}", raw) from e

    if not isinstance(data, dict):
        raise ProtocolDecodeError("frame is not a JSON object", raw)

    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ProtocolDecodeError("frame has no type", raw)

    if event_type in ("session.created", "session.updated"):
        return SessionLifecycle(
            kind=event_type.split(".", 1)[1],
            session=_as_object(data.get("session"), "session", raw),
        )

    if event_type == "response.done":
        response = _as_object(data.get("response"), "response", raw)
        calls = tuple(
            ToolCall.from_output_item(item)
            for item in _as_list(response.get("output"), "response.output", raw)
            if isinstance(item, dict) and item.get("type") == "function_call"
        )
        return ResponseDone(
            response_id=str(response.get("id", "")),
            status=str(response.get("status", "")),
            tool_calls=calls,
        )

    if event_type in _TRANSCRIPT_DELTA_TYPES:
        return TranscriptDelta(
            delta=str(data.get("delta") or ""),
            item_id=str(data.get("item_id", "")),
            response_id=str(data.get("response_id", "")),
        )

    if event_type in _TRANSCRIPT_DONE_TYPES:
        return TranscriptDone(
            transcript=str(data.get("transcript") or ""),
            item_id=str(data.get("item_id", "")),
        )

    if event_type in ("conversation.item.added", "conversation.item.done"):
        item = _as_object(data.get("item"), "item", raw)
        return ConversationItem(
            item_id=str(item.get("id", "")),
            role=_role(item.get("role")),
            text=_item_text(item),
            done=event_type.endswith(".done"),
        )

    if event_type == "input_audio_buffer.speech_started":
        return SpeechActivity(started=True)
    if event_type == "input_audio_buffer.speech_stopped":
        return SpeechActivity(started=False)

    if event_type == "error":
        error = _as_object(data.get("error"), "error", raw)
        code = error.get("code")
        return ServerError(
            code=str(code) if code is not None else None,
            message=str(error.get("message") or "Session error occurred"),
            event_id=error.get("event_id"),
        )

    return UnknownEvent(type=event_type, payload=data)


# ─── Client Events ───────────────────────────────────────────────


def event_id(prefix: str) -> str:
    """Client event id, e.g. "pause_cancel_1718040000123"."""
    return f"{prefix}_{int(time.time() * 1000)}"


def session_update(
    instructions: str,
    tools: list[dict] | None = None,
    model: str | None = None,
    voice: str | None = None,
) -> dict:
    """
    Configure the session. Pass only instructions to replace the prompt
    mid-session; the full form is sent once when the channel opens.
    """
    session: dict[str, Any] = {"type": "realtime", "instructions": instructions}
    if model:
        session["model"] = model
    if tools is not None:
        session["tools"] = tools
        session["tool_choice"] = "auto"
    if voice:
        session["audio"] = {
            "input": {"turn_detection": {"type": "semantic_vad"}},
            "output": {"voice": voice},
        }
    return {"type": "session.update", "session": session}


def function_call_output(call_id: str, output: dict) -> dict:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "function_call_output",
            "call_id": call_id,
            "output": json.dumps(output),
        },
    }


def user_text_item(text: str, item_id: str | None = None, eid: str | None = None) -> dict:
    item: dict[str, Any] = {
        "type": "message",
        "role": "user",
        "content": [{"type": "input_text", "text": text}],
    }
    if item_id:
        item["id"] = item_id
    event: dict[str, Any] = {"type": "conversation.item.create", "item": item}
    if eid:
        event["event_id"] = eid
    return event


def response_create(instructions: str | None = None, eid: str | None = None) -> dict:
    event: dict[str, Any] = {"type": "response.create"}
    if eid:
        event["event_id"] = eid
    if instructions:
        event["response"] = {"instructions": instructions}
    return event


def response_cancel(eid: str | None = None) -> dict:
    return {"type": "response.cancel", "event_id": eid or event_id("pause_cancel")}


def output_audio_buffer_clear(eid: str | None = None) -> dict:
    return {
        "type": "output_audio_buffer.clear",
        "event_id": eid or event_id("pause_clear_output"),
    }


def input_audio_buffer_clear(eid: str | None = None) -> dict:
    return {
        "type": "input_audio_buffer.clear",
        "event_id": eid or event_id("pause_clear_input"),
    }
