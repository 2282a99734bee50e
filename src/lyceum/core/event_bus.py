"""
Event Bus — fan-out of tutorial UI events to the rendering layer.

The session publishes envelopes built by ``ui_event`` (state snapshots,
transcript, visuals, topic picker, errors) on ``TUTORIAL_EVENTS``; each SSE
client holds its own bounded queue. Publishing never awaits, so the
control-channel consumer is never held up by a slow reader.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)

TUTORIAL_EVENTS = "tutorial.events"

UI_EVENT_KINDS = frozenset({"state", "transcript", "visual", "topics", "error"})

_CLOSED = object()


def ui_event(kind: str, data: Any) -> dict:
    """Envelope for one rendering-layer event."""
    if kind not in UI_EVENT_KINDS:
        raise ValueError(f"Unknown UI event kind: {kind}")
    return {"type": kind, "data": data}


class EventBus:
    """Topic -> subscriber queues. A full queue loses events for that reader only."""

    def __init__(self) -> None:
        self._queues: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, topic: str, maxsize: int = 256) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues[topic].add(queue)
        logger.debug("SSE reader joined %s (%d)", topic, len(self._queues[topic]))
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        readers = self._queues.get(topic)
        if readers is None:
            return
        readers.discard(queue)
        if not readers:
            del self._queues[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._queues.get(topic, ()))

    def publish(self, topic: str, event: Any) -> int:
        """Returns how many readers received the event."""
        delivered = 0
        for queue in self._queues.get(topic, ()):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Reader queue full on %s, event dropped", topic)
                continue
            delivered += 1
        return delivered

    def publish_end(self, topic: str) -> None:
        """Close every reader of `topic`; a full queue gives up its oldest event."""
        for queue in self._queues.get(topic, ()):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(_CLOSED)

    async def listen(self, queue: asyncio.Queue) -> AsyncIterator[Any]:
        """Yield events until the topic is closed."""
        while True:
            item = await queue.get()
            if item is _CLOSED:
                return
            yield item
