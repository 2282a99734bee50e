"""
Base Connection Interface — what the session needs from a live transport.

A connection is a duplex control channel plus local media gates. Inbound
frames (and local events posted by detached tasks) arrive on a single
asyncio.Queue; the session consumes it in order. END_OF_STREAM marks the
queue as finished after teardown.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

# Pushed into `inbound` once the connection is torn down
END_OF_STREAM = object()


class Connection(ABC):
    """A live session transport."""

    def __init__(self) -> None:
        self.inbound: asyncio.Queue[Any] = asyncio.Queue()

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the control channel can carry outbound events."""

    @abstractmethod
    def send(self, event: dict) -> bool:
        """
        Serialize and send one control event.

        Returns False (and sends nothing) when the channel is not open.
        """

    @abstractmethod
    def set_input_enabled(self, enabled: bool) -> None:
        """Gate the microphone without stopping capture."""

    @abstractmethod
    def pause_playback(self) -> None:
        pass

    @abstractmethod
    def resume_playback(self) -> None:
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """
        Release media, close the channel and the peer connection.

        Idempotent. Always ends by pushing END_OF_STREAM into `inbound`.
        """

    def post_local(self, event: Any) -> None:
        """Queue a local event behind any frames already received."""
        self.inbound.put_nowait(event)
