"""
Realtime — everything that touches the conversational engine's wire.

- base: the Connection interface the session consumes
- transport: aiortc peer connection, gated media, SDP exchange
- protocol: typed inbound events and outbound event builders
- tools: the closed tool vocabulary and its argument parsing
"""

from lyceum.realtime.base import END_OF_STREAM, Connection
from lyceum.realtime.tools import ToolCall, ToolName

__all__ = ["END_OF_STREAM", "Connection", "ToolCall", "ToolName"]
