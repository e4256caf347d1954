"""
Streaming: SSE wire events, the server-side multiplexer and client-side
stream assembly.
"""

from .events import SYSTEM_MODEL, StreamEvent
from .multiplexer import FrameSink, QueueSink, StreamMultiplexer

__all__ = [
    "FrameSink",
    "QueueSink",
    "StreamEvent",
    "StreamMultiplexer",
    "SYSTEM_MODEL",
]
