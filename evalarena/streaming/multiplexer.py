"""
Stream Multiplexer

Serializes events published concurrently by N model tasks into one ordered
byte stream, and closes the underlying sink exactly once.

Usage:
    sink = QueueSink()
    mux = StreamMultiplexer(sink)
    await mux.publish(StreamEvent(model="gpt-4o", response="", delta=""))
    await mux.close()

    async for frame in sink:   # e.g. inside a StreamingResponse
        ...
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol

from utils.exceptions import StreamClosedError

from .events import StreamEvent

logger = logging.getLogger(__name__)


class FrameSink(Protocol):
    """Transport the multiplexer writes serialized frames to."""

    async def write(self, frame: bytes) -> None:
        ...

    async def aclose(self) -> None:
        ...


_EOF = object()


class QueueSink:
    """
    asyncio.Queue backed sink, consumed as an async iterator of frames.

    The queue is unbounded: producers are never blocked by a slow consumer.
    Once closed (or aborted because the consumer went away), writes raise
    StreamClosedError.
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: bytes) -> None:
        if self._closed:
            raise StreamClosedError("sink is closed")
        self._queue.put_nowait(frame)

    async def aclose(self) -> None:
        if self._closed:
            raise StreamClosedError("sink is already closed")
        self._closed = True
        self._queue.put_nowait(_EOF)

    def abort(self) -> None:
        """Consumer is gone: drop further writes."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_EOF)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if item is _EOF:
                return
            yield item  # type: ignore[misc]


class StreamMultiplexer:
    """
    Concurrency-safe event publisher over a single FrameSink.

    Every publish() holds the lock for the full write, so frames from
    different models never interleave. A sink that reports it is closed
    (consumer disconnected) turns further publishes into no-ops; genuine
    I/O errors propagate.
    """

    def __init__(self, sink: FrameSink):
        self._sink = sink
        self._lock = asyncio.Lock()
        self._closed = False
        self._consumer_gone = False
        self.frames_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consumer_gone(self) -> bool:
        return self._consumer_gone

    async def publish(self, event: StreamEvent) -> None:
        frame = event.to_sse()
        async with self._lock:
            if self._closed or self._consumer_gone:
                return
            try:
                await self._sink.write(frame)
            except StreamClosedError:
                if not self._consumer_gone:
                    logger.info("Stream consumer disconnected; dropping further events")
                self._consumer_gone = True
                return
            self.frames_written += 1

    async def close(self, reason: Optional[str] = None) -> None:
        """Close the sink once. Safe to call repeatedly."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                await self._sink.aclose()
            except StreamClosedError:
                pass
            except OSError as e:
                logger.warning(f"Error closing stream sink: {e}")
            logger.debug(
                f"Stream closed after {self.frames_written} frames"
                + (f" ({reason})" if reason else "")
            )
