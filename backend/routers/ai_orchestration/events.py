"""
Nova AI Orchestration - Progress channel

The orchestrator only ever sees a ProgressSink (write + close). Sinks are
passed explicitly through every layer that emits events; there is no
module-level writer.

EventChannel is the streaming sink: a forward-only asyncio.Queue read by
the HTTP layer. CollectingSink keeps events in memory for the JSON
endpoint and for tests.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    event: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event, "data": self.data}

    def to_sse(self) -> str:
        """Server-sent event frame."""
        return f"event: {self.event}\ndata: {json.dumps(self.data, default=str)}\n\n"


class ProgressSink(Protocol):
    async def write(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool: ...

    async def close(self) -> bool: ...


_CLOSE = object()


class EventChannel:
    """
    Forward-only, single-consumer event channel.

    - close() is idempotent; only the first call ends the stream
    - writes after close, or after the consumer detached, are discarded
    - iteration yields events in write order and stops at close
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._detached = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    async def write(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """Queue an event. Returns False when it was discarded."""
        if self._closed or self._detached:
            self.dropped += 1
            logger.debug(f"Dropped '{event}' event (closed={self._closed} detached={self._detached})")
            return False
        self._queue.put_nowait(ProgressEvent(event, data or {}))
        return True

    async def close(self) -> bool:
        """End the stream. Returns False if it was already closed."""
        if self._closed:
            return False
        self._closed = True
        self._queue.put_nowait(_CLOSE)
        return True

    def detach(self) -> None:
        """Consumer went away; discard everything from now on."""
        if self._detached:
            return
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()
        if self._closed:
            self._queue.put_nowait(_CLOSE)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


class CollectingSink:
    """In-memory sink recording every event and close call."""

    def __init__(self):
        self.events: List[ProgressEvent] = []
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def write(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        if self.closed:
            return False
        self.events.append(ProgressEvent(event, data or {}))
        return True

    async def close(self) -> bool:
        self.close_count += 1
        return self.close_count == 1

    def names(self) -> List[str]:
        return [e.event for e in self.events]

    def of(self, event: str) -> List[Dict[str, Any]]:
        return [e.data for e in self.events if e.event == event]
