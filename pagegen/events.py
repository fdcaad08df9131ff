import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional

from .schemas import ProgressEvent


_CLOSED = object()


class ProgressEmitter:
    """One-way, ordered channel of progress events for a single run.

    Writers call ``emit`` from any task on the loop. Once the channel is
    closed, or the consumer has gone away, ``emit`` drops the event and
    returns False instead of raising.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._disconnected = False
        self.emitted = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed or self._disconnected

    def emit(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        if self.closed:
            self.dropped += 1
            return False
        self._queue.put_nowait(ProgressEvent(event=event, data=dict(data or {})))
        self.emitted += 1
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def disconnect(self) -> None:
        """Mark the consumer gone; queued events are discarded."""
        if self._disconnected:
            return
        self._disconnected = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def drain(self) -> List[ProgressEvent]:
        items: List[ProgressEvent] = []
        saw_close = False
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                saw_close = True
                continue
            items.append(item)
        if saw_close:
            self._queue.put_nowait(_CLOSED)
        return items

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def sse_format(event: ProgressEvent) -> str:
    return f"event: {event.event}\ndata: {json.dumps(event.data, default=str)}\n\n"
