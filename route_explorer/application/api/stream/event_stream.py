from typing import Any, AsyncIterator, Union
import asyncio
import json

import structlog
from pydantic import BaseModel

from route_explorer.application.api.schema.events import StreamEventType
from route_explorer.domain.streaming.events import ProgressEvent

logger = structlog.get_logger(__name__)

_CLOSED = object()


def format_sse(event: str, data: Any) -> str:
    """Render one server-sent event frame"""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class EventChannel:
    """Queue between a running agent and the HTTP response that streams its events"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send_event(self, event: Union[StreamEventType, str], data: Any) -> bool:
        """Queue an event for the client; events sent after close are dropped"""

        if self._closed:
            logger.debug("Dropping event on closed channel", event=str(event))
            return False

        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")

        name = event.value if isinstance(event, StreamEventType) else event
        self._queue.put_nowait((name, data))
        self.sent += 1
        return True

    def progress_sink(self, event: ProgressEvent) -> None:
        """Engine progress sink forwarding to the ``progress`` event"""
        self.send_event(StreamEventType.PROGRESS, event)

    def close(self):
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def drain(self) -> AsyncIterator[str]:
        """Yield formatted frames until the channel is closed"""

        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                break
            event, data = item
            yield format_sse(event, data)
