"""
Progress Events and the Progress Channel.

The engine reports what it is doing as an ordered stream of events.
The channel is a bounded single-producer, single-consumer queue: the
engine publishes, the transport (SSE response, WebSocket) iterates.
"""

from typing import Any, AsyncIterator, Dict, Optional
from dataclasses import dataclass
from enum import Enum
import asyncio
import json


class EventType(str, Enum):
    """Kinds of progress events."""
    NODE_EXECUTING = "node-executing"
    NODE_FINISHED = "node-finished"
    FINAL_RESPONSE = "final-response"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.FINAL_RESPONSE, EventType.ERROR})


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress event."""
    type: EventType
    node_id: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def node_executing(cls, node_id: str) -> "ProgressEvent":
        return cls(EventType.NODE_EXECUTING, node_id=node_id)

    @classmethod
    def node_finished(cls, node_id: str, content: str) -> "ProgressEvent":
        return cls(EventType.NODE_FINISHED, node_id=node_id, content=content)

    @classmethod
    def final_response(cls, content: str) -> "ProgressEvent":
        return cls(EventType.FINAL_RESPONSE, content=content)

    @classmethod
    def failure(cls, error: str) -> "ProgressEvent":
        return cls(EventType.ERROR, error=error)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: camelCase keys, unset fields omitted."""
        data: Dict[str, Any] = {"type": self.type.value}
        if self.node_id is not None:
            data["nodeId"] = self.node_id
        if self.content is not None:
            data["content"] = self.content
        if self.error is not None:
            data["error"] = self.error
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class ChannelClosed(Exception):
    """Raised when publishing to a closed channel."""


_CLOSE = object()


class ProgressChannel:
    """
    Ordered, forward-only stream of progress events.

    Publishing a terminal event (final-response or error) closes the
    channel; consumers stop iterating after receiving it. The queue
    is bounded, so a slow consumer applies back-pressure to the run.

    Usage:
        channel = ProgressChannel()
        task = asyncio.create_task(executor.run(goal))
        async for event in channel:
            send(event.to_json())
    """

    def __init__(self, maxsize: int = 64):
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: ProgressEvent) -> None:
        """
        Append an event to the stream.

        Raises:
            ChannelClosed: If the channel was already closed
        """
        if self._closed:
            raise ChannelClosed(f"Cannot publish '{event.type.value}' to a closed channel")
        await self._queue.put(event)
        if event.is_terminal:
            self.close_nowait()

    async def close(self) -> None:
        """Close the channel without a terminal event."""
        self.close_nowait()

    def close_nowait(self) -> None:
        """
        Close from a context that cannot await (e.g. during cancellation).

        The end-of-stream marker is queued when there is room; otherwise
        the consumer stops once it has drained the queue.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item
