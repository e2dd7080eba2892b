"""
Events, the bounded channel pollers push into, and the SSE writer.

A stream route always hands the writer an ``EventStream``:

    Single(event)       — at most one event, then done.  Used when a stream
                          fails before any polling starts.
    Multi(channel, task) — everything a poller task sends, in order, until
                          the poller finishes or the client goes away.

Both are plain async iterators, so ``write_event_stream`` doesn't care which
one it got.

The channel holds at most CHANNEL_CAPACITY events.  A poller whose client
stops reading blocks in ``send()`` once the channel is full; nothing is
dropped or reordered.  When the client disconnects the receiver closes the
channel and the poller's next ``send()`` returns False.
"""

import asyncio
import logging
from dataclasses import dataclass

from aiohttp import web

from .http_utils import CORS_HEADERS

log = logging.getLogger(__name__)

CHANNEL_CAPACITY = 30

POSITION = "position"
METADATA = "metadata"
STATUS = "status"
KEEPALIVE = "keepalive"
ERROR = "error"

END_OF_STREAM = "EOS"


@dataclass(frozen=True)
class Event:
    """One named SSE event with an already-serialized payload."""

    name: str
    data: str = ""

    @classmethod
    def position(cls, value: int) -> "Event":
        return cls(POSITION, str(value))

    @classmethod
    def end_of_stream(cls) -> "Event":
        return cls(POSITION, END_OF_STREAM)

    @classmethod
    def metadata(cls, metadata) -> "Event":
        return cls(METADATA, metadata.to_json(pretty=True))

    @classmethod
    def status(cls, status: str) -> "Event":
        return cls(STATUS, status)

    @classmethod
    def keepalive(cls) -> "Event":
        return cls(KEEPALIVE)

    @classmethod
    def error(cls, message) -> "Event":
        return cls(ERROR, str(message))

    @property
    def is_end_of_stream(self) -> bool:
        return self.name == POSITION and self.data == END_OF_STREAM

    def encode(self) -> bytes:
        """Serialize as one text/event-stream frame."""
        lines = [f"event: {self.name}"]
        if self.data:
            lines.extend(f"data: {line}" for line in self.data.split("\n"))
        else:
            lines.append(":")
        return ("\n".join(lines) + "\n\n").encode()


class EventChannel:
    """Bounded single-producer, single-consumer event queue."""

    _DONE = object()

    def __init__(self, capacity: int = CHANNEL_CAPACITY):
        self._queue = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        """True once the receiving side has gone away."""
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    # -- sender side --

    async def send(self, event: Event) -> bool:
        """Queue ``event``, waiting for room.  False if the receiver is gone."""
        if self._closed:
            return False
        await self._queue.put(event)
        return True

    async def finish(self):
        """Sender is done; the receiver stops after the queued events."""
        if self._closed or self._finished:
            return
        self._finished = True
        await self._queue.put(self._DONE)

    # -- receiver side --

    def close(self):
        """Receiver is gone.  Drain so a sender blocked on a full queue wakes up."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def receive(self) -> Event | None:
        """Next event, or None once the sender finished (or we closed)."""
        if self._closed:
            return None
        item = await self._queue.get()
        if item is self._DONE:
            return None
        return item


class EventStream:
    """Ordered, possibly empty, possibly infinite, non-restartable events."""

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        raise NotImplementedError

    async def aclose(self):
        """Consumer is done with the stream."""


class Single(EventStream):
    def __init__(self, event: Event | None = None):
        self._event = event

    async def __anext__(self) -> Event:
        if self._event is None:
            raise StopAsyncIteration
        event, self._event = self._event, None
        return event


class Multi(EventStream):
    def __init__(self, channel: EventChannel, task: asyncio.Task | None = None):
        self._channel = channel
        self.task = task

    async def __anext__(self) -> Event:
        event = await self._channel.receive()
        if event is None:
            raise StopAsyncIteration
        return event

    async def aclose(self):
        self._channel.close()


async def write_event_stream(request: web.Request, events: EventStream) -> web.StreamResponse:
    """Drain ``events`` into a text/event-stream response."""
    resp = web.StreamResponse(headers={
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        **CORS_HEADERS,
    })
    await resp.prepare(request)
    try:
        async for event in events:
            await resp.write(event.encode())
        await resp.write_eof()
    except (ConnectionResetError, ConnectionError):
        log.debug("SSE client disconnected: %s", request.path)
    finally:
        await events.aclose()
    return resp
