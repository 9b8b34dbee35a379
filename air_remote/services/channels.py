"""
Typed channels between collaborators and the mediator.

EventChannel: collaborators -> mediator. Bounded; producers wait for space.
CommandChannel / AsyncCommandChannel: mediator -> one collaborator. Bounded; offer()
never blocks and drops the oldest pending command when full.
"""
import asyncio
import logging
import queue
from typing import Generic, Iterator, Optional, TypeVar

from air_remote.exceptions.link import ChannelClosed
from air_remote.models.events import Event

log = logging.getLogger("air_remote.channels")

T = TypeVar("T")


class EventChannel:
    """Inbound event stream of the mediator. Lives on one event loop."""

    def __init__(self, maxsize: int = 100, name: str = "events"):
        self.name = name
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop that consumes this channel, for put_threadsafe()"""
        self._loop = loop

    async def put(self, event: Event) -> None:
        if self._closed:
            raise ChannelClosed(self.name)
        await self._queue.put(event)

    def put_threadsafe(self, event: Event) -> None:
        """Blocking put from a collaborator thread"""
        if self._closed or self._loop is None or self._loop.is_closed():
            raise ChannelClosed(self.name)
        try:
            fut = asyncio.run_coroutine_threadsafe(self.put(event), self._loop)
        except RuntimeError as e:
            raise ChannelClosed(self.name) from e
        fut.result()

    async def get(self) -> Event:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True


class CommandChannel(Generic[T]):
    """Outbound commands for a thread-based collaborator"""

    def __init__(self, maxsize: int = 10, name: str = "commands"):
        self.name = name
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, item: T) -> None:
        if self._closed:
            raise ChannelClosed(self.name)
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    dropped = self._queue.get_nowait()
                    log.warning("%s full, dropped %s", self.name, dropped)
                except queue.Empty:
                    pass

    def drain(self) -> Iterator[T]:
        """Yield every pending command without waiting"""
        while True:
            try:
                yield self._queue.get_nowait()
            except queue.Empty:
                return

    def close(self) -> None:
        self._closed = True


class AsyncCommandChannel(Generic[T]):
    """Outbound commands for a coroutine-based collaborator"""

    def __init__(self, maxsize: int = 10, name: str = "commands"):
        self.name = name
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, item: T) -> None:
        if self._closed:
            raise ChannelClosed(self.name)
        if self._queue.full():
            dropped = self._queue.get_nowait()
            log.warning("%s full, dropped %s", self.name, dropped)
        self._queue.put_nowait(item)

    async def get(self) -> T:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True
