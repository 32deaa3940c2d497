"""Client-visible event stream and the heartbeat/timeout multiplexer."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from scanchat.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Framing = Literal["sse", "plain"]

STARTING_MESSAGE = "🚀 Starting the scan. It might take a minute."
STILL_WORKING_MESSAGE = "⏳ Still working on it, please hold on..."
SCAN_DONE_MESSAGE = "✅ Scan done! Now processing the results..."
GENERIC_SCAN_ERROR = "🚨 There was a problem during the scan. Please try again."
GENERIC_STREAM_ERROR = "🚨 Something went wrong while streaming the response. Please try again."


@dataclass(frozen=True)
class Progress:
    text: str


@dataclass(frozen=True)
class Chunk:
    data: bytes


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class Error:
    text: str


StreamEvent = Progress | Chunk | Done | Error


def render_event(event: StreamEvent, framing: Framing = "sse") -> bytes:
    """Encode one event for the wire. ``Done`` renders as nothing."""
    match event:
        case Chunk(data=data):
            return data
        case Progress(text=text) | Error(text=text):
            if framing == "plain":
                return f"{text}\n\n".encode("utf-8")
            return f"data: {text}\n\n".encode("utf-8")
        case Done():
            return b""
    raise TypeError(f"Unknown stream event: {event!r}")


class InvocationState(str, Enum):
    STARTED = "started"
    FETCHING = "fetching"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class RacingJob(Generic[T]):
    """Run one awaitable while a heartbeat clock ticks beside it.

    Iterate ``heartbeats()`` to receive one tick per elapsed ``interval``
    while the work is pending. Iteration ends when the work settles or the
    deadline passes; ``state``, ``result`` and ``error`` then describe the
    outcome. The work is cancelled on timeout and whenever the consumer
    stops iterating early.
    """

    def __init__(
        self,
        work: Awaitable[T],
        *,
        interval: float,
        timeout: float | None = None,
    ):
        self._work = work
        self.interval = max(0.001, float(interval))
        self.timeout = float(timeout) if timeout else None
        self.state = InvocationState.STARTED
        self.result: T | None = None
        self.error: BaseException | None = None
        self.elapsed = 0.0

    async def heartbeats(self) -> AsyncIterator[float]:
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.timeout if self.timeout is not None else None
        task: asyncio.Future[T] = asyncio.ensure_future(self._work)
        self.state = InvocationState.FETCHING
        try:
            while True:
                wait_for = self.interval
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        self.state = InvocationState.TIMED_OUT
                        self.elapsed = loop.time() - started
                        return
                    wait_for = min(wait_for, remaining)

                done, _ = await asyncio.wait({task}, timeout=wait_for)
                if done:
                    self._settle(task)
                    self.elapsed = loop.time() - started
                    return
                if wait_for < self.interval:
                    # Woke for the deadline, not for a full heartbeat period.
                    continue
                yield loop.time() - started
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass

    def _settle(self, task: asyncio.Future[T]) -> None:
        if task.cancelled():
            self.state = InvocationState.FAILED
            self.error = asyncio.CancelledError()
            return
        error = task.exception()
        if error is not None:
            self.state = InvocationState.FAILED
            self.error = error
            return
        self.state = InvocationState.COMPLETED
        self.result = task.result()


class EventStream:
    """Write ``StreamEvent`` values to a byte sink.

    The sink is closed exactly once. After ``Done``, after an ``Error`` or
    after ``close()`` further events are dropped.
    """

    def __init__(
        self,
        write: Callable[[bytes], Awaitable[Any]],
        close: Callable[[], Awaitable[Any]],
        framing: Framing = "sse",
    ):
        self._write = write
        self._close = close
        self.framing = framing
        self.closed = False
        self.failed = False

    async def send(self, event: StreamEvent) -> bool:
        """Write one event; returns False once the stream accepts no more."""
        if self.closed:
            log.debug("Dropping event after close", event_type=type(event).__name__)
            return False
        if isinstance(event, Done):
            await self.close()
            return False
        await self._write(render_event(event, self.framing))
        if isinstance(event, Error):
            self.failed = True
            await self.close()
            return False
        return True

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._close()
        except ConnectionResetError:
            log.debug("Client went away before stream close")

    async def pump(
        self, events: AsyncIterator[StreamEvent], failure_text: str = GENERIC_STREAM_ERROR
    ) -> None:
        """Drain ``events`` into the sink, then close it.

        If the source raises, ``failure_text`` is sent as the final error event.
        """
        try:
            async for event in events:
                if not await self.send(event):
                    break
        except ConnectionResetError:
            log.info("Client disconnected during stream")
            self.closed = True
        except Exception:
            log.exception("Event source failed")
            if not self.closed:
                await self.send(Error(failure_text))
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
            await self.close()

