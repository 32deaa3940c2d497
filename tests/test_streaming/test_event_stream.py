import asyncio

import pytest

from scanchat.streaming import (
    GENERIC_SCAN_ERROR,
    GENERIC_STREAM_ERROR,
    Chunk,
    Done,
    Error,
    EventStream,
    InvocationState,
    Progress,
    RacingJob,
    render_event,
)


class _Sink:
    def __init__(self, fail_close: bool = False):
        self.writes: list[bytes] = []
        self.closes = 0
        self.fail_close = fail_close

    async def write(self, data: bytes) -> None:
        self.writes.append(data)

    async def close(self) -> None:
        self.closes += 1
        if self.fail_close:
            raise ConnectionResetError("peer gone")

    @property
    def text(self) -> str:
        return b"".join(self.writes).decode("utf-8")


async def _events(*items):
    for item in items:
        yield item


def test_render_event_framings():
    assert render_event(Progress("hi")) == b"data: hi\n\n"
    assert render_event(Progress("hi"), "plain") == b"hi\n\n"
    assert render_event(Error("bad"), "sse") == b"data: bad\n\n"
    assert render_event(Chunk(b"## raw")) == b"## raw"
    assert render_event(Done()) == b""


@pytest.mark.asyncio
async def test_done_closes_once_and_drops_later_events():
    sink = _Sink()
    stream = EventStream(sink.write, sink.close)

    await stream.pump(_events(Progress("one"), Done(), Progress("late")))

    assert sink.text == "data: one\n\n"
    assert sink.closes == 1
    assert stream.failed is False


@pytest.mark.asyncio
async def test_error_is_terminal():
    sink = _Sink()
    stream = EventStream(sink.write, sink.close, framing="plain")

    await stream.pump(_events(Progress("one"), Error("🚨 boom"), Chunk(b"late")))

    assert sink.text == "one\n\n🚨 boom\n\n"
    assert sink.closes == 1
    assert stream.failed is True


@pytest.mark.asyncio
async def test_send_after_close_is_dropped():
    sink = _Sink()
    stream = EventStream(sink.write, sink.close)

    await stream.close()
    await stream.close()

    assert await stream.send(Progress("late")) is False
    assert sink.writes == []
    assert sink.closes == 1


@pytest.mark.asyncio
async def test_failing_source_sends_generic_error():
    async def broken():
        yield Progress("starting")
        raise RuntimeError("source exploded")

    sink = _Sink()
    stream = EventStream(sink.write, sink.close)

    await stream.pump(broken())

    assert sink.text == f"data: starting\n\ndata: {GENERIC_STREAM_ERROR}\n\n"
    assert "scan" not in GENERIC_STREAM_ERROR
    assert sink.closes == 1


@pytest.mark.asyncio
async def test_failing_source_sends_caller_failure_text():
    async def broken():
        yield Chunk(b"partial")
        raise RuntimeError("source exploded")

    sink = _Sink()
    stream = EventStream(sink.write, sink.close, framing="plain")

    await stream.pump(broken(), GENERIC_SCAN_ERROR)

    assert sink.text == f"partial{GENERIC_SCAN_ERROR}\n\n"
    assert stream.failed is True


@pytest.mark.asyncio
async def test_source_without_terminal_event_is_still_closed():
    sink = _Sink()
    stream = EventStream(sink.write, sink.close)

    await stream.pump(_events(Progress("only")))

    assert sink.closes == 1


@pytest.mark.asyncio
async def test_close_tolerates_reset_connection():
    sink = _Sink(fail_close=True)
    stream = EventStream(sink.write, sink.close)

    await stream.pump(_events(Done()))

    assert sink.closes == 1
    assert stream.closed is True


@pytest.mark.asyncio
async def test_racing_job_completes_without_heartbeats_when_fast():
    async def work():
        return "ok"

    job = RacingJob(work(), interval=1.0, timeout=5.0)
    ticks = [tick async for tick in job.heartbeats()]

    assert ticks == []
    assert job.state is InvocationState.COMPLETED
    assert job.result == "ok"


@pytest.mark.asyncio
async def test_racing_job_ticks_while_work_is_pending():
    async def work():
        await asyncio.sleep(0.1)
        return 42

    job = RacingJob(work(), interval=0.02, timeout=2.0)
    ticks = [tick async for tick in job.heartbeats()]

    assert len(ticks) >= 2
    assert ticks == sorted(ticks)
    assert job.state is InvocationState.COMPLETED
    assert job.result == 42


@pytest.mark.asyncio
async def test_racing_job_records_failure():
    async def work():
        raise ValueError("nope")

    job = RacingJob(work(), interval=1.0)
    async for _ in job.heartbeats():
        pass

    assert job.state is InvocationState.FAILED
    assert isinstance(job.error, ValueError)


@pytest.mark.asyncio
async def test_racing_job_times_out_and_cancels_work():
    cancelled = asyncio.Event()

    async def work():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    job = RacingJob(work(), interval=0.02, timeout=0.05)
    async for _ in job.heartbeats():
        pass

    assert job.state is InvocationState.TIMED_OUT
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_racing_job_cancels_work_when_consumer_stops_early():
    cancelled = asyncio.Event()

    async def work():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    job = RacingJob(work(), interval=0.01, timeout=5.0)
    ticks = job.heartbeats()
    async for _ in ticks:
        break
    await ticks.aclose()

    assert cancelled.is_set()
