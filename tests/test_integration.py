"""End-to-end tests: real watchdog service, file reader and loop timers."""

import asyncio
import os

import pytest

from tailstream import Close, Data, End, Error, ReadFailure, SourceState, TailError, open_tail
from tailstream.watch import WatchdogWatchService


@pytest.fixture
def watch_service():
    svc = WatchdogWatchService()
    yield svc
    svc.stop()


def _append(path, data: bytes):
    with open(path, "ab") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())


def _data(events) -> bytes:
    return b"".join(e.payload for e in events if isinstance(e, Data))


async def _wait_until(predicate, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_existing_content_then_append_then_timeout(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes(b"A")
    source = open_tail(str(f), {"timeout": 1.0, "start": 0}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await _wait_until(lambda: _data(events) == b"A")
    assert source.offset == 1

    _append(f, b"BC")
    await _wait_until(lambda: _data(events) == b"ABC")
    assert source.offset == 3

    await asyncio.wait_for(source.wait_closed(), timeout=5)
    assert events[-2:] == [End(), Close()]
    assert source.state == SourceState.CLOSED


@pytest.mark.asyncio
async def test_start_offset_reads_tail_of_file(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes(b"0123456789")
    source = open_tail(str(f), {"start": 5, "timeout": 0.05}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await asyncio.wait_for(source.wait_closed(), timeout=5)

    assert _data(events) == b"56789"
    assert events[-2:] == [End(), Close()]
    assert source.offset == 10


@pytest.mark.asyncio
async def test_timeout_fires_on_quiet_file(tmp_path, watch_service):
    f = tmp_path / "quiet.log"
    f.write_bytes(b"")
    loop = asyncio.get_running_loop()
    started = loop.time()
    source = open_tail(str(f), {"timeout": 0.1}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await asyncio.wait_for(source.wait_closed(), timeout=5)
    elapsed = loop.time() - started

    assert 0.1 <= elapsed < 1.0
    assert events == [End(), Close()]


@pytest.mark.asyncio
async def test_existing_content_is_emitted_once(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes(b"existing\n")
    source = open_tail(str(f), {"timeout": 0.3}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await asyncio.wait_for(source.wait_closed(), timeout=5)

    assert _data(events) == b"existing\n"


@pytest.mark.asyncio
async def test_pause_resume_does_not_repeat_bytes(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes(b"hello")
    source = open_tail(str(f), {"timeout": 0}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await _wait_until(lambda: source.offset == 5 and source.state == SourceState.WATCHING)
    source.pause()

    _append(f, b" world")
    await asyncio.sleep(0.3)
    assert _data(events) == b"hello"

    source.resume()
    await _wait_until(lambda: _data(events) == b"hello world")

    _append(f, b"!")
    await _wait_until(lambda: _data(events) == b"hello world!")
    assert source.offset == 12

    source.destroy()
    assert events[-1] == Close()
    assert End() not in events


@pytest.mark.asyncio
async def test_text_mode(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes("naïve\n".encode("utf-8"))
    source = open_tail(str(f), {"timeout": 0.2, "encoding": "utf-8"}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await asyncio.wait_for(source.wait_closed(), timeout=5)

    assert [e.payload for e in events if isinstance(e, Data)] == ["naïve\n"]
    assert source.offset == 7


@pytest.mark.asyncio
async def test_missing_file_fails(tmp_path, watch_service):
    source = open_tail(str(tmp_path / "missing.log"), watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await asyncio.wait_for(source.wait_closed(), timeout=5)

    assert isinstance(events[0], Error)
    assert isinstance(events[0].cause, FileNotFoundError)
    assert events[-1] == Close()
    assert len([e for e in events if isinstance(e, Close)]) == 1


@pytest.mark.asyncio
async def test_deleting_the_file_fails(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes(b"x")
    source = open_tail(str(f), {"timeout": 0}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)
    await _wait_until(lambda: source.offset == 1 and source.state == SourceState.WATCHING)

    f.unlink()
    await asyncio.wait_for(source.wait_closed(), timeout=5)

    errors = [e for e in events if isinstance(e, Error)]
    assert len(errors) == 1
    # A read racing the delete event can report the removal first
    assert isinstance(errors[0].error, TailError)
    assert isinstance(errors[0].cause, FileNotFoundError)
    assert events[-1] == Close()


@pytest.mark.asyncio
async def test_undecodable_bytes_fail_with_read_failure(tmp_path, watch_service):
    f = tmp_path / "app.log"
    f.write_bytes(b"ok\xff\xfebad\n")
    source = open_tail(str(f), {"encoding": "utf-8", "timeout": 0}, watch_service=watch_service)
    events = []
    source.add_listener(events.append)

    await asyncio.wait_for(source.wait_closed(), timeout=5)

    assert len(events) == 2
    assert isinstance(events[0], Error)
    assert isinstance(events[0].error, ReadFailure)
    assert isinstance(events[0].cause, UnicodeDecodeError)
    assert events[1] == Close()
    assert source.state == SourceState.CLOSED
    assert source.offset == 0
