import pytest

from tailstream.config import ReadOptions


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False


class FakeScheduler:
    """Timers that only fire when the test says so."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def after(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def cancel(self, handle):
        handle.cancelled = True

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire(self):
        (timer,) = self.pending
        timer.cancelled = True
        timer.callback()


class FakeWatchHandle:
    def __init__(self, path, on_change, on_error):
        self.path = path
        self._on_change = on_change
        self._on_error = on_error
        self.closed = False

    def change(self):
        if not self.closed:
            self._on_change()

    def fail(self, exc):
        if not self.closed:
            self._on_error(exc)

    def close(self):
        self.closed = True


class FakeWatchService:
    def __init__(self):
        self.handles: list[FakeWatchHandle] = []

    def subscribe(self, path, on_change, on_error):
        handle = FakeWatchHandle(path, on_change, on_error)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> FakeWatchHandle:
        (handle,) = [h for h in self.handles if not h.closed]
        return handle


class FakeReadHandle:
    def __init__(self, path, offset, options: ReadOptions, on_data, on_error, on_end):
        self.path = path
        self.offset = offset
        self.options = options
        self.encoding = options.encoding
        self._on_data = on_data
        self._on_error = on_error
        self._on_end = on_end
        self.paused = False
        self.destroyed = False

    def emit(self, payload, consumed=None):
        if self.destroyed:
            return
        self._on_data(payload, len(payload) if consumed is None else consumed)

    def end(self):
        if not self.destroyed:
            self._on_end()

    def fail(self, exc):
        if not self.destroyed:
            self._on_error(exc)

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def destroy(self):
        self.destroyed = True

    def set_encoding(self, encoding, errors="strict"):
        self.encoding = encoding


class FakeReader:
    def __init__(self):
        self.handles: list[FakeReadHandle] = []

    def open_from(self, path, offset, options, *, on_data, on_error, on_end):
        handle = FakeReadHandle(path, offset, options, on_data, on_error, on_end)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeReadHandle:
        return self.handles[-1]


@pytest.fixture
def watch_service():
    return FakeWatchService()


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def collaborators(watch_service, reader, scheduler):
    return {"watch_service": watch_service, "reader": reader, "scheduler": scheduler}
