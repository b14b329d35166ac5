"""TailingSource: emits bytes appended to a file, like ``tail -f``."""

import asyncio
import logging
import os
from enum import Enum
from typing import AsyncIterator, Callable, Mapping

from tailstream.config import TailOptions
from tailstream.errors import ReadFailure, TailError, WatchFailure
from tailstream.events import Close, Data, End, Error, TailEvent
from tailstream.reader import FileRangeReader, RangeReader, ReadHandle
from tailstream.scheduler import LoopScheduler, Scheduler
from tailstream.stats import TailStats
from tailstream.watch import WatchHandle, WatchService, default_watch_service

logger = logging.getLogger(__name__)

Listener = Callable[[TailEvent], None]


class SourceState(Enum):
    IDLE = "idle"
    WATCHING = "watching"
    READING = "reading"
    PAUSED = "paused"
    CLOSED = "closed"


class TailingSource:
    """Push-style producer of data appended to ``path``.

    - Every change notification rearms the inactivity killswitch and, if no
      read cycle is running, starts one at ``offset``.
    - A read cycle runs to the current end of file and then releases itself;
      the next notification starts a fresh one.
    - The killswitch firing is the only path that emits End. Every path to
      CLOSED emits Close exactly once, last.

    All methods and callbacks run on one event loop thread.
    """

    def __init__(
        self,
        path: str,
        options: TailOptions,
        *,
        loop: asyncio.AbstractEventLoop,
        watch_service: WatchService,
        reader: RangeReader,
        scheduler: Scheduler,
    ):
        self._path = os.fspath(path)
        self._options = options
        self._read_options = options.read_options()
        self._watch_service = watch_service
        self._reader = reader
        self._scheduler = scheduler

        # Read again on every killswitch reset, so changes apply lazily
        self.timeout = options.timeout

        self._offset = options.start
        self._paused = options.start_paused
        self._readable = True
        self._closed = False

        self._watcher: WatchHandle | None = None
        self._read_handle: ReadHandle | None = None
        self._timer = None

        self._listeners: list[Listener] = []
        self._closed_future: asyncio.Future = loop.create_future()
        self._stats = TailStats()

    @classmethod
    def open(
        cls,
        path: str,
        options: TailOptions | Mapping | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        watch_service: WatchService | None = None,
        reader: RangeReader | None = None,
        scheduler: Scheduler | None = None,
    ) -> "TailingSource":
        if options is None:
            options = TailOptions()
        elif not isinstance(options, TailOptions):
            options = TailOptions.from_dict(dict(options))

        if loop is None:
            loop = asyncio.get_running_loop()
        source = cls(
            path,
            options,
            loop=loop,
            watch_service=watch_service or default_watch_service(),
            reader=reader or FileRangeReader(loop),
            scheduler=scheduler or LoopScheduler(loop),
        )
        logger.info("Tailing %s from offset %d (timeout=%.1fs%s)",
                    source.path, options.start, options.timeout or 0,
                    ", paused" if options.start_paused else "")
        if not source._paused:
            source._watch()
        return source

    # -- public surface -------------------------------------------------------

    @property
    def path(self) -> str:
        return self._path

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def options(self) -> TailOptions:
        return self._options

    @property
    def stats(self) -> TailStats:
        return self._stats

    @property
    def readable(self) -> bool:
        return self._readable

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> SourceState:
        if self._closed:
            return SourceState.CLOSED
        if self._paused:
            return SourceState.PAUSED
        if self._read_handle is not None:
            return SourceState.READING
        if self._watcher is not None:
            return SourceState.WATCHING
        return SourceState.IDLE

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def events(self) -> AsyncIterator[TailEvent]:
        """Yield events from now on, up to and including Close."""
        if self._closed:
            return
        queue: asyncio.Queue = asyncio.Queue()
        self.add_listener(queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if isinstance(event, Close):
                    return
        finally:
            self.remove_listener(queue.put_nowait)

    async def wait_closed(self):
        await asyncio.shield(self._closed_future)

    def set_encoding(self, encoding: str | None = "utf-8"):
        """Decode data with ``encoding`` from now on, including a live read cycle."""
        self._options = self._options.with_encoding(encoding)
        self._read_options = self._options.read_options()
        if self._read_handle is not None:
            self._read_handle.set_encoding(encoding, self._options.errors)

    def pause(self):
        if self._closed or self._paused:
            return
        self._paused = True

        self._unwatch()
        self._cancel_killswitch()
        if self._read_handle is not None:
            self._read_handle.pause()
        logger.info("Paused %s at offset %d", self._path, self._offset)

    def resume(self):
        if self._closed or not self._paused:
            return
        self._paused = False
        logger.info("Resuming %s at offset %d", self._path, self._offset)

        self._watch()
        if self._read_handle is not None:
            self._read_handle.resume()

    def destroy(self):
        if self._closed:
            return
        self._teardown()
        self._finish()

    # -- growth watcher -------------------------------------------------------

    def _watch(self):
        self._watcher = self._watch_service.subscribe(
            self._path, self._on_change, self._on_watch_error,
        )
        # Pick up whatever the file already holds
        self._on_change()

    def _unwatch(self):
        if self._watcher is not None:
            self._watcher.close()
            self._watcher = None

    def _on_change(self):
        if self._watcher is None:
            return
        self._stats.record_notification()
        self._reset_killswitch()

        if self._read_handle is None and self._readable:
            self._open_read_cycle()

    def _on_watch_error(self, exc: BaseException):
        self._fail(WatchFailure(self._path, exc))

    # -- offset-tracked reader ------------------------------------------------

    def _open_read_cycle(self):
        self._stats.record_read_cycle()
        logger.debug("Reading %s from offset %d", self._path, self._offset)
        self._read_handle = self._reader.open_from(
            self._path,
            self._offset,
            self._read_options,
            on_data=self._on_chunk,
            on_error=self._on_read_error,
            on_end=self._on_read_end,
        )

    def _on_chunk(self, payload, consumed: int):
        self._offset += consumed
        self._stats.record_chunk(consumed)
        self._emit(Data(payload))

    def _on_read_end(self):
        handle = self._read_handle
        self._read_handle = None
        if handle is not None:
            handle.destroy()
        logger.debug("Caught up with %s at offset %d", self._path, self._offset)

    def _on_read_error(self, exc: BaseException):
        self._fail(ReadFailure(self._path, exc))

    # -- inactivity killswitch ------------------------------------------------

    def _reset_killswitch(self):
        self._cancel_killswitch()
        if self.timeout:
            self._timer = self._scheduler.after(self.timeout, self._on_killswitch)

    def _cancel_killswitch(self):
        if self._timer is not None:
            self._scheduler.cancel(self._timer)
            self._timer = None

    def _on_killswitch(self):
        self._timer = None
        if self._closed:
            return
        logger.info("No changes to %s for %.1fs, ending", self._path, self.timeout)
        self._teardown()
        self._emit(End())
        self._finish()

    # -- teardown -------------------------------------------------------------

    def _fail(self, error: TailError):
        if self._closed:
            return
        logger.error("Tailing %s failed: %s", self._path, error.cause)
        self._teardown()
        self._emit(Error(error))
        self._finish()

    def _teardown(self):
        self._unwatch()
        self._cancel_killswitch()
        if self._read_handle is not None:
            self._read_handle.destroy()
            self._read_handle = None

        self._readable = False
        self._paused = False
        self._closed = True

    def _finish(self):
        self._emit(Close())
        if not self._closed_future.done():
            self._closed_future.set_result(None)
        logger.info("Closed %s at offset %d", self._path, self._offset)

    def _emit(self, event: TailEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on %s event", type(event).__name__)


def open_tail(
    path: str,
    options: TailOptions | Mapping | None = None,
    **collaborators,
) -> TailingSource:
    """Open a TailingSource on ``path``. Requires a running loop unless ``loop`` is given."""
    return TailingSource.open(path, options, **collaborators)
