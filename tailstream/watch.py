"""Change notifications for single files, from watchdog onto the asyncio loop."""

import asyncio
import errno
import logging
import os
import threading
from typing import Callable, Protocol

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class WatchHandle(Protocol):
    def close(self) -> None: ...


class WatchService(Protocol):
    def subscribe(
        self,
        path: str,
        on_change: Callable[[], None],
        on_error: Callable[[BaseException], None],
    ) -> WatchHandle: ...


def _removed_error(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


def _normalize(path) -> str:
    return os.path.abspath(os.fsdecode(path))


class _FileEventHandler(FileSystemEventHandler):
    """Filters directory events down to one file. Runs in the observer thread."""

    def __init__(self, path: str, handle: "WatchdogHandle"):
        super().__init__()
        self._path = path
        self._handle = handle

    def _is_target(self, event, attr: str = "src_path") -> bool:
        return not event.is_directory and _normalize(getattr(event, attr)) == self._path

    def on_modified(self, event):
        if self._is_target(event):
            self._handle.post_change()

    def on_created(self, event):
        if self._is_target(event):
            self._handle.post_change()

    def on_deleted(self, event):
        if self._is_target(event):
            self._handle.post_error(_removed_error(self._path))

    def on_moved(self, event):
        if self._is_target(event):
            self._handle.post_error(_removed_error(self._path))
        elif self._is_target(event, "dest_path"):
            self._handle.post_change()


class WatchdogHandle:
    """A single file subscription. Callbacks always run on ``loop``."""

    def __init__(
        self,
        service: "WatchdogWatchService",
        loop: asyncio.AbstractEventLoop,
        path: str,
        on_change: Callable[[], None],
        on_error: Callable[[BaseException], None],
    ):
        self._service = service
        self._loop = loop
        self._path = path
        self._on_change = on_change
        self._on_error = on_error
        self._closed = False
        self.scheduled = False
        self.handler = _FileEventHandler(path, self)

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def post_change(self):
        self._post(self._deliver_change)

    def post_error(self, exc: BaseException):
        self._post(self._deliver_error, exc)

    def fail_soon(self, exc: BaseException):
        """Report ``exc`` on the next loop iteration. Loop thread only."""
        self._loop.call_soon(self._deliver_error, exc)

    def _post(self, callback, *args):
        if self._closed or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _deliver_change(self):
        if not self._closed:
            self._on_change()

    def _deliver_error(self, exc: BaseException):
        if not self._closed:
            self._on_error(exc)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._service.release(self)


class WatchdogWatchService:
    """Shares one watchdog Observer between file subscriptions.

    Each subscription watches the file's parent directory. Handlers on the
    same directory share one watchdog watch, which is unscheduled when the
    last of them is released.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._observer = None
        self._lock = threading.Lock()
        self._watches: dict[str, tuple[object, int]] = {}

    def subscribe(
        self,
        path: str,
        on_change: Callable[[], None],
        on_error: Callable[[BaseException], None],
    ) -> WatchdogHandle:
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        abs_path = _normalize(path)
        handle = WatchdogHandle(self, loop, abs_path, on_change, on_error)

        if not os.path.isfile(abs_path):
            handle.fail_soon(_removed_error(abs_path))
            return handle

        directory = os.path.dirname(abs_path)
        try:
            with self._lock:
                observer = self._ensure_observer()
                watch = observer.schedule(handle.handler, directory, recursive=False)
                _, count = self._watches.get(directory, (watch, 0))
                self._watches[directory] = (watch, count + 1)
                handle.scheduled = True
        except OSError as exc:
            handle.fail_soon(exc)
            return handle

        logger.debug("Watching %s (directory %s)", abs_path, directory)
        return handle

    def release(self, handle: WatchdogHandle):
        if not handle.scheduled:
            return
        handle.scheduled = False
        directory = os.path.dirname(handle.path)
        with self._lock:
            entry = self._watches.get(directory)
            if entry is None or self._observer is None:
                return
            watch, count = entry
            if count > 1:
                self._observer.remove_handler_for_watch(handle.handler, watch)
                self._watches[directory] = (watch, count - 1)
            else:
                self._observer.unschedule(watch)
                del self._watches[directory]
        logger.debug("Stopped watching %s", handle.path)

    def _ensure_observer(self):
        if self._observer is None:
            self._observer = Observer()
            self._observer.start()
            logger.debug("Started watchdog observer")
        return self._observer

    def stop(self):
        """Stop the observer thread. Existing handles stop receiving events."""
        with self._lock:
            observer = self._observer
            self._observer = None
            self._watches.clear()
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)


_default_service: WatchdogWatchService | None = None
_default_lock = threading.Lock()


def default_watch_service() -> WatchdogWatchService:
    """Process-wide service. Subscriptions bind to the running loop."""
    global _default_service
    with _default_lock:
        if _default_service is None:
            _default_service = WatchdogWatchService()
        return _default_service
