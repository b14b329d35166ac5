"""Bounded byte-range reader: streams a file from an offset to its current end."""

import asyncio
import codecs
import logging
from typing import Callable, Protocol

from tailstream.config import ReadOptions

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes | str, int], None]


class ReadHandle(Protocol):
    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def destroy(self) -> None: ...

    def set_encoding(self, encoding: str | None, errors: str = "strict") -> None: ...


class RangeReader(Protocol):
    def open_from(
        self,
        path: str,
        offset: int,
        options: ReadOptions,
        *,
        on_data: DataCallback,
        on_error: Callable[[BaseException], None],
        on_end: Callable[[], None],
    ) -> ReadHandle: ...


def _make_decoder(encoding: str | None, errors: str):
    if encoding is None:
        return None
    return codecs.getincrementaldecoder(encoding)(errors)


class FileReadHandle:
    """One read cycle over ``path`` starting at ``offset``.

    Reads one chunk per event loop step. ``on_data`` receives the payload and
    the number of file bytes it accounts for. With an encoding, a trailing
    partial character is not counted as consumed, so ``position`` always sits
    on a character boundary. No callback fires after ``destroy()``.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        path: str,
        offset: int,
        options: ReadOptions,
        on_data: DataCallback,
        on_error: Callable[[BaseException], None],
        on_end: Callable[[], None],
    ):
        self._loop = loop
        self._path = path
        self._position = offset
        self._chunk_size = options.chunk_size
        self._decoder = _make_decoder(options.encoding, options.errors)
        self._on_data = on_data
        self._on_error = on_error
        self._on_end = on_end
        self._file = None
        self._step_handle: asyncio.Handle | None = None
        self._paused = False
        self._done = False

    @property
    def position(self) -> int:
        return self._position

    @property
    def done(self) -> bool:
        return self._done

    def start(self):
        self._schedule()

    def pause(self):
        self._paused = True
        self._cancel_step()

    def resume(self):
        if not self._paused:
            return
        self._paused = False
        self._schedule()

    def destroy(self):
        self._done = True
        self._cancel_step()
        self._close_file()

    def set_encoding(self, encoding: str | None, errors: str = "strict"):
        """Decode everything after the last consumed byte with ``encoding``."""
        self._decoder = _make_decoder(encoding, errors)
        if self._file is not None:
            # Drop bytes buffered by the old decoder
            self._file.seek(self._position)

    def _schedule(self):
        if self._done or self._paused or self._step_handle is not None:
            return
        self._step_handle = self._loop.call_soon(self._step)

    def _cancel_step(self):
        if self._step_handle is not None:
            self._step_handle.cancel()
            self._step_handle = None

    def _close_file(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def _step(self):
        self._step_handle = None
        if self._done or self._paused:
            return

        try:
            if self._file is None:
                self._file = open(self._path, "rb")
                self._file.seek(self._position)
            raw = self._file.read(self._chunk_size)
            read_to = self._file.tell()
            if raw and self._decoder is not None:
                payload = self._decoder.decode(raw)
                pending, _ = self._decoder.getstate()
                read_to -= len(pending)
            else:
                payload = raw
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Read of %s failed at %d: %s", self._path, self._position, exc)
            self.destroy()
            self._on_error(exc)
            return

        if not raw:
            self.destroy()
            self._on_end()
            return

        consumed = read_to - self._position
        if payload:
            self._position = read_to
            self._on_data(payload, consumed)
        self._schedule()


class FileRangeReader:
    """Opens FileReadHandles driven by ``loop``."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def open_from(
        self,
        path: str,
        offset: int,
        options: ReadOptions,
        *,
        on_data: DataCallback,
        on_error: Callable[[BaseException], None],
        on_end: Callable[[], None],
    ) -> FileReadHandle:
        handle = FileReadHandle(self._loop, path, offset, options, on_data, on_error, on_end)
        handle.start()
        return handle
