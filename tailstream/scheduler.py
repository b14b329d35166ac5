"""One-shot timers on the asyncio event loop."""

import asyncio
from typing import Callable, Protocol


class Scheduler(Protocol):
    def after(self, delay: float, callback: Callable[[], None]) -> object: ...

    def cancel(self, handle: object) -> None: ...


class LoopScheduler:
    """Schedules callbacks with ``loop.call_later``."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def after(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(delay, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
