"""Tail a growing file as a push-style event source."""

from tailstream.config import TailOptions
from tailstream.errors import ReadFailure, TailError, WatchFailure
from tailstream.events import Close, Data, End, Error, TailEvent
from tailstream.source import SourceState, TailingSource, open_tail

__all__ = [
    "Close",
    "Data",
    "End",
    "Error",
    "ReadFailure",
    "SourceState",
    "TailError",
    "TailEvent",
    "TailOptions",
    "TailingSource",
    "WatchFailure",
    "open_tail",
]
