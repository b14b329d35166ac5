"""Per-source counters for tailing activity."""


class TailStats:
    """Counters updated from the event loop thread only."""

    def __init__(self):
        self._notifications = 0
        self._read_cycles = 0
        self._chunks = 0
        self._bytes = 0

    def record_notification(self):
        self._notifications += 1

    def record_read_cycle(self):
        self._read_cycles += 1

    def record_chunk(self, size: int):
        """Record one forwarded chunk of ``size`` consumed bytes."""
        self._chunks += 1
        self._bytes += size

    @property
    def bytes_emitted(self) -> int:
        return self._bytes

    @property
    def chunks_emitted(self) -> int:
        return self._chunks

    @property
    def read_cycles(self) -> int:
        return self._read_cycles

    def snapshot(self) -> dict:
        return {
            "notifications": self._notifications,
            "read_cycles": self._read_cycles,
            "chunks": self._chunks,
            "bytes": self._bytes,
            "avg_chunk_bytes": self._bytes / self._chunks if self._chunks else 0.0,
        }
