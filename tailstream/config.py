"""Tail options: dataclass defaults, env vars, optional YAML file, CLI args."""

import codecs
import logging
import os
from dataclasses import dataclass, fields, replace

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

# Option-mapping keys accepted as aliases of TailOptions fields
_ALIASES = {
    "startPaused": "start_paused",
    "highWaterMark": "chunk_size",
}


def _coerce(name: str, value, kind):
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _coerce_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1", "false", "no", "0"):
        return value.lower() in ("true", "yes", "1")
    if value in (0, 1):
        return bool(value)
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class ReadOptions:
    """Snapshot applied to every bounded read. There is never an end bound."""
    encoding: str | None = None
    errors: str = "strict"
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class TailOptions:
    timeout: float = 5.0       # seconds of inactivity, 0 disables
    start: int = 0             # initial byte offset
    start_paused: bool = False
    encoding: str | None = None
    errors: str = "strict"
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        if self.timeout is None:
            object.__setattr__(self, "timeout", 0.0)
        object.__setattr__(self, "timeout", _coerce("timeout", self.timeout, float))
        object.__setattr__(self, "start", _coerce("start", self.start, int))
        object.__setattr__(self, "chunk_size", _coerce("chunk_size", self.chunk_size, int))
        object.__setattr__(self, "start_paused", _coerce_bool("start_paused", self.start_paused))
        if self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")
        if self.start < 0:
            raise ValueError(f"start must be >= 0, got {self.start}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be > 0, got {self.chunk_size}")
        if self.encoding is not None:
            codecs.lookup(self.encoding)  # raises LookupError
            codecs.lookup_error(self.errors)

    @classmethod
    def from_dict(cls, d: dict) -> "TailOptions":
        """Build options from a plain mapping.

        ``end`` is dropped: reads always run to the current end of file.
        Unknown keys are logged and ignored.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in d.items():
            name = _ALIASES.get(key, key)
            if name == "end":
                logger.debug("Ignoring end bound %r, tails always read to EOF", value)
                continue
            if name not in known:
                logger.warning("Unknown tail option %r ignored", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def read_options(self) -> ReadOptions:
        return ReadOptions(
            encoding=self.encoding,
            errors=self.errors,
            chunk_size=self.chunk_size,
        )

    def with_encoding(self, encoding: str | None) -> "TailOptions":
        return replace(self, encoding=encoding)


def load_yaml_config(path: str | None) -> dict:
    """Load tail options from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
        return data
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}


def _env_options() -> dict:
    env = {}
    if "TAIL_TIMEOUT" in os.environ:
        env["timeout"] = float(os.environ["TAIL_TIMEOUT"])
    if "TAIL_START" in os.environ:
        env["start"] = int(os.environ["TAIL_START"])
    if "TAIL_ENCODING" in os.environ:
        env["encoding"] = os.environ["TAIL_ENCODING"] or None
    if "TAIL_CHUNK_SIZE" in os.environ:
        env["chunk_size"] = int(os.environ["TAIL_CHUNK_SIZE"])
    return env


def load_options(cli_args, yaml_data: dict) -> TailOptions:
    """Build TailOptions from defaults <- env vars <- YAML data <- CLI args."""
    merged = _env_options()
    merged.update(yaml_data)

    for name in ("timeout", "start", "encoding", "errors", "chunk_size"):
        value = getattr(cli_args, name, None)
        if value is not None:
            merged[name] = value
    if getattr(cli_args, "start_paused", False):
        merged["start_paused"] = True

    return TailOptions.from_dict(merged)
