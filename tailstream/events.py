"""Tagged outcomes pushed by a TailingSource to its listeners."""

from dataclasses import dataclass
from typing import Union

from tailstream.errors import TailError


@dataclass(frozen=True)
class Data:
    payload: bytes | str


@dataclass(frozen=True)
class Error:
    error: TailError

    @property
    def cause(self) -> BaseException:
        return self.error.cause


@dataclass(frozen=True)
class End:
    pass


@dataclass(frozen=True)
class Close:
    pass


TailEvent = Union[Data, Error, End, Close]
