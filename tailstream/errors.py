"""Failure types surfaced through Error events."""


class TailError(Exception):
    """Base class for terminal tailing failures.

    ``cause`` is the exception reported by the collaborator that failed.
    """

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause
        self.__cause__ = cause


class WatchFailure(TailError):
    """The change-notification subscription reported an error."""


class ReadFailure(TailError):
    """The bounded reader failed mid-cycle."""
