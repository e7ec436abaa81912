"""Error types and the per-item error wrapper"""

import functools
from typing import Any, Callable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class PrioritySyncError(Exception):
    """Base exception for priority sync errors."""


class PersistenceError(PrioritySyncError):
    """Checkpoint or cache store failure. Fatal for the run."""


class MissingLinkageError(PrioritySyncError):
    """A priority label is present but no label event explains it."""


class UnknownPriorityError(PrioritySyncError, ValueError):
    """A task priority value has no label in the priority mapping."""


class GitHubClientError(PrioritySyncError):
    """GitHub API request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotionClientError(PrioritySyncError):
    """Notion API request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def catching(
    processor: Callable[[T], R],
    on_error: Callable[[Exception, T], Any],
) -> Callable[[T], R | Any]:
    """Wrap an item processor so that a failing item doesn't stop the loop.

    Any exception is handed to ``on_error(exc, item)`` and its return value is
    returned instead. ``PersistenceError`` is never caught: progress tracking
    that can't be trusted must abort the run.
    """

    @functools.wraps(processor)
    def wrapped(item: T):
        try:
            return processor(item)
        except PersistenceError:
            raise
        except Exception as e:
            return on_error(e, item)

    return wrapped
