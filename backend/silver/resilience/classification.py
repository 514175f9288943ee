"""Retriable vs. permanent error classification for breaker retries."""

from __future__ import annotations

import asyncio
import errno

RETRIABLE_ERRNOS = frozenset({
    errno.EBUSY,
    errno.EAGAIN,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
    errno.ENETUNREACH,
    errno.EHOSTUNREACH,
})

PERMANENT_ERRNOS = frozenset({
    errno.ENOENT,
    errno.EACCES,
    errno.ENOTDIR,
    errno.EISDIR,
    errno.EMFILE,
    errno.ENFILE,
    errno.ENOSPC,
    errno.EROFS,
})

PERMANENT_TYPES = (
    FileNotFoundError,
    PermissionError,
    NotADirectoryError,
    IsADirectoryError,
)

_PERMANENT_MARKERS = ("enoent", "eacces", "enotdir", "eisdir", "emfile", "enfile", "enospc", "erofs")
_RETRIABLE_MARKERS = ("timeout", "timed out", "temporary", "temporarily")


def is_retriable(exc: BaseException) -> bool:
    """
    Transient I/O conditions are retriable; missing files, permissions
    and full/read-only disks are not.  Unknown errors default to retriable.
    """
    if isinstance(exc, PERMANENT_TYPES):
        return False
    if isinstance(exc, OSError) and exc.errno is not None:
        if exc.errno in PERMANENT_ERRNOS:
            return False
        if exc.errno in RETRIABLE_ERRNOS:
            return True
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True

    message = str(exc).lower()
    if any(marker in message for marker in _PERMANENT_MARKERS):
        return False
    if any(marker in message for marker in _RETRIABLE_MARKERS):
        return True
    return True


def should_retry(error: BaseException, attempt: int, max_retries: int) -> bool:
    """Determine if a failed attempt should be retried."""
    if attempt >= max_retries:
        return False
    return is_retriable(error)
