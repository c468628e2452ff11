"""Application exception hierarchy."""

from __future__ import annotations

__all__ = (
    "ApplicationError",
    "AstrologerAPIError",
    "EphemerisUnavailableError",
    "QuotaExceededError",
    "is_quota_exceeded_error",
)

# Message emitted by SQLite for SQLITE_FULL.
SQLITE_FULL_MESSAGE = "database or disk is full"


class ApplicationError(Exception):
    """Base exception type for the application."""


class AstrologerAPIError(ApplicationError):
    """The remote chart computation API rejected a request or timed out."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(ApplicationError):
    """The local storage engine has no room for another entry."""


class EphemerisUnavailableError(ApplicationError):
    """No ephemeris day could be computed for the requested range."""


def is_quota_exceeded_error(error: BaseException) -> bool:
    """Check whether ``error`` (or anything it was raised from) is a storage-full error.

    Driver layers wrap the engine's exception, so the whole cause chain is walked.
    """
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, QuotaExceededError):
            return True
        if SQLITE_FULL_MESSAGE in str(current).lower():
            return True
        current = current.__cause__ or current.__context__
    return False
