"""
Error taxonomy shared by both provider adapters.

Adapters raise these; the cache layer is the only place that turns a
ConnectivityError into degraded success. Cancellation is plain
asyncio.CancelledError and is never wrapped.
"""
import asyncio


class AnalyticsError(Exception):
    """Base class for every error surfaced by the analytics core."""

    message = "Analytics request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class NotAuthenticatedError(AnalyticsError):
    """No credential is present for the active provider."""

    message = "Not authenticated"


class InvalidCredentialsError(AnalyticsError):
    """Credentials or server URL were rejected before any network call."""

    message = "Invalid credentials"


class UnauthorizedError(AnalyticsError):
    """The server rejected the credential (HTTP 401)."""

    message = "Unauthorized"


class InvalidResponseError(AnalyticsError):
    """The payload could not be decoded into the expected shape."""

    message = "Invalid server response"


class ServerError(AnalyticsError):
    """Upstream answered with a non-success status other than 401."""

    def __init__(self, status_code: int, message: str | None = None):
        self.status_code = status_code
        super().__init__(message or f"Server error ({status_code})")


class ApiError(AnalyticsError):
    """Human-readable error extracted from an upstream error envelope."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ConnectivityError(AnalyticsError):
    """Timeout, no connection or unreachable host."""

    message = "Network unavailable"


def is_cancellation(exc: BaseException) -> bool:
    """True for errors that mean "the caller gave up", not "the call failed"."""
    return isinstance(exc, asyncio.CancelledError)


def is_session_problem(exc: BaseException) -> bool:
    """True when the UI should prompt for reauthentication."""
    return isinstance(exc, (UnauthorizedError, NotAuthenticatedError))
