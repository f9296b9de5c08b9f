"""Error taxonomy for generation, persistence and quota failures.

Every error carries two messages: a technical one for the logs and a fixed
user-facing one. Backend response bodies only ever end up in the technical
message.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of failure the UI distinguishes."""

    CANCELLED = "cancelled"
    NETWORK = "network"
    BACKEND = "backend"
    AUTH = "auth"
    QUOTA = "quota"
    VALIDATION = "validation"
    STORAGE = "storage"


class Affordance(str, Enum):
    """What the user is offered next to the error message."""

    NONE = "none"
    RETRY = "retry"
    UPGRADE = "upgrade"
    SIGN_IN = "sign_in"


class WriterError(Exception):
    """Base class for all typed writer errors."""

    kind: ErrorKind = ErrorKind.BACKEND
    user_message: str = "An error occurred while processing your request. Please try again."
    affordance: Affordance = Affordance.RETRY

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GenerationCancelled(WriterError):
    """Raised when a request was aborted by the user, navigation or a newer request."""

    kind = ErrorKind.CANCELLED
    user_message = ""
    affordance = Affordance.NONE

    def __init__(self, message: str = "Generation cancelled"):
        super().__init__(message)


class NetworkError(WriterError):
    """Raised when the request could not complete at the transport level."""

    kind = ErrorKind.NETWORK
    user_message = "Network error occurred. Please check your connection and try again."


class BackendError(WriterError):
    """Raised when the generation backend failed for reasons other than quota."""

    kind = ErrorKind.BACKEND


class AuthenticationError(WriterError):
    """Raised when the backend rejected our credentials."""

    kind = ErrorKind.AUTH
    user_message = "Your session has expired. Please sign in again."
    affordance = Affordance.SIGN_IN


class QuotaExceededError(WriterError):
    """Raised when the plan does not allow the action (client gate or server 429)."""

    kind = ErrorKind.QUOTA
    user_message = "You have reached the limit of your current plan. Upgrade to continue."
    affordance = Affordance.UPGRADE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        limit: int | None = None,
        current: int | None = None,
        plan: str | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.limit = limit
        self.current = current
        self.plan = plan


class RateLimitedError(QuotaExceededError):
    """Raised when requests arrive faster than the rate limit allows."""

    user_message = "Rate limit exceeded. Please wait a moment before generating again."
    affordance = Affordance.RETRY

    def __init__(self, message: str, status_code: int | None = None, retry_after: int | None = None):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class InputValidationError(WriterError):
    """Raised before any request is sent when the form input is malformed."""

    kind = ErrorKind.VALIDATION
    user_message = "Please check your input and try again."
    affordance = Affordance.NONE

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class StorageError(WriterError):
    """Raised when a write to the persistence medium failed."""

    kind = ErrorKind.STORAGE
    user_message = "Failed to save data. Please free up some space and try again."


@dataclass(frozen=True)
class Notification:
    """A transient, user-facing message."""

    level: str
    message: str
    kind: ErrorKind | None = None
    affordance: Affordance = Affordance.NONE


def notification_for(exc: BaseException) -> Notification | None:
    """Convert an exception into a notification; cancellation yields None."""
    if isinstance(exc, (GenerationCancelled, asyncio.CancelledError)):
        return None
    if isinstance(exc, WriterError):
        return Notification(
            level="error",
            message=exc.user_message,
            kind=exc.kind,
            affordance=exc.affordance,
        )
    return Notification(
        level="error",
        message=BackendError.user_message,
        kind=ErrorKind.BACKEND,
        affordance=Affordance.RETRY,
    )
