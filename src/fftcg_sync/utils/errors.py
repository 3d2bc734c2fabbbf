"""Error taxonomy and classification for sync operations."""

import asyncio
from enum import Enum

from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout as RequestsTimeout


class SyncError(Exception):
    """Base class for all sync engine errors."""

    pass


class TransientError(SyncError):
    """A failure that is expected to succeed when retried (timeouts, overload)."""

    pass


class QuotaExceededError(TransientError):
    """Upstream or store quota exhausted; retried with a longer backoff."""

    pass


class NonRetryableError(SyncError):
    """A failure that will not go away by retrying."""

    pass


class InvalidRecordError(NonRetryableError):
    """An upstream record could not be mapped (e.g. no identifiable card number)."""

    def __init__(self, record_id: str | int | None, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Invalid record {record_id}: {reason}")


class CircuitOpenError(NonRetryableError):
    """Raised without invoking the operation while the circuit breaker is open."""

    pass


class BatchCommitError(SyncError):
    """An atomic batch was rejected; none of its mutations were applied."""

    pass


class CheckpointError(SyncError):
    """Reading or writing a sync checkpoint failed."""

    pass


class CheckpointCorruptedError(CheckpointError):
    """A stored checkpoint exists but cannot be parsed."""

    pass


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ErrorKind(str, Enum):
    """How a failure should be treated by retry logic."""

    RETRYABLE = "retryable"
    QUOTA = "quota"
    NON_RETRYABLE = "non_retryable"


QUOTA_SIGNATURES: tuple[str, ...] = ("RESOURCE_EXHAUSTED", "Quota exceeded")

TRANSIENT_SIGNATURES: tuple[str, ...] = (
    "DEADLINE_EXCEEDED",
    "UNAVAILABLE",
    "ECONNRESET",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "socket hang up",
    "timed out",
    "status 408",
    "status 429",
    "status 500",
    "status 502",
    "status 503",
    "status 504",
)

NON_RETRYABLE_SIGNATURES: tuple[str, ...] = (
    "PERMISSION_DENIED",
    "INVALID_ARGUMENT",
    "NOT_FOUND",
    "ALREADY_EXISTS",
)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify an exception for retry purposes.

    Typed errors win over message signatures. Anything that matches no
    known transient signature is treated as non-retryable.

    Args:
        error: The exception raised by the operation

    Returns:
        ErrorKind for the exception
    """
    if isinstance(error, QuotaExceededError):
        return ErrorKind.QUOTA
    if isinstance(error, TransientError):
        return ErrorKind.RETRYABLE
    if isinstance(error, (NonRetryableError, CheckpointError)):
        return ErrorKind.NON_RETRYABLE
    if isinstance(
        error,
        (RequestsTimeout, RequestsConnectionError, asyncio.TimeoutError, TimeoutError, ConnectionError),
    ):
        return ErrorKind.RETRYABLE

    message = str(error)
    if any(signature in message for signature in QUOTA_SIGNATURES):
        return ErrorKind.QUOTA
    if any(signature in message for signature in NON_RETRYABLE_SIGNATURES):
        return ErrorKind.NON_RETRYABLE
    if any(signature in message for signature in TRANSIENT_SIGNATURES):
        return ErrorKind.RETRYABLE

    return ErrorKind.NON_RETRYABLE


def is_retryable(error: BaseException) -> bool:
    """Return True if the error is worth retrying (transient or quota)."""
    return classify_error(error) is not ErrorKind.NON_RETRYABLE
