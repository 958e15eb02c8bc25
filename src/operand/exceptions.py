"""Exception hierarchy for the Operand client.

Every failure surfaces as a subclass of :class:`OperandError`.  Lower-level
causes (httpx, pydantic, OS errors) are chained via ``__cause__``.
"""

from __future__ import annotations


class OperandError(Exception):
    """Base class for all errors raised by this package."""


class RequestBuildError(OperandError):
    """Raised when a request cannot be constructed (bad path or unserializable body)."""


class NetworkError(OperandError):
    """Raised when the HTTP exchange fails before a response is received."""


class RequestFailedError(OperandError):
    """Raised on any response with status >= 400.

    Carries the numeric status, the reason phrase and the raw response body
    so callers can inspect service error detail or decide to retry.
    """

    def __init__(self, status_code: int, reason: str, body: str) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"{status_code} {reason}: {body}".rstrip())


class DecodeError(OperandError):
    """Raised when a response body does not match the expected shape.

    Indicates a protocol mismatch between client and service; not retryable.
    """


class UploadError(OperandError):
    """Raised when reading the local file payload fails mid-upload."""


class WaitCancelledError(OperandError):
    """Raised when the caller's cancellation fires before a wait completes."""
