"""
Error taxonomy for the cloud API client.

Every non-success outcome surfaces as one of these exceptions, so callers
branch on type instead of raw status codes.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    TRANSPORT = "transport"
    CONTINUATION_EXPIRED = "continuation_expired"
    CANCELLED = "cancelled"
    UNEXPECTED_STATUS = "unexpected_status"


class ApiError(Exception):
    """Base class for all client errors"""

    kind = ErrorKind.UNEXPECTED_STATUS

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        endpoint: Optional[str] = None,
        body: Any = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.endpoint = endpoint
        self.body = body
        super().__init__(message)

    def __str__(self):
        parts = []
        if self.status_code is not None:
            parts.append(f"[{self.status_code}]")
        if self.code:
            parts.append(f"{self.code}:")
        parts.append(self.message)
        if self.endpoint:
            parts.append(f"({self.endpoint})")
        return " ".join(parts)


class AuthenticationError(ApiError):
    """401: the bearer token is missing, invalid or expired"""

    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(ApiError):
    """403: the token lacks the scope for this operation"""

    kind = ErrorKind.AUTHORIZATION


class ValidationError(ApiError):
    """Caller or input error (400, 404, 409 and other 4xx)"""

    kind = ErrorKind.VALIDATION


class RateLimitExceeded(ApiError):
    """429 after the retry ceiling was reached"""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class ServerError(ApiError):
    """5xx after the retry ceiling was reached"""

    kind = ErrorKind.SERVER


class TransportError(ApiError):
    """Timeout, connection reset or other network-level failure"""

    kind = ErrorKind.TRANSPORT


class ContinuationExpired(ApiError):
    """
    The server rejected a continuation token.

    The stream cannot be resumed; restart it from `descriptor`, the
    original request with its filters.
    """

    kind = ErrorKind.CONTINUATION_EXPIRED

    def __init__(self, message: str, descriptor=None, **kwargs):
        self.descriptor = descriptor
        super().__init__(message, **kwargs)


class Cancelled(ApiError):
    """The caller cancelled the operation or its deadline passed"""

    kind = ErrorKind.CANCELLED


class UnexpectedStatusError(ApiError):
    """A status the request did not expect (e.g. 204 where 200 was required)"""

    kind = ErrorKind.UNEXPECTED_STATUS


_STATUS_ERRORS = {
    401: AuthenticationError,
    403: AuthorizationError,
    429: RateLimitExceeded,
}


def error_for_status(status_code: int) -> type:
    """Map a non-success HTTP status to its exception class"""
    if status_code in _STATUS_ERRORS:
        return _STATUS_ERRORS[status_code]
    if 400 <= status_code < 500:
        return ValidationError
    if status_code >= 500:
        return ServerError
    return UnexpectedStatusError
