"""
cloudapi - resilient paginated client for the organization-scoped cloud API.
"""

from .coreutils.cancel import CancellationToken
from .coreutils.env import ClientConfig
from .coreutils.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    Cancelled,
    ContinuationExpired,
    ErrorKind,
    RateLimitExceeded,
    ServerError,
    TransportError,
    UnexpectedStatusError,
    ValidationError,
)
from .coreutils.request import ApiResponse, RequestDescriptor
from .extract.api_client import ApiClient
from .load.batch_writer import BatchWriter, BatchWriteReport, ItemStatus

__version__ = "1.0.0"

__all__ = [
    "ApiClient",
    "ApiError",
    "ApiResponse",
    "AuthenticationError",
    "AuthorizationError",
    "BatchWriteReport",
    "BatchWriter",
    "CancellationToken",
    "Cancelled",
    "ClientConfig",
    "ContinuationExpired",
    "ErrorKind",
    "ItemStatus",
    "RateLimitExceeded",
    "RequestDescriptor",
    "ServerError",
    "TransportError",
    "UnexpectedStatusError",
    "ValidationError",
]
