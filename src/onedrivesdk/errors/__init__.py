"""Public error exports for onedrivesdk."""

from __future__ import annotations

from .exceptions import (
    AuthError,
    ClientError,
    ConflictError,
    HttpErrorInfo,
    InternalError,
    InvalidArgumentError,
    InvalidDestinationError,
    InvalidStateError,
    LocalIOError,
    NetworkError,
    NotFoundError,
    OneDriveError,
    PermissionDeniedError,
    ProtocolViolationError,
    RangeNotSatisfiableError,
    RateLimitError,
    ServerError,
    SessionExpiredError,
    TransferCancelledError,
    is_retryable,
    map_http_error,
)

__all__ = [
    "OneDriveError",
    "NetworkError",
    "ServerError",
    "RateLimitError",
    "ClientError",
    "AuthError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "RangeNotSatisfiableError",
    "SessionExpiredError",
    "ProtocolViolationError",
    "LocalIOError",
    "InvalidDestinationError",
    "InternalError",
    "InvalidArgumentError",
    "InvalidStateError",
    "TransferCancelledError",
    "HttpErrorInfo",
    "is_retryable",
    "map_http_error",
]
