"""onedrivesdk public API."""

from __future__ import annotations

import logging

from onedrivesdk.auth import AuthInfo, OAuthClient
from onedrivesdk.client import OneDriveClient
from onedrivesdk.config import CHUNK_ALIGNMENT, ClientConfig, RetryPolicy, normalize_chunk_size
from onedrivesdk.errors import (
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
from onedrivesdk.models import DriveInfo, ItemMetadata, UploadSession, parse_drive, parse_metadata
from onedrivesdk.network import AsyncRequestClient, Future, FutureState, TransferContext
from onedrivesdk.pointer import (
    IdPointer,
    Operator,
    PathPointer,
    Pointer,
    resolve,
    resolve_with_operator,
)
from onedrivesdk.transfer import DownloadPipeline, UploadSessionManager, UploadState

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # High-level
    "OneDriveClient",
    "ClientConfig",
    "RetryPolicy",
    "CHUNK_ALIGNMENT",
    "normalize_chunk_size",
    # Auth
    "AuthInfo",
    "OAuthClient",
    # Async engine
    "Future",
    "FutureState",
    "TransferContext",
    "AsyncRequestClient",
    "UploadSessionManager",
    "UploadState",
    "DownloadPipeline",
    # Pointers
    "IdPointer",
    "PathPointer",
    "Pointer",
    "Operator",
    "resolve",
    "resolve_with_operator",
    # Models
    "DriveInfo",
    "ItemMetadata",
    "UploadSession",
    "parse_metadata",
    "parse_drive",
    # Errors
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
