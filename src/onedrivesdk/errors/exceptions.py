"""Exception hierarchy and HTTP error mapping for onedrivesdk."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class OneDriveError(Exception):
    """
    Base exception for onedrivesdk.

    Attributes:
        details: Optional structured information (e.g., HTTP status, error code).
        cause: Optional original exception that triggered this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.cause = cause


class NetworkError(OneDriveError):
    """Raised when a connection failure or timeout prevents the request."""


class ServerError(OneDriveError):
    """Raised for 5xx responses."""


class RateLimitError(OneDriveError):
    """Raised when throttled (HTTP 429)."""


class ClientError(OneDriveError):
    """
    Raised for 4xx responses.

    The server-provided error code and message are kept verbatim.
    """

    @property
    def status_code(self) -> Optional[int]:
        return self.details.get("status_code")

    @property
    def code(self) -> Optional[str]:
        return self.details.get("code")

    @property
    def server_message(self) -> Optional[str]:
        return self.details.get("message")


class AuthError(ClientError):
    """Raised when the token is rejected (HTTP 401) or credentials cannot be refreshed."""


class PermissionDeniedError(ClientError):
    """Raised when access is denied (HTTP 403)."""


class NotFoundError(ClientError):
    """Raised when an item or upload session does not exist (HTTP 404)."""


class ConflictError(ClientError):
    """Raised on name or eTag conflicts (HTTP 409/412)."""


class RangeNotSatisfiableError(ClientError):
    """Raised when an uploaded byte range does not match the session (HTTP 416)."""


class SessionExpiredError(ClientError):
    """Raised when an upload session passed its expiration time."""


class ProtocolViolationError(OneDriveError):
    """Raised when a server response contradicts the expected protocol state."""


class LocalIOError(OneDriveError):
    """Raised on local filesystem failures."""


class InvalidDestinationError(LocalIOError):
    """Raised when a download destination exists and is not a directory."""


class InternalError(OneDriveError):
    """Raised for client-side bugs, e.g. an error body that cannot be parsed."""


class InvalidArgumentError(OneDriveError):
    """Raised for invalid caller input or configuration."""


class InvalidStateError(OneDriveError):
    """Raised when an object is used in an invalid state (e.g., settled twice)."""


class TransferCancelledError(OneDriveError):
    """Set on a Future that was cancelled before it settled."""


@dataclass(frozen=True)
class HttpErrorInfo:
    """Lightweight HTTP error information for mapping to onedrivesdk exceptions."""

    status_code: int
    code: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


def is_retryable(exc: BaseException) -> bool:
    """Return True for errors worth retrying with backoff."""
    return isinstance(exc, (NetworkError, ServerError, RateLimitError, RangeNotSatisfiableError))


def map_http_error(
    info: HttpErrorInfo,
    *,
    cause: Optional[BaseException] = None,
) -> OneDriveError:
    """
    Map an HTTP error to an onedrivesdk exception.

    Policy:
        - 401 -> AuthError
        - 403 -> PermissionDeniedError
        - 404 -> NotFoundError
        - 409/412 -> ConflictError
        - 416 -> RangeNotSatisfiableError
        - 429 -> RateLimitError
        - 5xx -> ServerError
        - otherwise -> ClientError
    """
    details: dict[str, Any] = {
        "status_code": info.status_code,
        "code": info.code,
        "message": info.message,
    }
    if info.details:
        details.update(info.details)

    message = info.message or f"HTTP error {info.status_code}"
    if info.code:
        message = f"{info.code}: {message}"

    if info.status_code == 401:
        return AuthError(message, details=details, cause=cause)
    if info.status_code == 403:
        return PermissionDeniedError(message, details=details, cause=cause)
    if info.status_code == 404:
        return NotFoundError(message, details=details, cause=cause)
    if info.status_code in (409, 412):
        return ConflictError(message, details=details, cause=cause)
    if info.status_code == 416:
        return RangeNotSatisfiableError(message, details=details, cause=cause)
    if info.status_code == 429:
        return RateLimitError(message, details=details, cause=cause)
    if 500 <= info.status_code <= 599:
        return ServerError(message, details=details, cause=cause)

    return ClientError(message, details=details, cause=cause)
