"""Classify HTTP responses and transport failures into typed outcomes."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Sequence

from onedrivesdk.errors import (
    HttpErrorInfo,
    InternalError,
    NetworkError,
    OneDriveError,
    ProtocolViolationError,
    RateLimitError,
    RangeNotSatisfiableError,
    ServerError,
    is_retryable,
    map_http_error,
)
from onedrivesdk.models import (
    FatalFailure,
    Outcome,
    PartialRetry,
    RawResponse,
    RetryableFailure,
    Success,
    parse_metadata,
)


class _MalformedEnvelope(ValueError):
    pass


def parse_error_envelope(body: Optional[bytes]) -> Optional[tuple[Optional[str], Optional[str]]]:
    """
    Parse {"error": {"code": ..., "message": ...}}.

    Returns:
        (code, message), or None for an empty body.

    Raises:
        _MalformedEnvelope: if the body is present but not an error envelope.
    """
    if not body or not body.strip():
        return None
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise _MalformedEnvelope("error body is not JSON") from exc

    err = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(err, dict):
        raise _MalformedEnvelope("error body has no 'error' object")

    code = err.get("code")
    message = err.get("message")
    if code is not None and not isinstance(code, str):
        raise _MalformedEnvelope("error.code is not a string")
    if message is not None and not isinstance(message, str):
        raise _MalformedEnvelope("error.message is not a string")
    return code, message


def classify_response(
    status_code: int,
    body: Optional[bytes] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> Outcome:
    """
    Classify one HTTP response.

    Policy:
        - 2xx -> Success
        - 416 -> RetryableFailure (resynchronize the upload offset, no delay)
        - 429 / 5xx -> RetryableFailure (delay from Retry-After when present)
        - otherwise -> FatalFailure carrying the server code/message verbatim;
          an unparsable error body becomes InternalError
    """
    if 200 <= status_code <= 299:
        return Success()

    retryable = status_code in (416, 429) or 500 <= status_code <= 599
    try:
        envelope = parse_error_envelope(body)
    except _MalformedEnvelope as exc:
        if not retryable:
            return FatalFailure(
                InternalError(
                    "Malformed error response body",
                    details={
                        "status_code": status_code,
                        "body": _preview(body),
                    },
                    cause=exc,
                )
            )
        envelope = None

    code, message = envelope if envelope is not None else (None, None)
    error = map_http_error(HttpErrorInfo(status_code=status_code, code=code, message=message))

    if isinstance(error, RangeNotSatisfiableError):
        return RetryableFailure(error, reason="range_not_satisfiable", suggested_delay=0.0)
    if isinstance(error, RateLimitError):
        return RetryableFailure(error, reason="rate_limited", suggested_delay=_retry_after(headers))
    if isinstance(error, ServerError):
        return RetryableFailure(error, reason="server_error", suggested_delay=_retry_after(headers))
    return FatalFailure(error)


def classify_exception(exc: BaseException) -> Outcome:
    """Classify a failure raised instead of a response (transport, local, bug)."""
    if isinstance(exc, NetworkError):
        return RetryableFailure(exc, reason="network")
    if isinstance(exc, OneDriveError):
        if is_retryable(exc):
            return RetryableFailure(exc, reason=type(exc).__name__)
        return FatalFailure(exc)
    return FatalFailure(InternalError("Unexpected error", cause=exc))


def classify_raw(response: RawResponse) -> Outcome:
    return classify_response(response.status_code, response.content, response.headers)


def classify_chunk_response(
    response: RawResponse,
    offset: int,
    length: int,
    total: int,
) -> Outcome:
    """
    Classify the response to one uploaded byte range [offset, offset + length).

    Returns:
        Success(item) for the final chunk, PartialRetry(next_offset) for an
        accepted intermediate chunk, or a failure outcome. The server may keep
        only part of a chunk, so next_offset can fall anywhere in
        [offset, total).
    """
    outcome = classify_raw(response)
    if not isinstance(outcome, Success):
        return outcome

    if response.status_code in (200, 201):
        try:
            item = parse_metadata(response.content)
        except ProtocolViolationError as exc:
            return FatalFailure(exc)
        if offset + length != total:
            return FatalFailure(
                ProtocolViolationError(
                    "Upload completed before the final chunk was sent",
                    details={"offset": offset, "length": length, "total": total},
                )
            )
        return Success(item)

    if response.status_code != 202:
        return FatalFailure(
            ProtocolViolationError(
                "Unexpected status for an upload chunk",
                details={"status_code": response.status_code},
            )
        )

    try:
        next_offset = parse_next_expected_offset(response.json().get("nextExpectedRanges"))
    except (ProtocolViolationError, AttributeError) as exc:
        return FatalFailure(_as_protocol_violation(exc))

    if next_offset < offset:
        return FatalFailure(
            ProtocolViolationError(
                "Server confirmed offset is behind the chunk start",
                details={"offset": offset, "confirmed": next_offset, "total": total},
            )
        )
    if next_offset >= total:
        return FatalFailure(
            ProtocolViolationError(
                "Server expects bytes beyond the file size",
                details={"confirmed": next_offset, "total": total},
            )
        )
    return PartialRetry(next_offset)


def parse_next_expected_offset(ranges: Any) -> int:
    """
    Return the lowest start offset from nextExpectedRanges (["26-", "30-40"]).

    Raises:
        ProtocolViolationError: if ranges is missing, empty or malformed.
    """
    if not isinstance(ranges, Sequence) or isinstance(ranges, str) or not ranges:
        raise ProtocolViolationError(
            "nextExpectedRanges is missing or empty",
            details={"nextExpectedRanges": ranges},
        )

    starts: list[int] = []
    for item in ranges:
        if not isinstance(item, str) or "-" not in item:
            raise ProtocolViolationError(
                "Malformed nextExpectedRanges entry",
                details={"entry": item},
            )
        start = item.split("-", 1)[0].strip()
        if not start.isdigit():
            raise ProtocolViolationError(
                "Malformed nextExpectedRanges entry",
                details={"entry": item},
            )
        starts.append(int(start))
    return min(starts)


def _retry_after(headers: Optional[Mapping[str, str]]) -> Optional[float]:
    if not headers:
        return None
    value = headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _preview(body: Optional[bytes], limit: int = 200) -> str:
    if not body:
        return ""
    return body[:limit].decode("utf-8", errors="replace")


def _as_protocol_violation(exc: Exception) -> ProtocolViolationError:
    if isinstance(exc, ProtocolViolationError):
        return exc
    return ProtocolViolationError("Chunk response body is not a JSON object", cause=exc)
