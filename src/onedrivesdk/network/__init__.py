"""Async request orchestration: Future, transfer context, request client, classifier."""

from __future__ import annotations

from .classifier import (
    classify_chunk_response,
    classify_exception,
    classify_raw,
    classify_response,
    parse_error_envelope,
    parse_next_expected_offset,
)
from .context import TransferContext
from .future import Future, FutureState
from .request_client import AsyncRequestClient

__all__ = [
    "Future",
    "FutureState",
    "TransferContext",
    "AsyncRequestClient",
    "classify_response",
    "classify_raw",
    "classify_exception",
    "classify_chunk_response",
    "parse_error_envelope",
    "parse_next_expected_offset",
]
