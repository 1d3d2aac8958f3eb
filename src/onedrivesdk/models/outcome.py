"""Typed outcomes produced by the response classifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from onedrivesdk.errors import OneDriveError


@dataclass(frozen=True, slots=True)
class Success:
    """2xx response. For a final upload chunk, `payload` is the uploaded item."""

    payload: Any = None


@dataclass(frozen=True, slots=True)
class PartialRetry:
    """Intermediate chunk accepted; continue from `next_offset`."""

    next_offset: int


@dataclass(frozen=True, slots=True)
class RetryableFailure:
    """Transient failure; `suggested_delay` (seconds) overrides the backoff when set."""

    error: OneDriveError
    reason: str
    suggested_delay: Optional[float] = None


@dataclass(frozen=True, slots=True)
class FatalFailure:
    """Non-retryable failure carrying the error to surface unchanged."""

    error: OneDriveError

    @property
    def code(self) -> Optional[str]:
        return self.error.details.get("code")

    @property
    def message(self) -> str:
        return self.error.details.get("message") or str(self.error)


Outcome = Union[Success, PartialRetry, RetryableFailure, FatalFailure]
