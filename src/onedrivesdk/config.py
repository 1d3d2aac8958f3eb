"""Client configuration for onedrivesdk."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from onedrivesdk.errors import InvalidArgumentError

DEFAULT_BASE_URL: str = "https://api.onedrive.com/v1.0"

# Upload session byte ranges must be multiples of 320 KiB (except the last one).
CHUNK_ALIGNMENT: int = 320 * 1024
MAX_CHUNK_SIZE: int = 60 * 1024 * 1024
DEFAULT_CHUNK_SIZE: int = 16 * CHUNK_ALIGNMENT  # 5 MiB

_ENV_PREFIX = "ONEDRIVESDK_"


def normalize_chunk_size(chunk_size: int) -> int:
    """
    Round chunk_size down to a multiple of CHUNK_ALIGNMENT.

    Raises:
        InvalidArgumentError: if chunk_size is not positive, rounds down to zero,
            or exceeds MAX_CHUNK_SIZE.
    """
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool):
        raise InvalidArgumentError("chunk_size must be an int")
    if chunk_size <= 0:
        raise InvalidArgumentError(
            "chunk_size must be positive",
            details={"chunk_size": chunk_size},
        )
    if chunk_size > MAX_CHUNK_SIZE:
        raise InvalidArgumentError(
            "chunk_size exceeds the upload session limit",
            details={"chunk_size": chunk_size, "max": MAX_CHUNK_SIZE},
        )

    aligned = chunk_size - (chunk_size % CHUNK_ALIGNMENT)
    if aligned == 0:
        raise InvalidArgumentError(
            f"chunk_size must be at least {CHUNK_ALIGNMENT} bytes",
            details={"chunk_size": chunk_size, "alignment": CHUNK_ALIGNMENT},
        )
    return aligned


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff shared by uploads and synchronous calls."""

    max_retries: int = 3
    initial_delay_sec: float = 1.0
    max_delay_sec: float = 30.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise InvalidArgumentError("max_retries must be >= 0")
        if self.initial_delay_sec < 0 or self.max_delay_sec < 0:
            raise InvalidArgumentError("retry delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        delay = self.initial_delay_sec * (2 ** max(attempt - 1, 0))
        return min(delay, self.max_delay_sec)


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """
    Settings shared by every component built on one TransferContext.

    Attributes:
        base_url: API root joined with relative resource paths.
        chunk_size: Upload chunk size; rounded down to CHUNK_ALIGNMENT.
        request_timeout_sec: Deadline for a single HTTP request.
        max_workers: Worker threads (and pooled connections per host).
        download_buffer_size: Bytes written per iteration when streaming.
        conflict_behavior: Optional "@name.conflictBehavior" for new uploads
            ("fail", "replace" or "rename").
        retry: Backoff policy for retryable failures.
    """

    base_url: str = DEFAULT_BASE_URL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    request_timeout_sec: float = 30.0
    max_workers: int = 8
    download_buffer_size: int = 64 * 1024
    conflict_behavior: Optional[str] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if not isinstance(self.base_url, str) or not self.base_url.startswith(("http://", "https://")):
            raise InvalidArgumentError("base_url must be an http(s) URL")
        normalize_chunk_size(self.chunk_size)
        if self.request_timeout_sec <= 0:
            raise InvalidArgumentError("request_timeout_sec must be positive")
        if self.max_workers < 1:
            raise InvalidArgumentError("max_workers must be >= 1")
        if self.download_buffer_size < 1:
            raise InvalidArgumentError("download_buffer_size must be >= 1")
        if self.conflict_behavior not in (None, "fail", "replace", "rename"):
            raise InvalidArgumentError(
                "conflict_behavior must be one of fail/replace/rename",
                details={"conflict_behavior": self.conflict_behavior},
            )

    @property
    def aligned_chunk_size(self) -> int:
        return normalize_chunk_size(self.chunk_size)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build a config from ONEDRIVESDK_* environment variables.

        Recognized: BASE_URL, CHUNK_SIZE, REQUEST_TIMEOUT_SEC, MAX_WORKERS,
        CONFLICT_BEHAVIOR, RETRY_MAX, RETRY_INITIAL_DELAY_SEC.
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(_ENV_PREFIX + name)
            return value if value else None

        try:
            retry = RetryPolicy(
                max_retries=int(get("RETRY_MAX") or 3),
                initial_delay_sec=float(get("RETRY_INITIAL_DELAY_SEC") or 1.0),
            )
            return cls(
                base_url=get("BASE_URL") or DEFAULT_BASE_URL,
                chunk_size=int(get("CHUNK_SIZE") or DEFAULT_CHUNK_SIZE),
                request_timeout_sec=float(get("REQUEST_TIMEOUT_SEC") or 30.0),
                max_workers=int(get("MAX_WORKERS") or 8),
                conflict_behavior=get("CONFLICT_BEHAVIOR"),
                retry=retry,
            )
        except ValueError as exc:
            raise InvalidArgumentError(
                "Invalid ONEDRIVESDK_* environment value",
                cause=exc,
            ) from exc
