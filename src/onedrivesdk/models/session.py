"""Upload session state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class UploadSession:
    """
    Server-issued resumable upload context.

    `next_offset` is the first byte the server has not confirmed yet; it is
    owned by the UploadSessionManager driving this session.
    """

    upload_url: str
    total_size: int
    chunk_size: int
    expiration_time: datetime
    next_offset: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.next_offset <= self.total_size:
            raise ValueError("next_offset must be within [0, total_size]")

    @property
    def exhausted(self) -> bool:
        return self.next_offset == self.total_size

    def next_chunk_length(self) -> int:
        return min(self.chunk_size, self.total_size - self.next_offset)

    def content_range(self, offset: int, length: int) -> str:
        """Content-Range header value for `length` bytes starting at `offset`."""
        return f"bytes {offset}-{offset + length - 1}/{self.total_size}"

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiration_time
