"""Raw HTTP response handed from the request client to its callers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from requests.structures import CaseInsensitiveDict

from onedrivesdk.errors import ProtocolViolationError


@dataclass(slots=True)
class RawResponse:
    """
    Status, headers and body of one HTTP exchange.

    For streamed requests `content` is empty until the caller consumes the
    body through `iter_content`, and the caller must `close()` it.
    """

    status_code: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    content: bytes = b""
    url: str = ""
    stream: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code <= 299

    def json(self) -> Any:
        try:
            return json.loads(self.content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ProtocolViolationError(
                "Response body is not valid JSON",
                details={"status_code": self.status_code, "url": self.url},
                cause=exc,
            ) from exc

    def iter_content(self, chunk_size: int) -> Iterator[bytes]:
        if self.stream is None:
            if self.content:
                yield self.content
            return
        yield from self.stream.iter_content(chunk_size=chunk_size)

    def read_all(self) -> bytes:
        """Consume a streamed body into `content` (used for error bodies)."""
        if self.stream is not None and not self.content:
            self.content = self.stream.content or b""
        return self.content

    def close(self) -> None:
        if self.stream is not None:
            self.stream.close()
            self.stream = None

    @classmethod
    def from_requests(cls, resp: Any, *, stream: bool = False) -> "RawResponse":
        return cls(
            status_code=int(resp.status_code),
            headers=CaseInsensitiveDict(resp.headers or {}),
            content=b"" if stream else (resp.content or b""),
            url=str(resp.url or ""),
            stream=resp if stream else None,
        )
