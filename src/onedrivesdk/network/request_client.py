"""Single-request asynchronous HTTP client."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests
from google.auth.exceptions import RefreshError

from onedrivesdk.errors import AuthError, NetworkError
from onedrivesdk.models import RawResponse

from .context import TransferContext
from .future import Future

logger = logging.getLogger(__name__)


class AsyncRequestClient:
    """
    Issue one HTTP request per send() on the context's worker pool.

    Notes:
        - No retries here; callers decide based on the classified response.
        - Relative paths are joined with config.base_url; absolute URLs are
          used verbatim.
        - Independent sends may complete in any order.
    """

    def __init__(self, context: TransferContext) -> None:
        self._context = context

    @property
    def context(self) -> TransferContext:
        return self._context

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self._context.config.base_url.rstrip("/") + "/" + path.lstrip("/")

    def send(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        params: Optional[Mapping[str, str]] = None,
        authorize: bool = True,
        stream: bool = False,
        timeout: Optional[float] = None,
    ) -> Future[RawResponse]:
        """
        Send one request.

        Returns:
            Future settled with the RawResponse for any HTTP status, or failed
            with NetworkError (connection/timeout) or AuthError (token refresh).
        """
        url = self.url_for(path)
        session = self._context.session if authorize else self._context.plain_session
        deadline = timeout if timeout is not None else self._context.config.request_timeout_sec
        return self._context.submit(
            self._perform,
            session,
            method.upper(),
            url,
            dict(headers or {}),
            body,
            dict(params) if params else None,
            stream,
            deadline,
        )

    def _perform(
        self,
        session: Any,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes],
        params: Optional[dict[str, str]],
        stream: bool,
        deadline: float,
    ) -> RawResponse:
        logger.debug("%s %s", method, url)
        try:
            resp = session.request(
                method,
                url,
                headers=headers,
                data=body,
                params=params,
                timeout=deadline,
                stream=stream,
            )
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                "Request timed out",
                details={"method": method, "url": url, "timeout": True, "timeout_sec": deadline},
                cause=exc,
            ) from exc
        except (requests.exceptions.RequestException, OSError) as exc:
            raise NetworkError(
                "Network error",
                details={"method": method, "url": url},
                cause=exc,
            ) from exc
        except RefreshError as exc:
            raise AuthError("Failed to refresh OAuth credentials", cause=exc) from exc

        raw = RawResponse.from_requests(resp, stream=stream)
        logger.debug("%s %s -> %d", method, url, raw.status_code)
        return raw

