"""Resumable chunked upload over a server-issued upload session."""

from __future__ import annotations

import enum
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional, Union

from onedrivesdk.config import RetryPolicy, normalize_chunk_size
from onedrivesdk.errors import (
    InternalError,
    InvalidArgumentError,
    InvalidStateError,
    LocalIOError,
    NotFoundError,
    OneDriveError,
    ProtocolViolationError,
    SessionExpiredError,
)
from onedrivesdk.models import (
    FatalFailure,
    ItemMetadata,
    Outcome,
    PartialRetry,
    RawResponse,
    RetryableFailure,
    Success,
    UploadSession,
    parse_metadata,
)
from onedrivesdk.network import (
    AsyncRequestClient,
    Future,
    TransferContext,
    classify_chunk_response,
    classify_exception,
    classify_raw,
    parse_next_expected_offset,
)
from onedrivesdk.pointer import Pointer, upload_session_path, upload_target_path
from onedrivesdk.util.time import now_utc, parse_rfc3339

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Any]


class UploadState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


_TERMINAL = (UploadState.COMPLETED, UploadState.FAILED)


class UploadSessionManager:
    """
    Upload one local file as a sequence of byte-range chunks.

    State machine:
        UNINITIALIZED -> ACTIVE -> COMPLETED
                     \\        \\-> FAILED
                      \\-> FAILED

    Notes:
        - Chunk N+1 is read and sent only after chunk N was classified; every
          step runs from a Future listener, so no worker ever blocks.
        - After a retryable failure the session status is queried and the
          upload resumes from the server's offset (which may rewind). If the
          status query finds no session while the final chunk was in flight, the
          target item is looked up and accepted when its size matches.
        - More than retry_policy.max_retries consecutive failures fail the
          upload with the last error, unchanged.
        - One instance uploads one file; the file handle is closed exactly once.
    """

    def __init__(
        self,
        requests: AsyncRequestClient,
        context: TransferContext,
        *,
        chunk_size: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        conflict_behavior: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        config = context.config
        self._requests = requests
        self._context = context
        self._chunk_size = normalize_chunk_size(
            chunk_size if chunk_size is not None else config.chunk_size
        )
        self._retry = retry_policy or config.retry
        self._conflict_behavior = conflict_behavior or config.conflict_behavior
        self._on_progress = on_progress

        self._lock = threading.Lock()
        self._state = UploadState.UNINITIALIZED
        self._started = False
        self._future: Future[ItemMetadata] = Future()
        self._session: Optional[UploadSession] = None
        self._file: Optional[BinaryIO] = None
        self._total = 0
        self._api_path = ""
        self._target_path = ""
        self._failures = 0
        self._inflight: Optional[Future[RawResponse]] = None

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def session(self) -> Optional[UploadSession]:
        return self._session

    @property
    def future(self) -> Future[ItemMetadata]:
        return self._future

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def upload(
        self,
        parent: Pointer,
        local_path: Union[str, os.PathLike],
        *,
        file_name: Optional[str] = None,
    ) -> Future[ItemMetadata]:
        """
        Start uploading `local_path` into the folder `parent`.

        Raises:
            InvalidStateError: if this manager was already used.
            InvalidArgumentError: for an invalid name or an empty file.
            LocalIOError: if the file cannot be opened.
        """
        path = Path(local_path)
        name = file_name if file_name is not None else path.name
        api_path = upload_session_path(parent, name)
        target_path = upload_target_path(parent, name)

        with self._lock:
            if self._started:
                raise InvalidStateError("UploadSessionManager instances are single use")
            try:
                fh = open(path, "rb")
            except OSError as exc:
                raise LocalIOError(
                    "Cannot open file for upload",
                    details={"local_path": str(path)},
                    cause=exc,
                ) from exc
            try:
                size = os.fstat(fh.fileno()).st_size
            except OSError as exc:
                fh.close()
                raise LocalIOError(
                    "Cannot stat file for upload",
                    details={"local_path": str(path)},
                    cause=exc,
                ) from exc
            if size == 0:
                fh.close()
                raise InvalidArgumentError(
                    "Upload sessions cannot carry an empty file",
                    details={"local_path": str(path)},
                )
            self._started = True
            self._file = fh
            self._total = size
            self._api_path = api_path
            self._target_path = target_path

        logger.debug("Uploading %s (%d bytes) via %s", path, size, api_path)
        self._future.add_listener(self._on_future_settled)
        self._run_step(self._create_session)
        return self._future

    # ----------------------------
    # Steps
    # ----------------------------
    def _create_session(self) -> None:
        body: dict[str, Any] = {}
        if self._conflict_behavior:
            body["item"] = {"@name.conflictBehavior": self._conflict_behavior}
        fut = self._requests.send(
            "POST",
            self._api_path,
            headers={"Content-Type": "application/json"},
            body=json.dumps(body).encode("utf-8"),
        )
        self._track(fut, self._on_session_created)

    def _on_session_created(self, fut: Future[RawResponse]) -> None:
        outcome = _classify(fut, classify_raw)
        if isinstance(outcome, Success):
            session = self._parse_session(fut.result())
            with self._lock:
                if self._state in _TERMINAL:
                    return
                self._session = session
                self._state = UploadState.ACTIVE
            self._failures = 0
            logger.info(
                "Upload session created for %s (%d bytes, chunk %d, expires %s)",
                self._api_path,
                session.total_size,
                session.chunk_size,
                session.expiration_time.isoformat(),
            )
            self._send_chunk()
            return
        self._handle_failure(outcome, self._create_session)

    def _send_chunk(self) -> None:
        session = self._require_session()
        if session.is_expired(now_utc()):
            self._fail(
                SessionExpiredError(
                    "Upload session expired",
                    details={"expiration_time": session.expiration_time.isoformat()},
                )
            )
            return

        offset = session.next_offset
        length = session.next_chunk_length()
        data = self._read_chunk(offset, length)
        if data is None:
            return

        logger.debug("PUT %s", session.content_range(offset, length))
        fut = self._requests.send(
            "PUT",
            session.upload_url,
            headers={"Content-Range": session.content_range(offset, length)},
            body=data,
            authorize=False,
        )
        self._track(fut, lambda f: self._on_chunk_done(f, offset, length))

    def _on_chunk_done(self, fut: Future[RawResponse], offset: int, length: int) -> None:
        session = self._require_session()
        outcome = _classify(
            fut,
            lambda resp: classify_chunk_response(resp, offset, length, session.total_size),
        )
        if isinstance(outcome, Success):
            self._complete(outcome.payload)
            return
        if isinstance(outcome, PartialRetry):
            session.next_offset = outcome.next_offset
            self._failures = 0
            self._report_progress(outcome.next_offset)
            self._send_chunk()
            return
        self._handle_failure(outcome, self._query_status)

    def _query_status(self) -> None:
        session = self._require_session()
        fut = self._requests.send("GET", session.upload_url, authorize=False)
        self._track(fut, self._on_status_done)

    def _on_status_done(self, fut: Future[RawResponse]) -> None:
        outcome = _classify(fut, classify_raw)
        if (
            isinstance(outcome, FatalFailure)
            and isinstance(outcome.error, NotFoundError)
            and self._final_chunk_in_flight()
        ):
            # The server may have stored the last chunk and closed the session.
            self._lookup_uploaded_item(outcome.error)
            return
        if not isinstance(outcome, Success):
            self._handle_failure(outcome, self._query_status)
            return

        session = self._require_session()
        payload = fut.result().json()
        if not isinstance(payload, dict):
            raise ProtocolViolationError("Upload session status is not a JSON object")
        offset = parse_next_expected_offset(payload.get("nextExpectedRanges"))
        if not 0 <= offset < session.total_size:
            raise ProtocolViolationError(
                "Upload session status reports an offset outside the file",
                details={"offset": offset, "total": session.total_size},
            )
        if isinstance(payload.get("expirationDateTime"), str):
            session.expiration_time = _parse_expiration(payload["expirationDateTime"])

        if offset != session.next_offset:
            logger.info(
                "Resynchronized upload offset for %s: %d -> %d",
                self._api_path,
                session.next_offset,
                offset,
            )
        session.next_offset = offset
        self._send_chunk()

    def _lookup_uploaded_item(self, status_error: NotFoundError) -> None:
        fut = self._requests.send("GET", self._target_path)
        self._track(fut, lambda f: self._on_lookup_done(f, status_error))

    def _on_lookup_done(self, fut: Future[RawResponse], status_error: NotFoundError) -> None:
        outcome = _classify(fut, classify_raw)
        if isinstance(outcome, RetryableFailure):
            self._handle_failure(outcome, lambda: self._lookup_uploaded_item(status_error))
            return
        if not isinstance(outcome, Success):
            self._fail(status_error)
            return
        item = parse_metadata(fut.result().content)
        if item.size != self._total:
            logger.warning(
                "Item at %s does not match the upload (size %s, expected %d)",
                self._target_path,
                item.size,
                self._total,
            )
            self._fail(status_error)
            return
        logger.info("Upload session closed after the final chunk; found %s", self._target_path)
        self._complete(item)

    # ----------------------------
    # Transitions
    # ----------------------------
    def _handle_failure(self, outcome: Outcome, retry_step: Callable[[], None]) -> None:
        if isinstance(outcome, RetryableFailure):
            self._failures += 1
            if self._failures > self._retry.max_retries:
                logger.warning(
                    "Giving up on %s after %d consecutive failures",
                    self._api_path,
                    self._failures,
                )
                self._fail(outcome.error)
                return
            delay = outcome.suggested_delay
            if delay is None:
                delay = self._retry.delay_for(self._failures)
            logger.warning(
                "Retryable upload failure for %s (%s), attempt %d/%d in %.1fs",
                self._api_path,
                outcome.reason,
                self._failures,
                self._retry.max_retries,
                delay,
            )
            self._context.call_later(delay, lambda: self._run_step(retry_step))
            return
        if isinstance(outcome, FatalFailure):
            self._fail(outcome.error)
            return
        self._fail(InternalError("Unexpected outcome", details={"outcome": repr(outcome)}))

    def _complete(self, item: ItemMetadata) -> None:
        with self._lock:
            if self._state in _TERMINAL:
                return
            self._state = UploadState.COMPLETED
            if self._session is not None:
                self._session.next_offset = self._session.total_size
        self._release()
        self._report_progress(self._total)
        logger.info("Upload completed: %s (id=%s)", self._api_path, item.item_id)
        self._future.try_set_result(item)

    def _fail(self, error: OneDriveError) -> None:
        with self._lock:
            if self._state in _TERMINAL:
                return
            self._state = UploadState.FAILED
        self._release()
        logger.warning("Upload failed: %s: %s", self._api_path, error)
        self._future.try_set_exception(error)

    def _abort_if_cancelled(self) -> bool:
        """Stop the state machine once the public Future settled from outside."""
        if not self._future.done():
            return False
        with self._lock:
            if self._state not in _TERMINAL:
                self._state = UploadState.FAILED
                logger.info("Upload cancelled: %s", self._api_path)
        self._release()
        return True

    def _on_future_settled(self, fut: Future[ItemMetadata]) -> None:
        if not fut.cancelled():
            return
        inflight = self._inflight
        if inflight is not None:
            inflight.cancel()
        self._abort_if_cancelled()

    # ----------------------------
    # Internals
    # ----------------------------
    def _track(self, fut: Future[RawResponse], handler: Callable[[Future[RawResponse]], None]) -> None:
        self._inflight = fut
        # Each step starts from a fresh worker call so fast responses never nest.
        fut.add_listener(
            lambda f: self._context.call_later(0, lambda: self._run_step(lambda: handler(f)))
        )

    def _run_step(self, step: Callable[[], None]) -> None:
        if self._abort_if_cancelled():
            return
        try:
            step()
        except OneDriveError as exc:
            self._fail(exc)
        except Exception as exc:
            self._fail(InternalError("Upload state machine error", cause=exc))

    def _read_chunk(self, offset: int, length: int) -> Optional[bytes]:
        fh = self._file
        if fh is None:
            self._abort_if_cancelled()
            return None
        try:
            fh.seek(offset)
            data = fh.read(length)
        except (OSError, ValueError) as exc:
            self._fail(LocalIOError("Failed to read chunk from local file", cause=exc))
            return None
        if len(data) != length:
            self._fail(
                LocalIOError(
                    "Local file changed size during upload",
                    details={"offset": offset, "expected": length, "read": len(data)},
                )
            )
            return None
        return data

    def _release(self) -> None:
        with self._lock:
            fh = self._file
            self._file = None
        if fh is not None:
            fh.close()

    def _final_chunk_in_flight(self) -> bool:
        session = self._session
        if session is None:
            return False
        return session.next_offset + session.next_chunk_length() == session.total_size

    def _require_session(self) -> UploadSession:
        if self._session is None:
            raise InvalidStateError("Upload session is not initialized")
        return self._session

    def _parse_session(self, resp: RawResponse) -> UploadSession:
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ProtocolViolationError("Upload session response is not a JSON object")
        upload_url = payload.get("uploadUrl")
        expiration = payload.get("expirationDateTime")
        if not isinstance(upload_url, str) or not upload_url:
            raise ProtocolViolationError("Upload session response has no uploadUrl")
        if not isinstance(expiration, str):
            raise ProtocolViolationError("Upload session response has no expirationDateTime")
        return UploadSession(
            upload_url=upload_url,
            total_size=self._total,
            chunk_size=self._chunk_size,
            expiration_time=_parse_expiration(expiration),
        )

    def _report_progress(self, confirmed: int) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(confirmed, self._total)
        except Exception:
            logger.exception("Upload progress callback raised")


def _classify(
    fut: Future[RawResponse],
    classify: Callable[[RawResponse], Outcome],
) -> Outcome:
    value, error = fut.wait()
    if error is not None:
        return classify_exception(error)
    return classify(value)  # type: ignore[arg-type]


def _parse_expiration(value: str):
    try:
        return parse_rfc3339(value)
    except ValueError as exc:
        raise ProtocolViolationError(
            "Invalid expirationDateTime",
            details={"expirationDateTime": value},
            cause=exc,
        ) from exc
