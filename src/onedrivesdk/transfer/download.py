"""Streamed file download into a local directory."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Union

from requests.exceptions import RequestException

from onedrivesdk.errors import (
    InternalError,
    InvalidArgumentError,
    InvalidDestinationError,
    LocalIOError,
    NetworkError,
    OneDriveError,
    ProtocolViolationError,
)
from onedrivesdk.models import RawResponse, Success
from onedrivesdk.network import AsyncRequestClient, Future, TransferContext, classify_raw
from onedrivesdk.pointer import Operator, Pointer, resolve, resolve_with_operator

logger = logging.getLogger(__name__)

_METADATA_SELECT = "name,@content.downloadUrl"


class _DownloadJob:
    """Per-call bookkeeping: the public Future and the request in flight."""

    def __init__(self, destination_dir: Path) -> None:
        self.destination_dir = destination_dir
        self.result: Future[Path] = Future()
        self.inflight: Optional[Future[Any]] = None
        self.lock = threading.Lock()

    def track(self, fut: Future[Any]) -> None:
        with self.lock:
            self.inflight = fut

    def cancel_inflight(self) -> None:
        with self.lock:
            fut = self.inflight
        if fut is not None:
            fut.cancel()


class DownloadPipeline:
    """
    Download remote files into a local directory.

    Flow:
        - without new_name: GET the item's name and pre-signed download URL,
          then stream that URL without credentials;
        - with new_name: stream the item's /content directly.

    Notes:
        - No retries; the caller re-issues a failed download.
        - The local file is created exclusively. A failed or cancelled
          transfer leaves the partial file in place for the caller.
    """

    def __init__(
        self,
        requests: AsyncRequestClient,
        context: TransferContext,
        *,
        buffer_size: Optional[int] = None,
    ) -> None:
        self._requests = requests
        self._context = context
        size = buffer_size if buffer_size is not None else self._context.config.download_buffer_size
        if size <= 0:
            raise InvalidArgumentError("buffer_size must be > 0", details={"buffer_size": size})
        self._buffer_size = size

    def download(
        self,
        pointer: Pointer,
        destination_dir: Union[str, os.PathLike],
        new_name: Optional[str] = None,
    ) -> Future[Path]:
        """
        Start downloading `pointer` into `destination_dir`.

        Raises:
            InvalidDestinationError: destination exists and is not a directory.
            LocalIOError: destination directory cannot be created.
            InvalidArgumentError: new_name is not a plain file name.
        """
        dest = Path(destination_dir)
        if dest.exists() and not dest.is_dir():
            raise InvalidDestinationError(
                "Download destination exists and is not a directory",
                details={"destination": str(dest)},
            )
        if new_name is not None and not _is_plain_name(new_name):
            raise InvalidArgumentError(
                "new_name must be a plain file name",
                details={"new_name": new_name},
            )
        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalIOError(
                "Cannot create download destination",
                details={"destination": str(dest)},
                cause=exc,
            ) from exc

        job = _DownloadJob(dest)
        job.result.add_listener(lambda f: job.cancel_inflight() if f.cancelled() else None)

        if new_name is None:
            fut = self._requests.send("GET", resolve(pointer), params={"select": _METADATA_SELECT})
            self._follow(job, fut, lambda f: self._on_metadata(job, f))
        else:
            target = dest / new_name
            fut = self._requests.send(
                "GET",
                resolve_with_operator(pointer, Operator.CONTENT),
                stream=True,
            )
            self._follow(job, fut, lambda f: self._on_content(job, f, target))
        return job.result

    def _on_metadata(self, job: _DownloadJob, fut: Future[RawResponse]) -> None:
        resp = _response_or_raise(fut)
        _raise_for_status(resp)

        payload = resp.json()
        if not isinstance(payload, dict):
            raise ProtocolViolationError("Item metadata is not a JSON object")
        name = payload.get("name")
        url = payload.get("@content.downloadUrl")
        if not isinstance(name, str) or not _is_plain_name(name):
            raise ProtocolViolationError(
                "Item metadata has no usable name",
                details={"name": name},
            )
        if not isinstance(url, str) or not url:
            raise ProtocolViolationError(
                "Item has no download URL (is it a folder?)",
                details={"name": name},
            )

        target = job.destination_dir / name
        logger.debug("Downloading %s via pre-signed URL", name)
        fut2 = self._requests.send("GET", url, authorize=False, stream=True)
        self._follow(job, fut2, lambda f: self._on_content(job, f, target))

    def _on_content(self, job: _DownloadJob, fut: Future[RawResponse], target: Path) -> None:
        resp = _response_or_raise(fut)
        if not resp.ok:
            try:
                resp.read_all()
            finally:
                resp.close()
            _raise_for_status(resp)

        writer = self._context.submit(self._write, job, resp, target)
        job.track(writer)
        writer.add_listener(lambda f: _settle_from(job.result, f))

    def _write(self, job: _DownloadJob, resp: RawResponse, target: Path) -> Path:
        try:
            fh = open(target, "xb")
        except FileExistsError as exc:
            resp.close()
            raise LocalIOError(
                "Download target already exists",
                details={"local_path": str(target)},
                cause=exc,
            ) from exc
        except OSError as exc:
            resp.close()
            raise LocalIOError(
                "Cannot create download target",
                details={"local_path": str(target)},
                cause=exc,
            ) from exc

        written = 0
        try:
            with fh:
                for block in resp.iter_content(self._buffer_size):
                    if job.result.done():
                        logger.info("Download cancelled: %s", target)
                        return target
                    if block:
                        fh.write(block)
                        written += len(block)
        except RequestException as exc:
            raise NetworkError(
                "Download stream interrupted",
                details={"local_path": str(target), "bytes_written": written},
                cause=exc,
            ) from exc
        except OSError as exc:
            raise LocalIOError(
                "Failed to write downloaded data",
                details={"local_path": str(target), "bytes_written": written},
                cause=exc,
            ) from exc
        finally:
            resp.close()

        logger.info("Downloaded %s (%d bytes)", target, written)
        return target

    def _follow(
        self,
        job: _DownloadJob,
        fut: Future[Any],
        step: Callable[[Future[Any]], None],
    ) -> None:
        job.track(fut)

        def _listener(f: Future[Any]) -> None:
            if job.result.done():
                _discard(f)
                return
            try:
                step(f)
            except OneDriveError as exc:
                job.result.try_set_exception(exc)
            except Exception as exc:
                job.result.try_set_exception(InternalError("Download pipeline error", cause=exc))

        fut.add_listener(_listener)


def _response_or_raise(fut: Future[RawResponse]) -> RawResponse:
    value, error = fut.wait()
    if error is not None:
        if isinstance(error, OneDriveError):
            raise error
        raise InternalError("Unexpected request failure", cause=error)
    return value  # type: ignore[return-value]


def _raise_for_status(resp: RawResponse) -> None:
    outcome = classify_raw(resp)
    if not isinstance(outcome, Success):
        raise outcome.error


def _settle_from(target: Future[Path], source: Future[Path]) -> None:
    value, error = source.wait()
    if error is not None:
        target.try_set_exception(error)
    elif value is not None:
        target.try_set_result(value)


def _discard(fut: Future[Any]) -> None:
    value, _ = fut.wait()
    if isinstance(value, RawResponse):
        value.close()


def _is_plain_name(name: str) -> bool:
    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and os.sep not in name

