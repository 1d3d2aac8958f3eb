"""OneDriveClient: public facade over transfers and item operations."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar, Union

from onedrivesdk.auth import AuthInfo, OAuthClient
from onedrivesdk.config import ClientConfig
from onedrivesdk.errors import (
    InternalError,
    InvalidArgumentError,
    OneDriveError,
    ProtocolViolationError,
    is_retryable,
)
from onedrivesdk.models import (
    DriveInfo,
    ItemMetadata,
    RawResponse,
    Success,
    parse_drive,
    parse_metadata,
)
from onedrivesdk.network import AsyncRequestClient, Future, TransferContext, classify_raw
from onedrivesdk.pointer import (
    IdPointer,
    Operator,
    Pointer,
    resolve,
    resolve_with_operator,
    to_reference,
)
from onedrivesdk.transfer import DownloadPipeline, UploadSessionManager
from onedrivesdk.transfer.upload import ProgressCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SEARCH_PATH = "/drive/root/view.search"
_SHARED_PATH = "/drive/sharedWithMe"
_EXPAND_CHILDREN = {"expand": "children"}


class OneDriveClient:
    """
    High-level client for one OneDrive account.

    Notes:
        - Transfers (upload_file, download, get_item_async) return Futures.
        - The other item operations are synchronous and retry retryable
          failures with the configured backoff, sleeping on the caller thread.
          They must not be called from a Future listener.
        - The client owns its TransferContext; call close() or use `with`.
    """

    DEFAULT_SCOPES: tuple[str, ...] = ("Files.ReadWrite.All", "offline_access")

    def __init__(
        self,
        auth_info: AuthInfo,
        *,
        config: Optional[ClientConfig] = None,
        scopes: Optional[Sequence[str]] = None,
    ) -> None:
        use_scopes = list(scopes) if scopes is not None else list(self.DEFAULT_SCOPES)
        session = OAuthClient(auth_info).build_session(use_scopes, ensure_valid=True)
        self._setup(TransferContext(session, config=config))

    @classmethod
    def from_session(
        cls,
        session: Any,
        *,
        config: Optional[ClientConfig] = None,
        plain_session: Optional[Any] = None,
    ) -> "OneDriveClient":
        """Create client from a pre-built (authorized) session (useful for tests)."""
        obj = cls.__new__(cls)
        obj._setup(TransferContext(session, config=config, plain_session=plain_session))
        return obj

    def _setup(self, context: TransferContext) -> None:
        self._context = context
        self._requests = AsyncRequestClient(context)
        self._downloads = DownloadPipeline(self._requests, context)

    @property
    def context(self) -> TransferContext:
        return self._context

    @property
    def config(self) -> ClientConfig:
        return self._context.config

    # ----------------------------
    # Transfers
    # ----------------------------
    def upload_file(
        self,
        parent: Pointer,
        local_path: Union[str, os.PathLike],
        *,
        file_name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Future[ItemMetadata]:
        """Upload a local file into the folder `parent` through an upload session."""
        manager = UploadSessionManager(self._requests, self._context, on_progress=on_progress)
        return manager.upload(parent, local_path, file_name=file_name)

    def download(
        self,
        pointer: Pointer,
        destination_dir: Union[str, os.PathLike],
        new_name: Optional[str] = None,
    ) -> Future[Path]:
        return self._downloads.download(pointer, destination_dir, new_name)

    def get_item_async(self, pointer: Pointer, *, expand_children: bool = False) -> Future[ItemMetadata]:
        """Fetch one item without blocking; cancelling the result cancels the request."""
        result: Future[ItemMetadata] = Future()

        def _on_response(fut: Future[RawResponse]) -> None:
            try:
                item = parse_metadata(_checked(fut).content)
            except OneDriveError as exc:
                result.try_set_exception(exc)
                return
            result.try_set_result(item)

        params = _EXPAND_CHILDREN if expand_children else None
        inflight = self._requests.send("GET", resolve(pointer), params=params)
        result.add_listener(lambda f: inflight.cancel() if f.cancelled() else None)
        inflight.add_listener(_on_response)
        return result

    # ----------------------------
    # Drives
    # ----------------------------
    def get_default_drive(self) -> DriveInfo:
        resp = self._execute(lambda: self._call("GET", "/drive"))
        return parse_drive(resp.content)

    def list_drives(self) -> list[DriveInfo]:
        return self._collect("/drives", parse=parse_drive)

    # ----------------------------
    # Item operations
    # ----------------------------
    def get_item(self, pointer: Pointer, *, expand_children: bool = False) -> ItemMetadata:
        """
        Fetch one item.

        With expand_children=True the folder's children are returned inline in
        `ItemMetadata.children` (the service caps that list; use
        list_children() for every page).
        """
        params = _EXPAND_CHILDREN if expand_children else None
        resp = self._execute(lambda: self._call("GET", resolve(pointer), params=params))
        return parse_metadata(resp.content)

    def list_shared(self) -> list[ItemMetadata]:
        """
        Items other users shared with this account, fetched with their children.

        The listing is read first; every item is then fetched concurrently with
        get_item_async. The first failure cancels the remaining fetches and is
        raised.
        """
        entries = self._collect(_SHARED_PATH)
        futures = [
            self.get_item_async(_shared_pointer(entry), expand_children=True)
            for entry in entries
        ]
        items: list[ItemMetadata] = []
        for i, fut in enumerate(futures):
            item, error = fut.wait()
            if error is not None:
                for rest in futures[i + 1:]:
                    rest.cancel()
                raise error
            items.append(item)  # type: ignore[arg-type]
        return items

    def list_children(self, pointer: Pointer) -> list[ItemMetadata]:
        """List a folder's children, following @odata.nextLink pages."""
        return self._collect(resolve_with_operator(pointer, Operator.CHILDREN))

    def search(self, query: str) -> list[ItemMetadata]:
        if not isinstance(query, str) or not query.strip():
            raise InvalidArgumentError("query must be a non-empty string")
        return self._collect(_SEARCH_PATH, params={"q": query})

    def create_folder(
        self,
        parent: Pointer,
        name: str,
        *,
        conflict_behavior: Optional[str] = None,
    ) -> ItemMetadata:
        _require_name(name, "name")
        body: dict[str, Any] = {"name": name, "folder": {}}
        behavior = conflict_behavior or self.config.conflict_behavior
        if behavior:
            body["@name.conflictBehavior"] = behavior
        path = resolve_with_operator(parent, Operator.CHILDREN)
        resp = self._execute(lambda: self._call("POST", path, body=body, expected=(201,)))
        return parse_metadata(resp.content)

    def copy_item(
        self,
        source: Pointer,
        dest_parent: Pointer,
        *,
        new_name: Optional[str] = None,
    ) -> str:
        """
        Start a server-side copy.

        Returns:
            The monitor URL from the Location header; the copy completes
            asynchronously on the server.
        """
        body = _relocation_body(dest_parent, new_name)
        path = resolve_with_operator(source, Operator.ACTION_COPY)
        resp = self._execute(lambda: self._call("POST", path, body=body, expected=(202,)))
        location = resp.headers.get("Location")
        if not location:
            raise ProtocolViolationError(
                "Copy response has no Location header",
                details={"status_code": resp.status_code},
            )
        return location

    def move_item(
        self,
        source: Pointer,
        dest_parent: Pointer,
        *,
        new_name: Optional[str] = None,
    ) -> ItemMetadata:
        body = _relocation_body(dest_parent, new_name)
        resp = self._execute(lambda: self._call("PATCH", resolve(source), body=body))
        return parse_metadata(resp.content)

    def delete_item(self, pointer: Pointer) -> None:
        self._execute(lambda: self._call("DELETE", resolve(pointer), expected=(204,)))

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def close(self, wait: bool = True) -> None:
        self._context.shutdown(wait=wait)

    def __enter__(self) -> "OneDriveClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ----------------------------
    # Internals
    # ----------------------------
    def _collect(
        self,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        parse: Callable[[Any], T] = parse_metadata,  # type: ignore[assignment]
    ) -> list[T]:
        items: list[T] = []
        next_path: Optional[str] = path
        next_params = params
        while next_path:
            page = self._execute(lambda p=next_path, q=next_params: self._call("GET", p, params=q)).json()
            if not isinstance(page, dict):
                raise ProtocolViolationError("Collection page is not a JSON object")
            items.extend(parse(v) for v in _values(page))
            next_path = page.get("@odata.nextLink")
            # nextLink already carries the query string.
            next_params = None
        return items

    def _call(
        self,
        method: str,
        path: str,
        *,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
        expected: Optional[Iterable[int]] = None,
    ) -> RawResponse:
        headers = {}
        data = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body).encode("utf-8")
        resp = _checked(
            self._requests.send(method, path, headers=headers, body=data, params=params)
        )
        if expected is not None and resp.status_code not in tuple(expected):
            raise ProtocolViolationError(
                "Unexpected success status",
                details={"method": method, "path": path, "status_code": resp.status_code},
            )
        return resp

    def _execute(self, func: Callable[[], T]) -> T:
        policy = self.config.retry
        for attempt in range(policy.max_retries + 1):
            try:
                return func()
            except OneDriveError as exc:
                if is_retryable(exc) and attempt < policy.max_retries:
                    delay = policy.delay_for(attempt + 1)
                    logger.warning("Retrying after %s (attempt %d, %.1fs)", exc, attempt + 1, delay)
                    time.sleep(delay)
                    continue
                raise

        raise InternalError("Unexpected retry loop termination")


def _checked(fut: Future[RawResponse]) -> RawResponse:
    value, error = fut.wait()
    if error is not None:
        if isinstance(error, OneDriveError):
            raise error
        raise InternalError("Unexpected request failure", cause=error)
    outcome = classify_raw(value)  # type: ignore[arg-type]
    if not isinstance(outcome, Success):
        raise outcome.error
    return value  # type: ignore[return-value]


def _relocation_body(dest_parent: Pointer, new_name: Optional[str]) -> dict[str, Any]:
    body: dict[str, Any] = {"parentReference": to_reference(dest_parent)}
    if new_name is not None:
        _require_name(new_name, "new_name")
        body["name"] = new_name
    return body


def _shared_pointer(entry: ItemMetadata) -> IdPointer:
    # sharedWithMe entries point at the item in its owner's drive.
    remote = entry.raw.get("remoteItem")
    if isinstance(remote, dict) and isinstance(remote.get("id"), str):
        parent = remote.get("parentReference")
        drive_id = parent.get("driveId") if isinstance(parent, dict) else None
        return IdPointer(remote["id"], drive_id=drive_id if isinstance(drive_id, str) else None)
    return IdPointer(entry.item_id)


def _require_name(name: Any, what: str) -> None:
    if not isinstance(name, str) or not name.strip() or "/" in name:
        raise InvalidArgumentError(
            f"{what} must be a non-empty string without '/'",
            details={what: name},
        )


def _values(page: dict[str, Any]) -> list[Any]:
    values = page.get("value", [])
    if not isinstance(values, list):
        raise ProtocolViolationError("Collection page 'value' is not a list")
    return values
