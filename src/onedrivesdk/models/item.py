"""Item metadata returned by the service, mapped into a flat record."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from onedrivesdk.errors import ProtocolViolationError
from onedrivesdk.util.time import parse_rfc3339


@dataclass(slots=True)
class ItemMetadata:
    """
    A drive item (file or folder).

    Only the fields the SDK itself relies on are lifted out; everything the
    service sent is kept in `raw`.
    """

    item_id: str
    name: str

    size: Optional[int] = None
    e_tag: Optional[str] = None
    c_tag: Optional[str] = None
    drive_id: Optional[str] = None
    parent_id: Optional[str] = None
    parent_path: Optional[str] = None
    is_folder: bool = False
    child_count: Optional[int] = None
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    download_url: Optional[str] = None
    children: Optional[list["ItemMetadata"]] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> Optional[str]:
        """Full API path (parent path + name) when the parent path is known."""
        if self.parent_path is None:
            return None
        return f"{self.parent_path}/{self.name}"


def parse_metadata(data: Union[bytes, bytearray, str, dict[str, Any]]) -> ItemMetadata:
    """
    Map a JSON item body to ItemMetadata.

    Raises:
        ProtocolViolationError: if the body is not a JSON object with an id.
    """
    if isinstance(data, dict):
        payload = data
    else:
        try:
            text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
            payload = json.loads(text)
        except (UnicodeDecodeError, ValueError) as exc:
            raise ProtocolViolationError("Item metadata is not valid JSON", cause=exc) from exc

    if not isinstance(payload, dict):
        raise ProtocolViolationError("Item metadata must be a JSON object")

    item_id = payload.get("id")
    if not isinstance(item_id, str) or not item_id:
        raise ProtocolViolationError(
            "Item metadata has no id",
            details={"keys": sorted(payload.keys())},
        )

    parent = payload.get("parentReference")
    if not isinstance(parent, dict):
        parent = {}

    folder = payload.get("folder")
    child_count = None
    if isinstance(folder, dict) and isinstance(folder.get("childCount"), int):
        child_count = folder["childCount"]

    children = None
    if isinstance(payload.get("children"), list):
        # Present only when the request asked for expand=children.
        children = [parse_metadata(child) for child in payload["children"]]

    size = payload.get("size")
    download_url = payload.get("@content.downloadUrl")

    return ItemMetadata(
        item_id=item_id,
        name=_str_or_none(payload.get("name")) or "",
        size=size if isinstance(size, int) and not isinstance(size, bool) else None,
        e_tag=_str_or_none(payload.get("eTag")),
        c_tag=_str_or_none(payload.get("cTag")),
        drive_id=_str_or_none(parent.get("driveId")),
        parent_id=_str_or_none(parent.get("id")),
        parent_path=_str_or_none(parent.get("path")),
        is_folder=isinstance(folder, dict),
        child_count=child_count,
        created_time=_time_or_none(payload.get("createdDateTime")),
        modified_time=_time_or_none(payload.get("lastModifiedDateTime")),
        download_url=download_url if isinstance(download_url, str) else None,
        children=children,
        raw=payload,
    )


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _time_or_none(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return parse_rfc3339(value)
    except ValueError:
        return None
