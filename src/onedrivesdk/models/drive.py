"""Drive resource returned by /drive and /drives."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from onedrivesdk.errors import ProtocolViolationError


@dataclass(slots=True)
class DriveInfo:
    drive_id: str
    drive_type: Optional[str] = None
    owner_name: Optional[str] = None
    quota_total: Optional[int] = None
    quota_used: Optional[int] = None
    quota_remaining: Optional[int] = None
    quota_deleted: Optional[int] = None
    quota_state: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


def parse_drive(data: Union[bytes, bytearray, str, dict[str, Any]]) -> DriveInfo:
    """
    Map a JSON drive body to DriveInfo.

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
            raise ProtocolViolationError("Drive is not valid JSON", cause=exc) from exc

    if not isinstance(payload, dict):
        raise ProtocolViolationError("Drive must be a JSON object")

    drive_id = payload.get("id")
    if not isinstance(drive_id, str) or not drive_id:
        raise ProtocolViolationError("Drive has no id", details={"keys": sorted(payload.keys())})

    quota = payload.get("quota")
    if not isinstance(quota, dict):
        quota = {}

    # owner is an identitySet: {"user": {"displayName": ...}} or "application"/"device".
    owner_name = None
    owner = payload.get("owner")
    if isinstance(owner, dict):
        for identity in owner.values():
            if isinstance(identity, dict) and isinstance(identity.get("displayName"), str):
                owner_name = identity["displayName"]
                break

    drive_type = payload.get("driveType")
    state = quota.get("state")
    return DriveInfo(
        drive_id=drive_id,
        drive_type=drive_type if isinstance(drive_type, str) else None,
        owner_name=owner_name,
        quota_total=_int_or_none(quota.get("total")),
        quota_used=_int_or_none(quota.get("used")),
        quota_remaining=_int_or_none(quota.get("remaining")),
        quota_deleted=_int_or_none(quota.get("deleted")),
        quota_state=state if isinstance(state, str) else None,
        raw=payload,
    )


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None
