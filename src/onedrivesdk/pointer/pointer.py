"""Item pointers: logical references to remote items by id or by path."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from onedrivesdk.errors import InvalidArgumentError


class Operator(str, Enum):
    """Sub-resource or action selected on a resolved item path (wire strings)."""

    CONTENT = "content"
    CHILDREN = "children"
    ACTION_COPY = "action.copy"
    UPLOAD_CREATE_SESSION = "upload.createSession"


@dataclass(frozen=True, slots=True)
class IdPointer:
    """Item addressed by its opaque id, optionally on a specific drive."""

    item_id: str
    drive_id: Optional[str] = None

    def __post_init__(self) -> None:
        _require_text(self.item_id, "item_id")
        if self.drive_id is not None:
            _require_text(self.drive_id, "drive_id")


@dataclass(frozen=True, slots=True)
class PathPointer:
    """
    Item addressed by its path below the drive root.

    `segments` holds the unencoded path components; an empty tuple is the root.
    """

    segments: tuple[str, ...] = ()
    drive_id: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.segments, str):
            raise InvalidArgumentError("segments must be a sequence of names; use PathPointer.from_path")
        object.__setattr__(self, "segments", tuple(self.segments))
        for segment in self.segments:
            _require_segment(segment)
        if self.drive_id is not None:
            _require_text(self.drive_id, "drive_id")

    @classmethod
    def from_path(cls, path: str, *, drive_id: Optional[str] = None) -> "PathPointer":
        """Build from a slash separated path such as "/Documents/report.pdf"."""
        if not isinstance(path, str):
            raise InvalidArgumentError("path must be a string")
        return cls(tuple(p for p in path.split("/") if p), drive_id=drive_id)

    @classmethod
    def root(cls, *, drive_id: Optional[str] = None) -> "PathPointer":
        return cls((), drive_id=drive_id)

    @property
    def is_root(self) -> bool:
        return not self.segments

    @property
    def name(self) -> Optional[str]:
        return self.segments[-1] if self.segments else None


Pointer = Union[IdPointer, PathPointer]


def _require_text(value: object, what: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{what} must be a non-empty string")


def _require_segment(segment: object) -> None:
    if not isinstance(segment, str) or not segment:
        raise InvalidArgumentError("path segments must be non-empty strings")
    if "/" in segment:
        raise InvalidArgumentError(
            "path segments must not contain '/'",
            details={"segment": segment},
        )
