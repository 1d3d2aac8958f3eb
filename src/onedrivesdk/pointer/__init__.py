"""Public pointer exports for onedrivesdk."""

from __future__ import annotations

from .pointer import IdPointer, Operator, PathPointer, Pointer
from .resolver import (
    resolve,
    resolve_child,
    resolve_with_operator,
    to_reference,
    upload_session_path,
    upload_target_path,
)

__all__ = [
    "IdPointer",
    "PathPointer",
    "Pointer",
    "Operator",
    "resolve",
    "resolve_with_operator",
    "resolve_child",
    "upload_session_path",
    "upload_target_path",
    "to_reference",
]
