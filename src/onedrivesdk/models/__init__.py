"""Public model exports for onedrivesdk."""

from __future__ import annotations

from .drive import DriveInfo, parse_drive
from .item import ItemMetadata, parse_metadata
from .outcome import FatalFailure, Outcome, PartialRetry, RetryableFailure, Success
from .response import RawResponse
from .session import UploadSession

__all__ = [
    "DriveInfo",
    "parse_drive",
    "ItemMetadata",
    "parse_metadata",
    "UploadSession",
    "RawResponse",
    "Outcome",
    "Success",
    "PartialRetry",
    "RetryableFailure",
    "FatalFailure",
]
