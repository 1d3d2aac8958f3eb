"""Upload sessions and download pipeline."""

from __future__ import annotations

from .download import DownloadPipeline
from .upload import UploadSessionManager, UploadState

__all__ = [
    "DownloadPipeline",
    "UploadSessionManager",
    "UploadState",
]
