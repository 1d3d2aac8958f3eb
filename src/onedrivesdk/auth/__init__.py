"""Public auth exports for onedrivesdk."""

from __future__ import annotations

from .auth_info import DEFAULT_TOKEN_URI, AuthInfo
from .oauth_client import OAuthClient

__all__ = ["AuthInfo", "OAuthClient", "DEFAULT_TOKEN_URI"]
