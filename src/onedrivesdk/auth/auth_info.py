"""Authentication information for onedrivesdk (OAuth token file only)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_TOKEN_URI = "https://login.microsoftonline.com/common/oauth2/v2.0/token"


@dataclass(slots=True, frozen=True)
class AuthInfo:
    """
    Authentication information.

    Only OAuth is supported:
        kind = "oauth"
        data must include:
            - token_file: authorized-user JSON (refresh_token, client_id, ...)
        data may include:
            - token_uri: refresh endpoint (Microsoft identity platform by default)
    """

    kind: str
    data: dict[str, Any]

    def __post_init__(self) -> None:
        if self.kind != "oauth":
            raise ValueError("AuthInfo.kind must be 'oauth'")

        if not isinstance(self.data, dict):
            raise TypeError("AuthInfo.data must be a dict")

        value = self.data.get("token_file")
        if not isinstance(value, str) or not value.strip():
            raise ValueError("AuthInfo.data['token_file'] must be a non-empty string")

        uri = self.data.get("token_uri")
        if uri is not None and (not isinstance(uri, str) or not uri.strip()):
            raise ValueError("AuthInfo.data['token_uri'] must be a non-empty string")

    @property
    def token_file(self) -> str:
        """Path to OAuth token JSON (authorized user)."""
        return str(self.data["token_file"])

    @property
    def token_uri(self) -> str:
        uri: Optional[str] = self.data.get("token_uri")
        return uri or DEFAULT_TOKEN_URI
