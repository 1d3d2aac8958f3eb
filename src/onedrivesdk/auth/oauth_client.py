"""OAuth credential utilities for onedrivesdk."""

from __future__ import annotations

import json
import os
from typing import Any, Sequence

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials

from onedrivesdk.errors import AuthError, InvalidArgumentError

from .auth_info import AuthInfo


class OAuthClient:
    """Load, refresh and persist OAuth credentials; build authorized sessions."""

    def __init__(self, auth_info: AuthInfo) -> None:
        if auth_info.kind != "oauth":
            raise InvalidArgumentError("OAuthClient requires AuthInfo(kind='oauth')")
        self._auth_info = auth_info

    def get_credentials(self, scopes: Sequence[str], ensure_valid: bool = True) -> Credentials:
        """
        Return OAuth credentials for the given scopes.

        Args:
            scopes: OAuth scopes.
            ensure_valid: If True, refresh credentials when they are not valid.

        Returns:
            google.oauth2.credentials.Credentials

        Raises:
            AuthError: on missing token file, load or refresh failures.
            InvalidArgumentError: if scopes is invalid.
        """
        if not scopes or not all(isinstance(s, str) and s.strip() for s in scopes):
            raise InvalidArgumentError("scopes must be a non-empty sequence of strings")

        token_file = self._auth_info.token_file
        if not os.path.exists(token_file):
            raise AuthError(
                "token_file does not exist; interactive login is not supported",
                details={"token_file": token_file},
            )

        try:
            with open(token_file, "r", encoding="utf-8") as f:
                info: dict[str, Any] = json.load(f)
            token_uri = info.get("token_uri") or self._auth_info.token_uri
            creds = Credentials.from_authorized_user_info(info, scopes=list(scopes))
            # from_authorized_user_info falls back to Google's endpoint.
            creds = creds.with_token_uri(token_uri)
        except (OSError, ValueError) as exc:
            raise AuthError(
                "Failed to load token_file",
                details={"token_file": token_file},
                cause=exc,
            ) from exc

        # When ensure_valid is False, return loaded credentials as-is.
        if not ensure_valid:
            return creds

        if not creds.valid:
            if not creds.refresh_token:
                raise AuthError(
                    "Credentials are not valid and carry no refresh_token",
                    details={"token_file": token_file},
                )
            try:
                creds.refresh(Request())
            except GoogleAuthError as exc:
                raise AuthError(
                    "Failed to refresh OAuth credentials",
                    details={"token_file": token_file},
                    cause=exc,
                ) from exc
            self._save_credentials(creds)

        return creds

    def build_session(self, scopes: Sequence[str], ensure_valid: bool = True) -> AuthorizedSession:
        """
        Build a requests session that attaches and refreshes the bearer token.

        Returns:
            google.auth.transport.requests.AuthorizedSession
        """
        creds = self.get_credentials(scopes=scopes, ensure_valid=ensure_valid)
        return AuthorizedSession(creds)

    def _save_credentials(self, creds: Credentials) -> None:
        token_file = self._auth_info.token_file
        token_dir = os.path.dirname(token_file)
        if token_dir:
            os.makedirs(token_dir, exist_ok=True)

        try:
            with open(token_file, "w", encoding="utf-8") as f:
                f.write(creds.to_json())
        except OSError as exc:
            raise AuthError(
                "Failed to save OAuth token file",
                details={"token_file": token_file},
                cause=exc,
            ) from exc
