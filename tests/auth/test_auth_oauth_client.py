import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import AuthorizedSession

from onedrivesdk.auth import DEFAULT_TOKEN_URI, AuthInfo, OAuthClient
from onedrivesdk.errors import AuthError, InvalidArgumentError

SCOPES = ["Files.ReadWrite.All", "offline_access"]


def _token_payload(**overrides) -> dict:
    payload = {
        "token": "fake-token",
        "refresh_token": "fake-refresh-token",
        "client_id": "fake-client-id",
        "client_secret": "fake-client-secret",
        "scopes": SCOPES,
        "type": "authorized_user",
    }
    payload.update(overrides)
    return payload


class TestOAuthClient(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.token_file = Path(self._tmp.name) / "token.json"
        self.client = OAuthClient(AuthInfo(kind="oauth", data={"token_file": str(self.token_file)}))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_get_credentials_loads_token_file_without_refresh(self) -> None:
        self.token_file.write_text(json.dumps(_token_payload()), encoding="utf-8")

        creds = self.client.get_credentials(scopes=SCOPES, ensure_valid=False)

        self.assertEqual(creds.refresh_token, "fake-refresh-token")
        # token_uri defaults to the Microsoft identity platform endpoint.
        self.assertEqual(creds.token_uri, DEFAULT_TOKEN_URI)

    def test_token_uri_from_file_wins(self) -> None:
        payload = _token_payload(token_uri="https://login.live.com/oauth20_token.srf")
        self.token_file.write_text(json.dumps(payload), encoding="utf-8")

        creds = self.client.get_credentials(scopes=SCOPES, ensure_valid=False)
        self.assertEqual(creds.token_uri, "https://login.live.com/oauth20_token.srf")

    def test_missing_token_file_is_auth_error(self) -> None:
        with self.assertRaises(AuthError):
            self.client.get_credentials(scopes=SCOPES)

    def test_corrupt_token_file_is_auth_error(self) -> None:
        self.token_file.write_text("{not json", encoding="utf-8")
        with self.assertRaises(AuthError):
            self.client.get_credentials(scopes=SCOPES)

    def test_invalid_scopes(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            self.client.get_credentials(scopes=[])

    def test_refresh_is_persisted(self) -> None:
        self.token_file.write_text(json.dumps(_token_payload(token=None)), encoding="utf-8")

        refreshed_against: list[str] = []

        def fake_refresh(creds_self, request) -> None:
            refreshed_against.append(creds_self.token_uri)
            creds_self.token = "refreshed-token"

        with patch(
            "google.oauth2.credentials.Credentials.refresh",
            autospec=True,
            side_effect=fake_refresh,
        ):
            creds = self.client.get_credentials(scopes=SCOPES)

        self.assertEqual(creds.token, "refreshed-token")
        self.assertEqual(refreshed_against, [DEFAULT_TOKEN_URI])
        saved = json.loads(self.token_file.read_text(encoding="utf-8"))
        self.assertEqual(saved["token"], "refreshed-token")
        self.assertEqual(saved["refresh_token"], "fake-refresh-token")
        self.assertEqual(saved["token_uri"], DEFAULT_TOKEN_URI)

    def test_custom_token_uri_from_auth_info(self) -> None:
        self.token_file.write_text(json.dumps(_token_payload()), encoding="utf-8")
        client = OAuthClient(
            AuthInfo(
                kind="oauth",
                data={
                    "token_file": str(self.token_file),
                    "token_uri": "https://login.microsoftonline.com/tenant/oauth2/v2.0/token",
                },
            )
        )

        creds = client.get_credentials(scopes=SCOPES, ensure_valid=False)
        self.assertEqual(creds.token_uri, "https://login.microsoftonline.com/tenant/oauth2/v2.0/token")

    def test_session_refreshes_against_microsoft_endpoint(self) -> None:
        self.token_file.write_text(json.dumps(_token_payload()), encoding="utf-8")

        session = self.client.build_session(SCOPES, ensure_valid=False)
        try:
            self.assertEqual(session.credentials.token_uri, DEFAULT_TOKEN_URI)
        finally:
            session.close()

    def test_refresh_failure_is_auth_error(self) -> None:
        self.token_file.write_text(json.dumps(_token_payload(token=None)), encoding="utf-8")

        with patch(
            "google.oauth2.credentials.Credentials.refresh",
            side_effect=RefreshError("invalid_grant"),
        ):
            with self.assertRaises(AuthError) as ctx:
                self.client.get_credentials(scopes=SCOPES)

        self.assertIsInstance(ctx.exception.cause, RefreshError)

    def test_build_session(self) -> None:
        self.token_file.write_text(json.dumps(_token_payload()), encoding="utf-8")

        session = self.client.build_session(SCOPES, ensure_valid=False)
        try:
            self.assertIsInstance(session, AuthorizedSession)
            self.assertEqual(session.credentials.refresh_token, "fake-refresh-token")
        finally:
            session.close()


if __name__ == "__main__":
    unittest.main()
