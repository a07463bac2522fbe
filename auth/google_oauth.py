from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlencode

import requests

from auth.exceptions import InvalidPayloadError, ProviderError, TokenMalformedError

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
)


@dataclass(frozen=True)
class FederatedIdentity:
    subject_id: str
    email: str
    name: Optional[str] = None


def _identity_from_claims(data: dict) -> FederatedIdentity:
    if not data.get("sub") or not data.get("email"):
        raise ProviderError("missing required claims", "INVALID_USER_INFO")
    return FederatedIdentity(subject_id=data["sub"], email=data["email"], name=data.get("name"))


class GoogleOAuthClient:
    """Google OAuth 2.0 authorization-code flow over plain HTTP."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: Optional[str],
        scopes: Sequence[str] = DEFAULT_SCOPES,
        timeout: float = 5.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = tuple(scopes)
        self.timeout = timeout

    def _require_config(self) -> None:
        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", self.client_id),
                ("GOOGLE_CLIENT_SECRET", self.client_secret),
                ("GOOGLE_REDIRECT_URI", self.redirect_uri),
            )
            if not value
        ]
        if missing:
            raise ProviderError(
                f"Google OAuth credentials not configured: missing {', '.join(missing)}",
                "OAUTH_CONFIG_MISSING",
            )

    def get_auth_url(self, state: Optional[str] = None) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    def _json(self, resp: requests.Response, what: str) -> dict:
        if resp.status_code != 200:
            raise ProviderError(f"{what} failed with status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"{what} returned malformed json") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{what} returned malformed json")
        return data

    def exchange_code(self, code: str) -> dict:
        self._require_config()
        if not code:
            raise InvalidPayloadError("invalid authorization code", "INVALID_AUTH_CODE")
        try:
            resp = requests.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(f"network error: {e}", "TOKEN_EXCHANGE_FAILED") from e
        tokens = self._json(resp, "token exchange")
        if not tokens.get("access_token"):
            raise ProviderError("failed to obtain access token", "TOKEN_EXCHANGE_FAILED")
        return tokens

    def fetch_identity(self, access_token: str) -> FederatedIdentity:
        try:
            resp = requests.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(f"network error: {e}", "USER_INFO_FETCH_FAILED") from e
        return _identity_from_claims(self._json(resp, "userinfo"))

    def verify_id_token(self, id_token: str) -> FederatedIdentity:
        """Проверка id_token, полученного мобильным клиентом напрямую от Google."""
        if not id_token:
            raise InvalidPayloadError("empty id_token", "INVALID_ID_TOKEN")
        if not self.client_id:
            raise ProviderError(
                "Google OAuth credentials not configured: missing GOOGLE_CLIENT_ID", "OAUTH_CONFIG_MISSING"
            )
        try:
            resp = requests.get(TOKENINFO_URL, params={"id_token": id_token}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderError(f"network error: {e}", "ID_TOKEN_VERIFICATION_FAILED") from e
        if resp.status_code != 200:
            raise TokenMalformedError("google token invalid", "INVALID_ID_TOKEN")
        data = self._json(resp, "tokeninfo")
        if data.get("aud") != self.client_id:
            raise TokenMalformedError("id_token audience mismatch", "INVALID_ID_TOKEN")
        return _identity_from_claims(data)
