import secrets
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from auth.exceptions import InvalidPayloadError
from tools.jwt_token_generator import JwtTokenGenerator
from tools.jwt_validator import validate_jwt

REQUIRED_CLAIMS = ("userId", "email")
_REGISTERED_CLAIMS = ("iat", "exp")

# 40 байт -> 80 hex символов, 320 бит энтропии
REFRESH_TOKEN_BYTES = 40


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def refresh_token_expiry(now: datetime, ttl_days: int = 7) -> datetime:
    return now + timedelta(days=ttl_days)


class TokenCodec:
    """Stateless signing and verification of access tokens.

    Secret and lifetimes are fixed at construction; the clock is injectable
    so tests can move time without sleeping.
    """

    def __init__(
        self,
        secret: str,
        access_ttl_seconds: int = 900,
        refresh_ttl_days: int = 7,
        now_provider: Optional[Callable[[], float]] = None,
    ):
        if not secret:
            raise ValueError("secret пустой")
        self._secret = secret
        self.access_ttl_seconds = int(access_ttl_seconds)
        self.refresh_ttl_days = int(refresh_ttl_days)
        self._now = now_provider or time.time
        self._generator = JwtTokenGenerator(now_provider=self._now)

    def sign_access_token(self, claims: Mapping[str, Any]) -> str:
        for key in REQUIRED_CLAIMS:
            if not claims.get(key):
                raise InvalidPayloadError("invalid token payload: missing required fields", "INVALID_TOKEN_PAYLOAD")
        return self._generator.generate(claims, self._secret, ttl_seconds=self.access_ttl_seconds)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        payload = validate_jwt(token, self._secret, required_claims=REQUIRED_CLAIMS, now_provider=self._now)
        return {k: v for k, v in payload.items() if k not in _REGISTERED_CLAIMS}

    def generate_refresh_token(self) -> str:
        return generate_refresh_token()

    def refresh_token_expiry(self, now: datetime) -> datetime:
        return refresh_token_expiry(now, self.refresh_ttl_days)
