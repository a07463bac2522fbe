import time
from typing import Any, Callable, Dict, Mapping, Optional

import jwt

ALGORITHM = "HS256"


class JwtTokenGenerator:
    """Генератор JWT (HS256) с iat/exp от подменяемых часов."""
    def __init__(self, now_provider: Optional[Callable[[], float]] = None):
        self._now = now_provider or time.time

    def generate(self, claims: Mapping[str, Any], secret: str, ttl_seconds: int = 900) -> str:
        if not claims:
            raise ValueError("claims пустые")
        if not secret:
            raise ValueError("secret пустой")
        if int(ttl_seconds) <= 0:
            raise ValueError("ttl_seconds должен быть > 0")
        now = int(self._now())
        payload: Dict[str, Any] = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + int(ttl_seconds)
        return jwt.encode(payload, secret, algorithm=ALGORITHM, headers={"typ": "JWT"})
