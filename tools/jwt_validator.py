import time
from typing import Any, Callable, Dict, Iterable, Optional

import jwt

from auth.exceptions import InvalidPayloadError, TokenExpiredError, TokenMalformedError

# Допустимое расхождение часов (секунды)
_IAT_FUTURE_LEEWAY = 30


def validate_jwt(
    token: str,
    secret: str,
    required_claims: Iterable[str] = ("userId", "email"),
    now_provider: Optional[Callable[[], float]] = None,
) -> Dict[str, Any]:
    """Проверяет подпись и время жизни токена, возвращает payload.

    exp сверяется с now_provider, а не с часами PyJWT, чтобы проверка
    совпадала с часами генератора.
    """
    if not token:
        raise TokenMalformedError("token is empty")
    if not secret:
        raise ValueError("secret пустой")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidSignatureError as e:
        raise TokenMalformedError("invalid signature") from e
    except jwt.DecodeError as e:
        raise TokenMalformedError(f"decode error: {e}") from e
    except jwt.InvalidTokenError as e:
        raise TokenMalformedError(f"invalid token: {e}") from e

    try:
        iat = int(payload["iat"])
        exp = int(payload["exp"])
    except (KeyError, ValueError, TypeError) as e:
        raise TokenMalformedError("iat/exp must be integers") from e
    now = int((now_provider or time.time)())
    if iat - now > _IAT_FUTURE_LEEWAY:
        raise TokenMalformedError("iat too far in the future")
    if exp <= now:
        raise TokenExpiredError("token has expired")

    for key in required_claims:
        if not payload.get(key):
            raise InvalidPayloadError(f"missing claim {key}")
    return payload
