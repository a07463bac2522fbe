from __future__ import annotations


class AuthError(Exception):
    """Базовая ошибка слоя авторизации.

    code: стабильный машиночитаемый код для клиента.
    status_code: HTTP статус, в который ошибку переводит server.py.
    expose: можно ли отдавать message клиенту в production.
    """

    code = "AUTH_ERROR"
    status_code = 400
    expose = True

    def __init__(self, message: str | None = None, code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code


# --- input errors ---

class InputError(AuthError):
    pass


class InvalidPayloadError(InputError):
    code = "INVALID_PAYLOAD"


class MissingCredentialsError(InputError):
    code = "AUTH_HEADER_MISSING"
    status_code = 401


class TokenMalformedError(InputError):
    code = "INVALID_TOKEN"
    status_code = 401


class InvalidRefreshTokenError(InputError):
    code = "INVALID_REFRESH_TOKEN"
    status_code = 401


class InvalidVerificationCodeError(InputError):
    code = "INVALID_VERIFICATION_CODE"


# --- expiry errors ---

class ExpiryError(AuthError):
    status_code = 401


class TokenExpiredError(ExpiryError):
    code = "TOKEN_EXPIRED"


class RefreshTokenExpiredError(ExpiryError):
    code = "REFRESH_TOKEN_EXPIRED"


class CodeExpiredError(ExpiryError):
    code = "CODE_EXPIRED"


class TokenRevokedError(AuthError):
    code = "TOKEN_REVOKED"
    status_code = 401


# --- collaborator failures ---

class UpstreamError(AuthError):
    code = "UPSTREAM_ERROR"
    status_code = 502
    expose = False


class ProviderError(UpstreamError):
    code = "PROVIDER_ERROR"


class DeliveryError(UpstreamError):
    code = "DELIVERY_ERROR"


class StoreError(AuthError):
    code = "STORE_ERROR"
    status_code = 500
    expose = False
