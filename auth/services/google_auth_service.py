from __future__ import annotations

from typing import Optional

from auth.exceptions import MissingCredentialsError
from auth.google_oauth import GoogleOAuthClient
from auth.services.auth_service import AuthService


def begin_federated_login(provider: GoogleOAuthClient, state: Optional[str] = None) -> str:
    return provider.get_auth_url(state=state)


def complete_federated_login(
    auth_service: AuthService,
    provider: GoogleOAuthClient,
    code: str,
    device_info: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> dict:
    """Оркестрация callback'а Google OAuth.

    Контракт:
        Вход:
            code: authorization code из redirect'а Google.
        Поведение:
            - Обмен code на токены и получение профиля выполняются до любого
              обращения к БД, соединение не удерживается во время HTTP вызовов.
            - Находит или создаёт пользователя, создаёт Session.
        Исключения:
            InvalidPayloadError: пустой code.
            ProviderError: сетевой сбой или некорректный ответ Google.
            StoreError: сбой записи в БД.
        Возврат:
            { accessToken, refreshToken, expiredIn, user }
    """
    tokens = provider.exchange_code(code)
    identity = provider.fetch_identity(tokens["access_token"])
    return auth_service.login_federated(identity, device_info=device_info, ip_address=ip_address)


def process_google_auth(
    auth_service: AuthService,
    provider: GoogleOAuthClient,
    id_token: str | None,
    device_info: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> dict:
    """Вход по id_token, который мобильный клиент получил от Google SDK.

    Возврат: { accessToken, refreshToken, expiredIn, user } как у complete_federated_login.
    """
    if not id_token:
        raise MissingCredentialsError("missing credentials", "MISSING_CREDENTIALS")
    identity = provider.verify_id_token(id_token)
    return auth_service.login_federated(identity, device_info=device_info, ip_address=ip_address)
