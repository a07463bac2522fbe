from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.exceptions import (
    CodeExpiredError,
    InvalidPayloadError,
    InvalidRefreshTokenError,
    InvalidVerificationCodeError,
    RefreshTokenExpiredError,
    StoreError,
    TokenRevokedError,
)
from auth.google_oauth import FederatedIdentity
from auth.models import User, utcnow
from auth.revocation import RevocationRegistry
from auth.services.session_service import (
    create_session,
    delete_sessions_for_user,
    get_session_by_refresh_token,
    rotate_refresh_token,
)
from auth.services.user_service import get_user, normalize_email, record_login
from auth.services.verification_service import CodeStatus, VerificationCodeEngine
from tools.tokens import TokenCodec

logger = logging.getLogger("auth.sessions")


class AuthService:
    """Login, refresh rotation and logout over the credential store.

    Every successful login, federated or by email code, persists a Session
    so the client can refresh later.
    """

    def __init__(
        self,
        db_session,
        codec: TokenCodec,
        revocations: RevocationRegistry,
        verification: VerificationCodeEngine,
        now_provider: Optional[Callable[[], datetime]] = None,
    ):
        self.db_session = db_session
        self.codec = codec
        self.revocations = revocations
        self.verification = verification
        self._now = now_provider or utcnow

    # --- login ---

    def login_federated(
        self,
        identity: FederatedIdentity,
        device_info: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not identity.subject_id or not identity.email:
            raise InvalidPayloadError("federated identity requires subject id and email")
        user = self._record_login(identity.email, name=identity.name, google_id=identity.subject_id)
        return self._issue_session(user, device_info, ip_address)

    def login_with_email_code(
        self,
        email: str,
        code: str,
        device_info: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        status = self.verification.check_code(email, code)
        if status is CodeStatus.EXPIRED:
            raise CodeExpiredError("verification code has expired")
        if status is not CodeStatus.ACCEPTED:
            raise InvalidVerificationCodeError("invalid or expired verification code")
        user = self._record_login(email)
        return self._issue_session(user, device_info, ip_address)

    def request_email_code(self, email: str) -> None:
        self.verification.request_code(email)

    def _record_login(self, email: str, name: Optional[str] = None, google_id: Optional[str] = None) -> User:
        try:
            user = record_login(self.db_session, normalize_email(email), self._now(), name=name, google_id=google_id)
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            raise StoreError("failed to record login") from e
        return user

    def _issue_session(self, user: User, device_info: Optional[dict], ip_address: Optional[str]) -> Dict[str, Any]:
        # пользователь уже закоммичен: при сбое здесь строка users остаётся
        now = self._now()
        access_token = self.codec.sign_access_token({"userId": user.id, "email": user.email})
        refresh_token = self.codec.generate_refresh_token()
        expires_at = self.codec.refresh_token_expiry(now)
        try:
            create_session(
                self.db_session,
                user_id=user.id,
                refresh_token=refresh_token,
                expires_at=expires_at,
                now=now,
                device_info=device_info,
                ip_address=ip_address,
            )
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            raise StoreError("failed to persist session") from e
        logger.info("login user_id=%s", user.id)
        return {
            "accessToken": access_token,
            "refreshToken": refresh_token,
            "expiredIn": self.codec.access_ttl_seconds,
            "user": user.to_dict(),
        }

    # --- refresh ---

    def refresh(
        self,
        refresh_token: str,
        device_info: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not refresh_token:
            raise InvalidPayloadError("refresh token is required", "REFRESH_TOKEN_REQUIRED")
        now = self._now()
        try:
            session_obj = get_session_by_refresh_token(self.db_session, refresh_token)
            if session_obj is None:
                raise InvalidRefreshTokenError("invalid refresh token")
            if now >= session_obj.expires_at:
                # просроченную строку не удаляем: это задача cleanup
                raise RefreshTokenExpiredError("refresh token has expired")
            user = get_user(self.db_session, session_obj.user_id)
            if user is None:
                raise InvalidRefreshTokenError("invalid refresh token")

            access_token = self.codec.sign_access_token({"userId": user.id, "email": user.email})
            new_refresh_token = self.codec.generate_refresh_token()
            rotated = rotate_refresh_token(
                self.db_session,
                session_id=session_obj.id,
                old_refresh_token=refresh_token,
                new_refresh_token=new_refresh_token,
                expires_at=self.codec.refresh_token_expiry(now),
                now=now,
                device_info=device_info,
                ip_address=ip_address,
            )
            if not rotated:
                logger.warning("refresh token rotation lost a race session_id=%s", session_obj.id)
                raise InvalidRefreshTokenError("invalid refresh token")
            self.db_session.commit()
        except (InvalidRefreshTokenError, RefreshTokenExpiredError):
            self.db_session.rollback()
            raise
        except SQLAlchemyError as e:
            self.db_session.rollback()
            raise StoreError("failed to refresh session") from e
        return {
            "accessToken": access_token,
            "refreshToken": new_refresh_token,
            "expiredIn": self.codec.access_ttl_seconds,
        }

    # --- access tokens / logout ---

    def authenticate(self, access_token: str) -> Dict[str, Any]:
        if access_token and self.revocations.is_revoked(access_token):
            raise TokenRevokedError("token has been revoked")
        return self.codec.verify_access_token(access_token)

    def logout_user(self, user_id: str, access_token: Optional[str] = None) -> int:
        """Выход со всех устройств: удаляются все сессии пользователя."""
        if access_token:
            self.revocations.revoke(access_token)
        try:
            deleted = delete_sessions_for_user(self.db_session, user_id)
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            raise StoreError("failed to delete sessions") from e
        logger.info("logout user_id=%s sessions=%s", user_id, deleted)
        return deleted

    def logout(self, access_token: str) -> int:
        claims = self.authenticate(access_token)
        return self.logout_user(claims["userId"], access_token)
