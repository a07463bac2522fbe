from __future__ import annotations

import enum
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError

from auth.exceptions import InvalidPayloadError, StoreError
from auth.mailer import Mailer, redact_email, render_verification_email
from auth.models import VerificationCode, utcnow
from auth.services.user_service import normalize_email

logger = logging.getLogger("auth.verification")

CODE_LENGTH = 6
_CODE_RE = re.compile(r"^[0-9]{6}$")


class CodeStatus(enum.Enum):
    ACCEPTED = "accepted"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"


def generate_code() -> str:
    # равномерно по 000000-999999, с ведущими нулями
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def is_well_formed_code(code: str | None) -> bool:
    return isinstance(code, str) and bool(_CODE_RE.match(code))


class VerificationCodeEngine:
    """One-time email codes: issue, consume once, expire, sweep."""

    def __init__(
        self,
        db_session,
        mailer: Mailer,
        ttl_minutes: int = 15,
        company_name: str = "Mobile Auth",
        support_email: str = "support@example.com",
        now_provider: Optional[Callable[[], datetime]] = None,
    ):
        self.db_session = db_session
        self.mailer = mailer
        self.ttl_minutes = ttl_minutes
        self.company_name = company_name
        self.support_email = support_email
        self._now = now_provider or utcnow

    def request_code(self, email: str) -> VerificationCode:
        email = normalize_email(email)
        if not email or "@" not in email:
            raise InvalidPayloadError("a valid email address is required", "INVALID_EMAIL")
        now = self._now()
        row = VerificationCode(
            email=email,
            code=generate_code(),
            expires_at=now + timedelta(minutes=self.ttl_minutes),
            used=False,
            created_at=now,
        )
        try:
            self.db_session.add(row)
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            raise StoreError("failed to store verification code") from e

        # транзакция уже закрыта: SMTP не держит соединение с БД
        subject, html, text = render_verification_email(
            row.code, self.company_name, self.support_email, self.ttl_minutes
        )
        self.mailer.send(email, subject, html, text)
        logger.info("verification code sent to %s", redact_email(email))
        return row

    def check_code(self, email: str, code: str) -> CodeStatus:
        """Проверяет и погашает код. Побочный эффект только при ACCEPTED."""
        email = normalize_email(email)
        if not email or not is_well_formed_code(code):
            return CodeStatus.NOT_FOUND
        now = self._now()
        try:
            rows = (
                self.db_session.query(VerificationCode)
                .filter_by(email=email, code=code)
                .order_by(VerificationCode.created_at.desc())
                .all()
            )
            candidate = next((r for r in rows if not r.used and r.expires_at > now), None)
            if candidate is None:
                self.db_session.rollback()
                if any(not r.used for r in rows):
                    return CodeStatus.EXPIRED
                if rows:
                    return CodeStatus.ALREADY_USED
                return CodeStatus.NOT_FOUND

            if not self._claim(candidate.id, now):
                self.db_session.rollback()
                return CodeStatus.ALREADY_USED
            self.db_session.commit()
            return CodeStatus.ACCEPTED
        except SQLAlchemyError as e:
            self.db_session.rollback()
            raise StoreError("failed to verify code") from e

    def verify_code(self, email: str, code: str) -> bool:
        return self.check_code(email, code) is CodeStatus.ACCEPTED

    def _claim(self, code_id: str, now: datetime) -> bool:
        # условие used = false: из двух параллельных запросов выиграет один
        stmt = (
            update(VerificationCode)
            .where(
                VerificationCode.id == code_id,
                VerificationCode.used.is_(False),
                VerificationCode.expires_at > now,
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        return self.db_session.execute(stmt).rowcount == 1

    def cleanup_expired(self) -> int:
        try:
            stmt = (
                delete(VerificationCode)
                .where(VerificationCode.expires_at < self._now())
                .execution_options(synchronize_session=False)
            )
            deleted = self.db_session.execute(stmt).rowcount
            self.db_session.commit()
        except SQLAlchemyError:
            logger.exception("error cleaning up expired verification codes")
            self.db_session.rollback()
            return 0
        if deleted:
            logger.info("removed %s expired verification codes", deleted)
        return deleted
