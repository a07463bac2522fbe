from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import User

logger = logging.getLogger("auth.users")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def default_display_name(email: str) -> str:
    return email.split("@", 1)[0]


def get_user_by_google_id(db_session, google_id: str) -> Optional[User]:
    return db_session.query(User).filter_by(google_id=google_id).first()


def get_user_by_email(db_session, email: str) -> Optional[User]:
    return db_session.query(User).filter_by(email=normalize_email(email)).first()


def get_user(db_session, user_id: str) -> Optional[User]:
    return db_session.get(User, user_id)


def find_user(db_session, email: str, google_id: Optional[str] = None) -> Optional[User]:
    """google_id имеет приоритет, email используется как запасной ключ."""
    if google_id:
        user = get_user_by_google_id(db_session, google_id)
        if user is not None:
            return user
    return get_user_by_email(db_session, email)


def record_login(
    db_session,
    email: str,
    now: datetime,
    name: Optional[str] = None,
    google_id: Optional[str] = None,
) -> User:
    """Находит или создаёт пользователя и отмечает вход. Коммит делает вызывающий.

    Новый пользователь получает login_count=1, существующий: login_count + 1
    одним SQL выражением, чтобы параллельные входы не теряли инкремент.
    """
    email = normalize_email(email)
    user = find_user(db_session, email, google_id)
    if user is None:
        user = User(
            email=email,
            name=name or default_display_name(email),
            google_id=google_id,
            last_login_at=now,
            login_count=1,
            created_at=now,
            updated_at=now,
        )
        db_session.add(user)
        try:
            db_session.flush()
            return user
        except IntegrityError:
            # параллельный первый вход с тем же email/google_id уже создал строку
            db_session.rollback()
            logger.info("concurrent user creation, reusing existing row")
            user = find_user(db_session, email, google_id)
            if user is None:
                raise

    if google_id and not user.google_id:
        user.google_id = google_id
    user.last_login_at = now
    user.updated_at = now
    user.login_count = User.login_count + 1
    db_session.flush()
    return user
