from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, update

from auth.models import Session


def get_session_by_refresh_token(db_session, refresh_token: str) -> Optional[Session]:
    return db_session.query(Session).filter_by(refresh_token=refresh_token).first()


def create_session(
    db_session,
    user_id: str,
    refresh_token: str,
    expires_at: datetime,
    now: datetime,
    device_info: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> Session:
    session_obj = Session(
        user_id=user_id,
        refresh_token=refresh_token,
        expires_at=expires_at,
        device_info=device_info,
        ip_address=ip_address,
        last_used_at=now,
        created_at=now,
    )
    db_session.add(session_obj)
    return session_obj


def rotate_refresh_token(
    db_session,
    session_id: str,
    old_refresh_token: str,
    new_refresh_token: str,
    expires_at: datetime,
    now: datetime,
    device_info: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> bool:
    """Compare-and-swap замена refresh token.

    UPDATE выполняется только если в строке всё ещё лежит old_refresh_token.
    False означает, что другой запрос уже провёл ротацию этой сессии.
    """
    stmt = (
        update(Session)
        .where(Session.id == session_id, Session.refresh_token == old_refresh_token)
        .values(
            refresh_token=new_refresh_token,
            expires_at=expires_at,
            last_used_at=now,
            device_info=device_info,
            ip_address=ip_address,
        )
        .execution_options(synchronize_session=False)
    )
    result = db_session.execute(stmt)
    return result.rowcount == 1


def delete_sessions_for_user(db_session, user_id: str) -> int:
    stmt = delete(Session).where(Session.user_id == user_id).execution_options(synchronize_session=False)
    return db_session.execute(stmt).rowcount


def delete_expired_sessions(db_session, now: datetime) -> int:
    stmt = delete(Session).where(Session.expires_at < now).execution_options(synchronize_session=False)
    return db_session.execute(stmt).rowcount
