"""
Периодическая очистка: просроченные verification codes и сессии.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from auth.models import utcnow
from auth.services.session_service import delete_expired_sessions
from auth.services.verification_service import VerificationCodeEngine

logger = logging.getLogger("auth.cleanup")

JOB_ID = "expired_auth_cleanup"


def purge_expired_sessions(db_session, now: Optional[datetime] = None) -> int:
    try:
        deleted = delete_expired_sessions(db_session, now or utcnow())
        db_session.commit()
    except SQLAlchemyError:
        logger.exception("error purging expired sessions")
        db_session.rollback()
        return 0
    if deleted:
        logger.info("removed %s expired sessions", deleted)
    return deleted


def run_cleanup_job(engine: VerificationCodeEngine, db_session) -> None:
    """Best-effort: любая ошибка логируется и не выходит за пределы job'а."""
    try:
        engine.cleanup_expired()
        purge_expired_sessions(db_session)
    except Exception:
        logger.exception("cleanup job failed")


def start_cleanup_scheduler(
    job: Callable[[], None],
    interval_minutes: int = 60,
    scheduler: Optional[BackgroundScheduler] = None,
) -> BackgroundScheduler:
    """Регистрирует job с интервалом и первым запуском сразу при старте."""
    scheduler = scheduler or BackgroundScheduler(
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
        }
    )
    scheduler.add_job(
        func=job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=JOB_ID,
        name="Expired verification code and session cleanup",
        replace_existing=True,
        next_run_time=datetime.now(),
    )
    if not scheduler.running:
        scheduler.start()
    logger.info("registered cleanup job (every %s minutes)", interval_minutes)
    return scheduler
