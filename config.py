import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from auth.google_oauth import DEFAULT_SCOPES

DEV_JWT_SECRET = "default-secret-key"

logger = logging.getLogger("auth.config")


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    jwt_secret: str = DEV_JWT_SECRET
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_days: int = 7
    database_url: str = "sqlite:///users.db"

    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: Optional[str] = None
    google_scopes: Tuple[str, ...] = DEFAULT_SCOPES
    app_redirect_url: str = "myauthapp://auth/callback"

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    email_from: Optional[str] = None
    company_name: str = "Mobile Auth"
    support_email: str = "support@example.com"

    verification_code_ttl_minutes: int = 15
    cleanup_interval_minutes: int = 60
    cleanup_scheduler_enabled: bool = True
    http_timeout_seconds: float = 5.0

    log_path: str = "logs/app.log"
    log_level: str = "INFO"
    log_backup_days: int = 7
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        if environ is None:
            # локальный .env, в проде переменные задаются окружением
            load_dotenv()
            environ = os.environ
        env = environ
        environment = env.get("APP_ENV", "development")
        secret = env.get("JWT_SECRET")
        if not secret:
            if environment == "production":
                raise RuntimeError("JWT_SECRET must be set in production")
            logger.warning("JWT_SECRET not set, using development default")
            secret = DEV_JWT_SECRET
        scopes_raw = env.get("GOOGLE_OAUTH_SCOPES")
        scopes = tuple(s.strip() for s in scopes_raw.split(",") if s.strip()) if scopes_raw else DEFAULT_SCOPES
        company = env.get("COMPANY_NAME", "Mobile Auth")
        return cls(
            jwt_secret=secret,
            access_token_ttl_seconds=_int(env, "ACCESS_TOKEN_TTL_SECONDS", 900),
            refresh_token_ttl_days=_int(env, "REFRESH_TOKEN_TTL_DAYS", 7),
            database_url=env.get("DATABASE_URL", "sqlite:///users.db"),
            google_client_id=env.get("GOOGLE_CLIENT_ID"),
            google_client_secret=env.get("GOOGLE_CLIENT_SECRET"),
            google_redirect_uri=env.get("GOOGLE_REDIRECT_URI"),
            google_scopes=scopes,
            app_redirect_url=env.get("APP_REDIRECT_URL", "myauthapp://auth/callback"),
            smtp_host=env.get("SMTP_HOST"),
            smtp_port=_int(env, "SMTP_PORT", 587),
            smtp_user=env.get("SMTP_USER"),
            smtp_password=env.get("SMTP_PASS"),
            smtp_use_tls=_bool(env.get("SMTP_USE_TLS"), True),
            email_from=env.get("EMAIL_FROM"),
            company_name=company,
            support_email=env.get("SUPPORT_EMAIL", "support@example.com"),
            verification_code_ttl_minutes=_int(env, "VERIFICATION_CODE_TTL_MINUTES", 15),
            cleanup_interval_minutes=_int(env, "VERIFICATION_CODE_CLEANUP_INTERVAL_MINUTES", 60),
            cleanup_scheduler_enabled=_bool(env.get("CLEANUP_SCHEDULER_ENABLED"), True),
            http_timeout_seconds=float(env.get("HTTP_TIMEOUT_SECONDS") or 5.0),
            log_path=env.get("LOG_PATH", "logs/app.log"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_backup_days=_int(env, "LOG_BACKUP_DAYS", 7),
            environment=environment,
        )
