from functools import wraps
from typing import Optional
from urllib.parse import urlencode

from flask import Flask, current_app, g, jsonify, redirect, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from auth.exceptions import AuthError, InvalidPayloadError, MissingCredentialsError, TokenMalformedError
from auth.google_oauth import GoogleOAuthClient
from auth.mailer import Mailer, SmtpMailer
from auth.revocation import InMemoryRevocationRegistry, RevocationRegistry
from auth.services.auth_service import AuthService
from auth.services.cleanup_scheduler import run_cleanup_job, start_cleanup_scheduler
from auth.services.google_auth_service import begin_federated_login, complete_federated_login, process_google_auth
from auth.services.verification_service import VerificationCodeEngine
from base_response import BaseResponse
from config import Settings
from db import db
from tools.logger_config import TimedFileLoggerConfigurator
from tools.tokens import TokenCodec

EXTENSION_KEY = "mobile_auth"


def _device_info() -> dict:
    return {
        "userAgent": request.headers.get("User-Agent"),
        "platform": request.headers.get("Sec-CH-UA-Platform"),
        "mobile": request.headers.get("Sec-CH-UA-Mobile"),
    }


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _auth_service() -> AuthService:
    return current_app.extensions[EXTENSION_KEY]["auth_service"]


def _provider() -> GoogleOAuthClient:
    return current_app.extensions[EXTENSION_KEY]["provider"]


def _ok(data, status: int = 200):
    return jsonify(BaseResponse(status_code=status, data=data).to_dict()), status


def require_access_token(fn):
    """Bearer авторизация: кладёт claims и сам токен в flask.g."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        if not header:
            raise MissingCredentialsError("authorization header is missing")
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise TokenMalformedError("invalid authorization format, use: Bearer <token>", "INVALID_AUTH_FORMAT")
        g.claims = _auth_service().authenticate(token)
        g.access_token = token
        return fn(*args, **kwargs)
    return wrapper


def register_routes(app: Flask) -> None:
    @app.route("/")
    def index():
        return jsonify({
            "service": "Mobile Auth API",
            "status": "running",
            "endpoints": {
                "google": "/auth/google/login (GET)",
                "googleToken": "/auth/google/token (POST)",
                "callback": "/auth/callback (GET)",
                "refresh": "/auth/refresh (POST)",
                "logout": "/auth/logout (POST)",
                "requestCode": "/auth/email/request-code (POST)",
                "verifyCode": "/auth/email/verify (POST)",
                "health": "/health",
            },
        }), 200

    @app.route("/health")
    def health():
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            app.logger.exception("database health check failed")
            return jsonify({"status": "unhealthy", "services": {"api": "up", "database": "down"}}), 503
        return jsonify({"status": "healthy", "services": {"api": "up", "database": "up"}}), 200

    @app.route("/auth/google/login", methods=["GET"])
    def google_login():
        return redirect(begin_federated_login(_provider(), state=request.args.get("state")))

    @app.route("/auth/callback", methods=["GET"])
    def google_callback():
        code = (request.args.get("code") or "").strip()
        if not code:
            raise InvalidPayloadError("authorization code is required", "INVALID_AUTH_CODE")
        payload = complete_federated_login(
            _auth_service(), _provider(), code, device_info=_device_info(), ip_address=request.remote_addr
        )
        app.logger.info(f"login user_id={payload['user']['id']} via google callback")
        target = app.config["APP_REDIRECT_URL"]
        sep = "&" if "?" in target else "?"
        query = urlencode({"accessToken": payload["accessToken"], "refreshToken": payload["refreshToken"]})
        return redirect(f"{target}{sep}{query}")

    @app.route("/auth/google/token", methods=["POST"])
    def google_token():
        data = _json_body()
        payload = process_google_auth(
            _auth_service(),
            _provider(),
            data.get("idToken"),
            device_info=_device_info(),
            ip_address=request.remote_addr,
        )
        app.logger.info(f"login user_id={payload['user']['id']} via google id_token")
        return _ok(payload)

    @app.route("/auth/refresh", methods=["POST"])
    def refresh():
        refresh_token = _json_body().get("refreshToken")
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            raise InvalidPayloadError("refresh token is required", "REFRESH_TOKEN_REQUIRED")
        payload = _auth_service().refresh(
            refresh_token.strip(), device_info=_device_info(), ip_address=request.remote_addr
        )
        return _ok(payload)

    @app.route("/auth/logout", methods=["POST"])
    @require_access_token
    def logout():
        deleted = _auth_service().logout_user(g.claims["userId"], g.access_token)
        app.logger.info(f"logout user_id={g.claims['userId']} sessions={deleted}")
        return _ok({"message": "logged out"})

    @app.route("/auth/email/request-code", methods=["POST"])
    def request_email_code():
        email = _json_body().get("email")
        if not isinstance(email, str):
            raise InvalidPayloadError("a valid email address is required", "INVALID_EMAIL")
        _auth_service().request_email_code(email)
        return _ok({"message": "Verification code sent successfully"})

    @app.route("/auth/email/verify", methods=["POST"])
    def verify_email_code():
        data = _json_body()
        email, code = data.get("email"), data.get("code")
        if not isinstance(email, str) or not isinstance(code, str):
            raise InvalidPayloadError("email and code are required", "VALIDATION_ERROR")
        payload = _auth_service().login_with_email_code(
            email, code.strip(), device_info=_device_info(), ip_address=request.remote_addr
        )
        return _ok(payload)


def register_error_handlers(app: Flask, settings: Settings) -> None:
    @app.errorhandler(AuthError)
    def handle_auth_error(e: AuthError):
        expose = e.expose or not settings.is_production
        if e.status_code >= 500:
            app.logger.error(f"{e.code}: {e.message}")
        else:
            app.logger.info(f"{e.code}: {e.message}")
        return jsonify(BaseResponse.from_error(e, expose=expose).to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.exception(f"unexpected error: {type(e).__name__}")
        return jsonify({"error": "Internal server error"}), 500


def create_app(
    settings: Optional[Settings] = None,
    *,
    mailer: Optional[Mailer] = None,
    provider: Optional[GoogleOAuthClient] = None,
    revocations: Optional[RevocationRegistry] = None,
    codec: Optional[TokenCodec] = None,
) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = settings.database_url
    app.config["APP_REDIRECT_URL"] = settings.app_redirect_url
    db.init_app(app)

    if settings.log_path:
        TimedFileLoggerConfigurator(
            log_path=settings.log_path, backup_days=settings.log_backup_days, level=settings.log_level
        ).configure(app)

    codec = codec or TokenCodec(
        settings.jwt_secret,
        access_ttl_seconds=settings.access_token_ttl_seconds,
        refresh_ttl_days=settings.refresh_token_ttl_days,
    )
    mailer = mailer or SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=settings.email_from,
        from_name=settings.company_name,
        timeout=settings.http_timeout_seconds,
    )
    provider = provider or GoogleOAuthClient(
        settings.google_client_id,
        settings.google_client_secret,
        settings.google_redirect_uri,
        scopes=settings.google_scopes,
        timeout=settings.http_timeout_seconds,
    )
    verification = VerificationCodeEngine(
        db.session,
        mailer,
        ttl_minutes=settings.verification_code_ttl_minutes,
        company_name=settings.company_name,
        support_email=settings.support_email,
    )
    auth_service = AuthService(db.session, codec, revocations or InMemoryRevocationRegistry(), verification)
    app.extensions[EXTENSION_KEY] = {
        "settings": settings,
        "auth_service": auth_service,
        "verification": verification,
        "provider": provider,
    }

    register_error_handlers(app, settings)
    register_routes(app)

    with app.app_context():
        db.create_all()

    if settings.cleanup_scheduler_enabled:
        def cleanup():
            with app.app_context():
                run_cleanup_job(verification, db.session)
                db.session.remove()

        app.extensions[EXTENSION_KEY]["scheduler"] = start_cleanup_scheduler(
            cleanup, interval_minutes=settings.cleanup_interval_minutes
        )
    return app


if __name__ == '__main__':
    create_app().run(debug=True, host='127.0.0.1', port=5000)
