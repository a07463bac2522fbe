import re
from urllib.parse import parse_qs, urlparse

import pytest

from auth.exceptions import ProviderError
from auth.google_oauth import FederatedIdentity
from config import Settings
from server import create_app


class StubProvider:
    def get_auth_url(self, state=None):
        return "https://accounts.google.com/o/oauth2/v2/auth?client_id=cid"

    def exchange_code(self, code):
        if code == "bad":
            raise ProviderError("token exchange failed with status 400")
        return {"access_token": "ya29"}

    def fetch_identity(self, access_token):
        return FederatedIdentity("gid123", "u@example.com", "User")

    def verify_id_token(self, id_token):
        return FederatedIdentity("gid123", "u@example.com", "User")


def _settings(**kwargs):
    params = dict(
        jwt_secret="route_secret",
        database_url="sqlite://",
        log_path="",
        cleanup_scheduler_enabled=False,
    )
    params.update(kwargs)
    return Settings(**params)


@pytest.fixture
def app(mailer):
    return create_app(_settings(), mailer=mailer, provider=StubProvider())


@pytest.fixture
def client(app):
    return app.test_client()


def _email_login(client, mailer, email="u@x.com"):
    resp = client.post("/auth/email/request-code", json={"email": email})
    assert resp.status_code == 200
    code = re.search(r"Your Verification Code: (\d{6})", mailer.sent[-1]["text"]).group(1)
    resp = client.post("/auth/email/verify", json={"email": email, "code": code})
    assert resp.status_code == 200
    return resp.get_json()["data"]


def test_index_and_health(client):
    assert client.get("/").status_code == 200
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["services"]["database"] == "up"


def test_google_login__redirects_to_consent(client):
    resp = client.get("/auth/google/login")
    assert resp.status_code == 302
    assert resp.headers["Location"].startswith("https://accounts.google.com/")


def test_google_callback__redirects_to_app_with_tokens(client):
    resp = client.get("/auth/callback?code=abc", headers={"User-Agent": "ios-app"})
    assert resp.status_code == 302
    location = urlparse(resp.headers["Location"])
    assert location.scheme == "myauthapp"
    query = parse_qs(location.query)
    assert query["accessToken"][0]
    assert len(query["refreshToken"][0]) == 80


def test_google_callback__missing_code__400(client):
    resp = client.get("/auth/callback")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "INVALID_AUTH_CODE"


def test_google_callback__provider_error__detail_hidden_in_production(mailer):
    app = create_app(_settings(environment="production"), mailer=mailer, provider=StubProvider())
    resp = app.test_client().get("/auth/callback?code=bad")
    assert resp.status_code == 502
    body = resp.get_json()
    assert body["code"] == "PROVIDER_ERROR"
    assert body["error"] == "Internal server error"


def test_google_token__logs_in(client):
    resp = client.post("/auth/google/token", json={"idToken": "idt"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["user"]["email"] == "u@example.com"


def test_email_flow__verify_refresh_logout(client, mailer):
    data = _email_login(client, mailer)
    assert data["user"]["name"] == "u"

    resp = client.post("/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert resp.status_code == 200
    rotated = resp.get_json()["data"]
    assert rotated["refreshToken"] != data["refreshToken"]

    resp = client.post("/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "INVALID_REFRESH_TOKEN"

    headers = {"Authorization": f"Bearer {rotated['accessToken']}"}
    resp = client.post("/auth/logout", headers=headers)
    assert resp.status_code == 200

    resp = client.post("/auth/logout", headers=headers)
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "TOKEN_REVOKED"

    resp = client.post("/auth/refresh", json={"refreshToken": rotated["refreshToken"]})
    assert resp.status_code == 401


def test_email_verify__wrong_code__400(client, mailer):
    client.post("/auth/email/request-code", json={"email": "u@x.com"})
    code = re.search(r"(\d{6})", mailer.sent[-1]["text"]).group(1)
    wrong = "000001" if code != "000001" else "000002"
    resp = client.post("/auth/email/verify", json={"email": "u@x.com", "code": wrong})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "INVALID_VERIFICATION_CODE"


def test_request_code__invalid_email__400(client):
    resp = client.post("/auth/email/request-code", json={"email": "nope"})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "INVALID_EMAIL"


def test_refresh__missing_body__400(client):
    resp = client.post("/auth/refresh", json={})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "REFRESH_TOKEN_REQUIRED"


@pytest.mark.parametrize("headers,code", [
    ({}, "AUTH_HEADER_MISSING"),
    ({"Authorization": "Token abc"}, "INVALID_AUTH_FORMAT"),
    ({"Authorization": "Bearer not-a-jwt"}, "INVALID_TOKEN"),
])
def test_logout__bad_authorization__401(client, headers, code):
    resp = client.post("/auth/logout", headers=headers)
    assert resp.status_code == 401
    assert resp.get_json()["code"] == code


def test_logout__lowercase_bearer_scheme__accepted(client, mailer):
    data = _email_login(client, mailer)
    resp = client.post("/auth/logout", headers={"Authorization": f"bearer {data['accessToken']}"})
    assert resp.status_code == 200
