import smtplib

import pytest

from auth.exceptions import DeliveryError
from auth.mailer import SmtpMailer, redact_email, render_verification_email


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None, context=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.started_tls = False
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        self.messages.append(msg)


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []


def test_render_verification_email__contains_code_and_company():
    subject, html, text = render_verification_email("042137", "DSMN8", "help@dsmn8.com", 15)
    assert subject == "Your DSMN8 Verification Code"
    assert "042137" in html and "042137" in text
    assert "15 minutes" in text
    assert "help@dsmn8.com" in html


def test_redact_email():
    assert redact_email("someone@example.com") == "so***@example.com"
    assert redact_email("broken") == "redacted"


def test_send__not_configured__dev_mode_no_smtp(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    SmtpMailer().send("a@b.com", "s", "<p>h</p>", "t")
    assert FakeSMTP.instances == []


def test_send__starttls_and_login(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    mailer = SmtpMailer(host="smtp.example.com", port=587, user="bot@example.com", password="pw", timeout=4)
    mailer.send("a@b.com", "Subject", "<p>html</p>", "text")
    smtp = FakeSMTP.instances[0]
    assert smtp.timeout == 4
    assert smtp.started_tls is True
    assert smtp.logged_in == ("bot@example.com", "pw")
    msg = smtp.messages[0]
    assert msg["To"] == "a@b.com"
    assert msg["Subject"] == "Subject"
    assert "bot@example.com" in msg["From"]


def test_send__ssl_mode(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP_SSL", FakeSMTP)
    SmtpMailer(host="smtp.example.com", port=465, from_email="noreply@example.com", use_tls=False).send(
        "a@b.com", "s", "<p>h</p>", "t"
    )
    assert FakeSMTP.instances[0].port == 465
    assert FakeSMTP.instances[0].started_tls is False


def test_send__smtp_failure__raises_delivery_error(monkeypatch):
    class BrokenSMTP(FakeSMTP):
        def send_message(self, msg):
            raise smtplib.SMTPException("rejected")

    monkeypatch.setattr(smtplib, "SMTP", BrokenSMTP)
    with pytest.raises(DeliveryError):
        SmtpMailer(host="smtp.example.com", from_email="noreply@example.com").send("a@b.com", "s", "h", "t")
