from __future__ import annotations

import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional, Protocol, Tuple

from auth.exceptions import DeliveryError

logger = logging.getLogger("auth.mail")


class Mailer(Protocol):
    def send(self, to_email: str, subject: str, body_html: str, body_text: str) -> None: ...


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def render_verification_email(
    code: str,
    company_name: str,
    support_email: str,
    ttl_minutes: int = 15,
) -> Tuple[str, str, str]:
    """Возвращает (subject, html, text) письма с кодом."""
    subject = f"Your {company_name} Verification Code"
    text = (
        f"Your Verification Code: {code}\n\n"
        f"This code will expire in {ttl_minutes} minutes.\n\n"
        "Security Notice:\n"
        f"- This code was requested from the {company_name} mobile app\n"
        "- Never share this code with anyone\n"
        "- Our support team will never ask for this code\n"
        "- If you didn't request this code, please ignore this email\n\n"
        f"Need help? Contact us at {support_email}\n\n"
        f"{company_name}\n"
    )
    year = datetime.now(timezone.utc).year
    html = f"""<!DOCTYPE html>
<html>
<body style="margin:0;padding:0;background-color:#f6f6f6;font-family:Arial,sans-serif;">
  <div style="max-width:620px;margin:0 auto;background-color:#ffffff;padding:40px;">
    <h1 style="color:#333333;font-size:24px;">Verify Your Email</h1>
    <p style="color:#666666;font-size:16px;">Please use the following verification code to complete your authentication:</p>
    <div style="background-color:#f8f8f8;border-radius:8px;padding:20px;text-align:center;">
      <span style="font-size:32px;font-weight:bold;letter-spacing:5px;">{code}</span>
      <p style="color:#999999;font-size:14px;">This code will expire in {ttl_minutes} minutes</p>
    </div>
    <ul style="color:#666666;font-size:14px;">
      <li>This code was requested from the {company_name} mobile app</li>
      <li>Never share this code with anyone</li>
      <li>Our support team will never ask for this code</li>
      <li>If you didn't request this code, please ignore this email</li>
    </ul>
    <p style="color:#999999;font-size:14px;">Need help? <a href="mailto:{support_email}">Contact our support team</a></p>
    <p style="color:#999999;font-size:12px;">&copy; {year} {company_name}. All rights reserved.</p>
  </div>
</body>
</html>
"""
    return subject, html, text


class SmtpMailer:
    """SMTP transport. Без host работает в dev режиме и только пишет в лог."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "Mobile Auth",
        timeout: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email or user
        self.from_name = from_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def send(self, to_email: str, subject: str, body_html: str, body_text: str) -> None:
        if not self.is_configured:
            logger.info("mail dev mode: to=%s subject=%s", redact_email(to_email), subject)
            return

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to_email
        msg.set_content(body_text)
        msg.add_alternative(body_html, subtype="html")

        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
                    s.starttls(context=ssl.create_default_context())
                    if self.user and self.password:
                        s.login(self.user, self.password)
                    s.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout,
                                      context=ssl.create_default_context()) as s:
                    if self.user and self.password:
                        s.login(self.user, self.password)
                    s.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("mail delivery failed to %s: %s", redact_email(to_email), e)
            raise DeliveryError("failed to send email") from e
