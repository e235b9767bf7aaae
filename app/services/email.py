"""
Email service — sends verification and welcome emails via SMTP.

In development (no SMTP configured), emails are printed to the console
so you can see what *would* be sent without configuring a mail server.

Failures are logged and reported as False; nothing is raised back to
the caller.
"""

from __future__ import annotations

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib

from app.config import (
    APP_NAME,
    APP_URL,
    EMAIL_TIMEOUT,
    OTP_TTL_MINUTES,
    SMTP_FROM_EMAIL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
    is_production,
    smtp_enabled,
)

logger = logging.getLogger(__name__)


def _wrap_html(title: str, body: str) -> str:
    return f"""
    <html>
    <body style="font-family:sans-serif;color:#333;background:#f4f4f5;padding:32px">
      <div style="max-width:420px;margin:0 auto;background:#fff;border-radius:12px;padding:32px">
        <h2 style="text-align:center">{title}</h2>
        {body}
      </div>
    </body>
    </html>
    """


def build_otp_email(code: str, name: str) -> tuple[str, str, str]:
    """Return (subject, plain, html) for a verification code email."""
    subject = f"Verify your {APP_NAME} account"
    plain = (
        f"Hi {name},\n\n"
        f"Your verification code is {code}.\n"
        f"It expires in {OTP_TTL_MINUTES} minutes.\n\n"
        "If you didn't create an account, you can ignore this email."
    )
    html = _wrap_html(
        f"Welcome to {APP_NAME}!",
        f"""
        <p style="text-align:center">Hi {escape(name)}, verify your email to get started.</p>
        <p style="text-align:center;font-size:32px;font-weight:bold;letter-spacing:8px">{code}</p>
        <p style="text-align:center;font-size:0.9em;color:#888">
          This code expires in <strong>{OTP_TTL_MINUTES} minutes</strong>.
          If you didn't create an account, you can safely ignore this email.
        </p>
        """,
    )
    return subject, plain, html


def build_welcome_email(name: str) -> tuple[str, str, str]:
    """Return (subject, plain, html) for the post-verification welcome email."""
    subject = f"Welcome to {APP_NAME}!"
    plain = f"Hi {name},\n\nYour account is now verified.\n\n{APP_URL}"
    html = _wrap_html(
        "You're all set!",
        f"""
        <p style="text-align:center">Hi {escape(name)}, your account is now verified.</p>
        <p style="text-align:center"><a href="{APP_URL}">Start exploring</a></p>
        """,
    )
    return subject, plain, html


class SmtpEmailSender:
    """EmailSender backed by aiosmtplib, with a console fallback."""

    def __init__(self, *, timeout: float = EMAIL_TIMEOUT) -> None:
        self._timeout = timeout

    async def send_otp(self, email: str, code: str, name: str) -> bool:
        subject, plain, html = build_otp_email(code, name)
        # Codes only reach the console outside production.
        shown = code if not is_production() else "******"
        return await self._send(email, subject, plain, html, preview=f"code {shown}")

    async def send_welcome(self, email: str, name: str) -> bool:
        subject, plain, html = build_welcome_email(name)
        return await self._send(email, subject, plain, html, preview="welcome")

    async def _send(self, to_email: str, subject: str, plain: str, html: str, *, preview: str) -> bool:
        # ── Console fallback (dev mode) ───────────────────────────────────
        if not smtp_enabled():
            logger.info(
                "📧 [DEV] Would send email to %s:\n  Subject: %s\n  (%s)",
                to_email,
                subject,
                preview,
            )
            return True

        # ── Real SMTP send ────────────────────────────────────────────────
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = SMTP_FROM_EMAIL
        msg["To"] = to_email
        msg.attach(MIMEText(plain, "plain"))
        msg.attach(MIMEText(html, "html"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=SMTP_HOST,
                port=SMTP_PORT,
                username=SMTP_USERNAME,
                password=SMTP_PASSWORD,
                start_tls=SMTP_USE_TLS,
                timeout=self._timeout,
            )
        except Exception:
            logger.exception("Failed to send email to %s (%s)", to_email, subject)
            return False

        logger.info("Email sent to %s (%s)", to_email, subject)
        return True
