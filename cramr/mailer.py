"""Outgoing email for verification codes."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib
from anyio import from_thread

from .config import settings

logger = logging.getLogger("uvicorn.error")

SIGNATURE = "Thank you,\nThe Cramr Team"


async def send_email(
    to_email: str, subject: str, body: str, *, to_name: str | None = None
) -> bool:
    """Send a plain text email; return ``False`` instead of raising on failure."""
    if not settings.smtp_host:
        logger.warning("SMTP host not configured; dropping mail to %s", to_email)
        return False

    message = EmailMessage()
    message["From"] = f"{settings.mail_from_name} <{settings.mail_from}>"
    message["To"] = f"{to_name} <{to_email}>" if to_name else to_email
    message["Subject"] = subject
    message.set_content(body)

    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            start_tls=True,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
        )
    except (aiosmtplib.SMTPException, OSError):
        logger.exception("Failed to send %r to %s", subject, to_email)
        return False
    return True


def deliver(to_email: str, subject: str, body: str, *, to_name: str | None = None) -> bool:
    """Blocking wrapper for sync route handlers running in the worker pool."""
    return from_thread.run(
        lambda: send_email(to_email, subject, body, to_name=to_name)
    )


def send_reset_code(email: str, username: str, code: str) -> bool:
    body = (
        f"Hello {username},\n\n"
        "You have requested to reset your password. Use the following "
        f"verification code to proceed:\n\n{code}\n\n"
        f"This code will expire in {settings.reset_code_ttl_minutes} minutes. "
        "If you did not request a password reset, please ignore this email.\n\n"
        f"{SIGNATURE}"
    )
    return deliver(
        email, "Password Reset Verification Code", body, to_name=username
    )


def send_otp(email: str, username: str, code: str) -> bool:
    body = (
        f"Hello {username},\n\n"
        f"You have tried to log in and your One Time Passcode is {code}. "
        "If you did not request a One Time Password, please change your "
        "password as soon as possible.\n\n"
        f"{SIGNATURE}"
    )
    return deliver(email, "Your One Time Passcode", body, to_name=username)
