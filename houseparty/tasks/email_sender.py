"""Transactional email over SMTP.

When smtp_host is empty nothing is sent; the message is logged instead so
local development and tests work without a mail server.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from houseparty.config import settings

logger = logging.getLogger(__name__)


def _deliver(to: str, subject: str, body: str) -> None:
    """Blocking SMTP send; runs in a thread executor."""
    if not settings.smtp_host:
        logger.warning("SMTP not configured; skipping email to %s: %s", to, subject)
        return

    msg = MIMEMultipart("alternative")
    msg["From"] = settings.smtp_from
    msg["To"] = to
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.ehlo()
        server.starttls()
        if settings.smtp_user:
            server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.smtp_from, [to], msg.as_string())

    logger.info("Email sent to %s: %s", to, subject)


async def send_email(to: str, subject: str, body: str) -> bool:
    """Send an email without blocking the event loop.

    Failures are logged and reported through the return value; they never
    propagate, so a mail-server outage cannot fail the request that triggered
    the email.
    """
    try:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _deliver, to, subject, body)
        return True
    except Exception as exc:
        logger.error("Failed to send email to %s (%s): %s", to, subject, exc)
        return False


async def send_otp_email(to: str, code: str) -> bool:
    subject = f"{settings.app_name} - Email Verification Code"
    body = (
        "Hello,\n\n"
        f"Thank you for registering with {settings.app_name}! "
        "To complete your registration, use this verification code:\n\n"
        f"    {code}\n\n"
        f"This code will expire in {settings.otp_expire_minutes} minutes.\n"
        "If you didn't request this code, please ignore this email.\n"
    )
    return await send_email(to, subject, body)


async def send_phone_otp_email(to: str, code: str) -> bool:
    subject = f"{settings.app_name} - Phone Verification Code"
    body = (
        "Hello,\n\n"
        "Use this code to verify the phone number on your account:\n\n"
        f"    {code}\n\n"
        f"This code will expire in {settings.otp_expire_minutes} minutes.\n"
        "If you didn't request this code, please ignore this email.\n"
    )
    return await send_email(to, subject, body)


async def send_password_reset_email(to: str, code: str) -> bool:
    subject = f"{settings.app_name} - Password Reset Code"
    body = (
        "Hello,\n\n"
        "We received a request to reset your password. Use this code to reset it:\n\n"
        f"    {code}\n\n"
        f"This code will expire in {settings.otp_expire_minutes} minutes.\n"
        "If you didn't request this code, please ignore this email.\n"
    )
    return await send_email(to, subject, body)


async def send_invitation_email(to: str, sender_name: str, party_name: str, party_id: int) -> bool:
    subject = f"{settings.app_name} - {sender_name} invited you to a party!"
    body = (
        "Hello,\n\n"
        f"{sender_name} has invited you to join '{party_name}' on {settings.app_name}!\n\n"
        f"Join the party: {settings.base_url}/parties/{party_id}\n\n"
        "If you don't have the app yet, download it from the App Store or Google Play.\n"
    )
    return await send_email(to, subject, body)
