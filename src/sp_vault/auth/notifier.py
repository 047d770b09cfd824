"""
One-time code delivery.

The authentication flow hands each issued code to a ``Notifier``. A
notifier reports failure by returning False; it never raises into the
login flow, which turns the failure into ``NotificationFailed``.
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

from ..core.config import Settings

logger = logging.getLogger(__name__)

EMAIL_SUBJECT = "SP Vault - Your Login Verification Code"


class Notifier(ABC):
    """Delivers a one-time code to the owner of an identity."""

    @abstractmethod
    def send(self, identity_key: str, code: str) -> bool:
        """Deliver code. Returns True on success, False on failure."""


class EmailNotifier(Notifier):
    """Send codes over SMTP with STARTTLS (Gmail app passwords work)."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        sender: Optional[str] = None,
        ttl_minutes: int = 10,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.ttl_minutes = ttl_minutes
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender or None,
            ttl_minutes=max(1, settings.otp_ttl_seconds // 60),
        )

    def build_message(self, recipient: str, code: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = EMAIL_SUBJECT
        msg["From"] = self.sender
        msg["To"] = recipient
        msg.set_content(
            f"Your SP Vault login verification code is: {code}\n\n"
            f"This code will expire in {self.ttl_minutes} minutes.\n\n"
            "If you didn't request this code, please ignore this email."
        )
        return msg

    def send(self, identity_key: str, code: str) -> bool:
        msg = self.build_message(identity_key, code)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send verification code to %s: %s", identity_key, exc)
            return False

        logger.info("Verification code sent to %s", identity_key)
        return True


class UnconfiguredNotifier(Notifier):
    """Stand-in when SMTP is not configured: every delivery fails."""

    def send(self, identity_key: str, code: str) -> bool:
        logger.error(
            "Cannot send verification code to %s: email delivery is not configured",
            identity_key,
        )
        return False


class LoggingNotifier(Notifier):
    """Development notifier: writes the code to the application log.

    Only built when SP_VAULT_DEV_LOG_CODES is set. Never enable in
    production, the log then holds live login codes.
    """

    def send(self, identity_key: str, code: str) -> bool:
        logger.warning(
            "Development delivery; verification code for %s is %s",
            identity_key,
            code,
        )
        return True


def build_notifier(settings: Settings) -> Notifier:
    """Pick the delivery channel for issued codes.

    SMTP when credentials are configured. Otherwise codes go to the log
    only if dev_log_codes is set, and every send fails if it is not.
    """
    if settings.email_configured:
        return EmailNotifier.from_settings(settings)
    if settings.dev_log_codes:
        logger.warning("SP_VAULT_DEV_LOG_CODES is set; login codes will be written to the log")
        return LoggingNotifier()
    logger.warning("SMTP is not configured; logins cannot complete until it is")
    return UnconfiguredNotifier()
