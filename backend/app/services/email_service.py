"""Outbound account mail.

Delivery belongs to a separate mail service; this module only defines the
seam the auth flows call and a sender that logs instead of sending.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    def send_verification_email(self, email: str, username: str, token: str) -> None: ...

    def send_password_reset_email(self, email: str, username: str, token: str) -> None: ...

    def send_password_reset_confirmation(self, email: str, username: str) -> None: ...


class LoggingMailSender:
    """Records mail intents in the log. Token values are not logged."""

    def send_verification_email(self, email: str, username: str, token: str) -> None:
        logger.info("Verification email queued for %s (%s)", username, email)

    def send_password_reset_email(self, email: str, username: str, token: str) -> None:
        logger.info("Password reset email queued for %s (%s)", username, email)

    def send_password_reset_confirmation(self, email: str, username: str) -> None:
        logger.info("Password reset confirmation queued for %s (%s)", username, email)


mail_sender: MailSender = LoggingMailSender()
