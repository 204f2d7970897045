"""Build result email."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from perennial.build_server.config import BuildServerConfig

logger = logging.getLogger(__name__)

SMTP_PORT = 587


def send_email(subject: str, text: str, config: BuildServerConfig, to: Optional[str] = None) -> bool:
    """Send a plain text email. Returns False when email is not configured."""
    recipients = [address for address in (config.email_to, to) if address]
    if not (config.email_username and config.email_password and recipients):
        logger.info("Email not configured, skipping: %s", subject)
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = config.email_username
    message["To"] = ", ".join(dict.fromkeys(recipients))
    message.set_content(text)

    with smtplib.SMTP(config.email_server, SMTP_PORT, timeout=30) as smtp:
        smtp.starttls()
        smtp.login(config.email_username, config.email_password)
        smtp.send_message(message)
    logger.info("Sent email '%s' to %s", subject, message["To"])
    return True
