"""Outgoing mail for goal notifications."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import List, Optional, Sequence

from .notifications import Notification

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 5


class EmailClient:
    """Deliver notification mail over SMTP.

    Without a configured host, or when the relay refuses a message, the
    message is parked in a local outbox, see :meth:`deliveries`.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        sender: str = "noreply@spaardoel.local",
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self._credentials = (username, password) if username and password else None
        self.use_tls = use_tls
        self._undelivered: List[EmailMessage] = []

    def build_message(self, subject: str, body: str, *, recipients: Sequence[str]) -> EmailMessage:
        message = EmailMessage()
        for header, value in (("Subject", subject), ("From", self.sender), ("To", ", ".join(recipients))):
            message[header] = value
        message.set_content(body)
        return message

    def _relay(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self._credentials is not None:
                smtp.login(*self._credentials)
            smtp.send_message(message)

    def send(self, message: EmailMessage) -> bool:
        """Return ``True`` when the relay accepted ``message``."""

        if not self.host:
            logger.debug("No SMTP host configured, keeping mail for %s", message["To"])
            self._undelivered.append(message)
            return False
        try:
            self._relay(message)
        except (OSError, smtplib.SMTPException) as exc:  # pragma: no cover - needs a live relay
            logger.warning("SMTP delivery to %s failed: %s", message["To"], exc)
            self._undelivered.append(message)
            return False
        logger.info("Mail '%s' sent to %s", message["Subject"], message["To"])
        return True

    def send_notification(self, notification: Notification, address: str) -> bool:
        return self.send(self.build_message(notification.subject, notification.body, recipients=[address]))

    def deliveries(self) -> Sequence[EmailMessage]:
        """Messages kept locally instead of being relayed."""

        return tuple(self._undelivered)


__all__ = ["EmailClient"]
