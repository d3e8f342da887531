"""Email delivery backends used by the notification dispatcher."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Iterable, Optional, Protocol

from services.notifications import RenderedAlert
from settings import Settings

logger = logging.getLogger(__name__)

SENDER_NAME = "Project Barfani Alert System"


@dataclass(frozen=True)
class DeliveryReport:
    success: bool
    recipients: tuple[str, ...] = field(default_factory=tuple)
    language: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    demo: bool = False


class Mailer(Protocol):
    def send(self, alert: RenderedAlert, recipients: Iterable[str]) -> DeliveryReport:
        ...


class LoggingMailer:
    """Logs alerts instead of sending them; used when no SMTP host is set."""

    def __init__(self, sender: str) -> None:
        self.sender = sender

    def send(self, alert: RenderedAlert, recipients: Iterable[str]) -> DeliveryReport:
        to = tuple(sorted(recipients))
        logger.info(
            "Email alert logged (demo mode): %s",
            alert.subject,
            extra={"language": alert.language, "recipient_count": len(to)},
        )
        return DeliveryReport(success=True, recipients=to, language=alert.language, demo=True)


class SmtpMailer:
    """Delivers rendered alerts over SMTP, one connection per message."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, alert: RenderedAlert, recipients: Iterable[str]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((SENDER_NAME, self.sender))
        message["To"] = ", ".join(sorted(recipients))
        message["Subject"] = alert.subject
        message["Message-ID"] = make_msgid(domain=self.sender.partition("@")[2] or None)
        if alert.priority == "high":
            message["X-Priority"] = "1"
        message.set_content(alert.text_body)
        message.add_alternative(alert.html_body, subtype="html")
        return message

    def send(self, alert: RenderedAlert, recipients: Iterable[str]) -> DeliveryReport:
        to = tuple(sorted(recipients))
        message = self.build_message(alert, to)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                if self.use_tls:
                    client.starttls()
                if self.username and self.password:
                    client.login(self.username, self.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            return DeliveryReport(
                success=False, recipients=to, language=alert.language, error=str(exc)
            )
        return DeliveryReport(
            success=True,
            recipients=to,
            language=alert.language,
            message_id=message["Message-ID"],
        )


def build_mailer(settings: Settings) -> Mailer:
    if not settings.smtp_host:
        return LoggingMailer(sender=settings.alert_sender)
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.alert_sender,
        username=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )
