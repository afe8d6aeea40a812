"""SMTP email adapter for dead-letter escalations."""

import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

import structlog

from consults.channel.email_port import EmailPort, EmailResult

logger = structlog.get_logger(__name__)


class SmtpEmailAdapter(EmailPort):
    def __init__(self, host, port=587, username=None, password=None, sender="no-reply@rxgate.local", use_tls=True):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls

    def send(self, to, subject, body):
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP send failed", to=to, error=str(exc))
            return EmailResult(sent=False, error=str(exc))

        return EmailResult(sent=True, message_id=message["Message-ID"])
