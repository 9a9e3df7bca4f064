"""
Mail transports used by the delivery engine.

A transport sends exactly one message and returns the provider's message
identifier, or raises TransportError with the provider diagnostic.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from ..config import Settings
from ..errors import ConfigError, TransportError
from .models import EmailMessage

logger = logging.getLogger(__name__)


class MailTransport(ABC):
    """Abstract send-one-message capability."""

    name = 'transport'

    @abstractmethod
    async def send(self, message: EmailMessage) -> str:
        """
        Send a single message.

        Returns:
            Provider message identifier

        Raises:
            TransportError: If the provider rejects or fails the send
        """


class ThreadedTransport(MailTransport):
    """Runs a blocking client in a worker thread."""

    async def send(self, message: EmailMessage) -> str:
        return await asyncio.to_thread(self._send_blocking, message)

    @abstractmethod
    def _send_blocking(self, message: EmailMessage) -> str:
        ...


class SendGridTransport(ThreadedTransport):
    """
    Sender for newsletter emails.

    Uses SendGrid to send one email per recipient.
    """

    name = 'sendgrid'

    def __init__(self, api_key: str, sender_email: str, sender_name: str = 'Market Digest'):
        if not api_key:
            raise ConfigError("SendGrid API key is missing")
        if not sender_email:
            raise ConfigError("Sender email is missing")
        self.client = SendGridAPIClient(api_key)
        self.sender_email = sender_email
        self.sender_name = sender_name

    def _send_blocking(self, message: EmailMessage) -> str:
        mail = Mail(
            from_email=(self.sender_email, self.sender_name),
            to_emails=message.to,
            subject=message.subject,
            html_content=message.html,
            plain_text_content=message.text,
        )
        try:
            response = self.client.send(mail)
        except Exception as e:
            # python_http_client raises HTTPError subclasses carrying the response body
            body = getattr(e, 'body', '') or str(e)
            if isinstance(body, bytes):
                body = body.decode('utf-8', errors='replace')
            raise TransportError(f"SendGrid rejected message to {message.to}", diagnostic=body) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"SendGrid returned status {response.status_code} for {message.to}",
                diagnostic=str(response.body),
            )
        headers = response.headers or {}
        return headers.get('X-Message-Id') or make_msgid()


class SmtpTransport(ThreadedTransport):
    """Sends email through an SMTP server (implicit TLS on 465, STARTTLS otherwise)."""

    name = 'smtp'

    def __init__(self, host: str, port: int, username: str, password: str,
                 sender_name: str = "Market Digest", sender_email: Optional[str] = None, timeout: float = 30.0):
        if not host:
            raise ConfigError("SMTP host is missing")
        if not username or not password:
            raise ConfigError("SMTP credentials are missing")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender_name = sender_name
        self.sender_email = sender_email or username
        self.timeout = timeout

    def _build(self, message: EmailMessage, message_id: str) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = formataddr((self.sender_name, self.sender_email))
        msg['To'] = message.to
        msg['Message-ID'] = message_id
        if message.text:
            msg.attach(MIMEText(message.text, 'plain'))
        msg.attach(MIMEText(message.html, 'html'))
        return msg

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        server.starttls()
        return server

    def _send_blocking(self, message: EmailMessage) -> str:
        message_id = make_msgid()
        msg = self._build(message, message_id)
        try:
            with self._connect() as server:
                server.login(self.username, self.password)
                server.sendmail(self.sender_email, [message.to], msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise TransportError("SMTP authentication failed", diagnostic=str(e)) from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Failed to send email to {message.to}", diagnostic=str(e)) from e
        return message_id


def build_transport(settings: Settings) -> MailTransport:
    """
    Create the transport selected by EMAIL_SERVICE.

    Raises:
        ConfigError: If the service is unknown or its credentials are missing
    """
    service = settings.email_service
    if service == 'sendgrid':
        return SendGridTransport(
            settings.sendgrid_api_key, settings.from_address, settings.email_sender_name
        )
    if service in ('smtp', 'gmail'):
        host = settings.smtp_host or ('smtp.gmail.com' if service == 'gmail' else None)
        return SmtpTransport(
            host=host,
            port=settings.smtp_port,
            username=settings.email_user,
            password=settings.email_app_password,
            sender_name=settings.email_sender_name,
            sender_email=settings.from_address,
            timeout=settings.send_timeout,
        )
    raise ConfigError(f"Unknown EMAIL_SERVICE: {service!r}")
