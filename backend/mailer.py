"""SMTP transport shared by one reminder run."""
import logging
import os
import smtplib
import ssl
import threading
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
DEFAULT_TIMEOUT_SECONDS = 30


class MailConfigError(RuntimeError):
    """SMTP settings are missing or unusable."""


class MailTransportError(RuntimeError):
    """The SMTP server could not be reached or refused the session."""


@dataclass(frozen=True)
class MailSettings:
    host: str
    port: int
    username: str
    password: str = field(repr=False)
    from_addr: str
    reply_to: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def implicit_tls(self):
        return self.port == IMPLICIT_TLS_PORT

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        host = (env.get('SMTP_HOST') or 'smtp.gmail.com').strip()
        user = (env.get('SMTP_USER') or '').strip()
        password = env.get('SMTP_PASSWORD') or ''
        if not user or not password:
            raise MailConfigError(
                "SMTP_USER and SMTP_PASSWORD environment variables are required for sending emails"
            )
        try:
            port = int(env.get('SMTP_PORT') or 587)
        except ValueError as exc:
            raise MailConfigError(f"SMTP_PORT must be an integer: {env.get('SMTP_PORT')!r}") from exc
        try:
            timeout = float(env.get('SMTP_TIMEOUT') or DEFAULT_TIMEOUT_SECONDS)
        except ValueError as exc:
            raise MailConfigError(f"SMTP_TIMEOUT must be a number: {env.get('SMTP_TIMEOUT')!r}") from exc
        return cls(
            host=host,
            port=port,
            username=user,
            password=password,
            from_addr=(env.get('SMTP_FROM') or user).strip(),
            reply_to=(env.get('SMTP_REPLY_TO') or '').strip() or None,
            timeout=timeout,
        )


@dataclass(frozen=True)
class SendResult:
    accepted: Tuple[str, ...] = ()
    rejected: Tuple[str, ...] = ()
    pending: Tuple[str, ...] = ()

    def delivered_to(self, recipient):
        """Accepted or pending counts as sent; a rejection never does."""
        return recipient not in self.rejected and (recipient in self.accepted or recipient in self.pending)


def build_message(settings, to_addr, subject, html_body, text_body):
    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = settings.from_addr
    msg['To'] = to_addr
    if settings.reply_to:
        msg['Reply-To'] = settings.reply_to
    msg['Auto-Submitted'] = 'auto-generated'
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype='html')
    return msg


class SMTPTransport:
    """
    One authenticated SMTP session, opened once per run and closed at the end.

    Usage:
        with SMTPTransport(MailSettings.from_env()) as transport:
            transport.verify()
            transport.send(to_addr, subject, html, text)
    """

    def __init__(self, settings):
        self.settings = settings
        self._server = None
        self._lock = threading.Lock()
        self._dropped = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def open(self):
        s = self.settings
        try:
            if s.implicit_tls:
                server = smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout, context=ssl.create_default_context())
            else:
                server = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
                server.ehlo()
                if server.has_extn('starttls'):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
            server.login(s.username, s.password)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailTransportError(f"Could not connect to SMTP server {s.host}:{s.port}: {exc}") from exc
        self._server = server
        self._dropped = False
        logger.info("SMTP connection opened to %s:%s", s.host, s.port)
        return self

    def verify(self):
        """Round-trip a NOOP so a dead session fails before any recipient is processed."""
        if self._server is None:
            raise MailTransportError("SMTP transport is not open")
        try:
            code, message = self._server.noop()
        except (smtplib.SMTPException, OSError) as exc:
            raise MailTransportError(f"SMTP verification failed: {exc}") from exc
        if code != 250:
            raise MailTransportError(f"SMTP verification failed: {code} {message!r}")
        return True

    def send(self, to_addr, subject, html_body, text_body):
        """
        Send one digest. A dropped connection fails this recipient only; the
        next call reconnects before sending.
        """
        msg = build_message(self.settings, to_addr, subject, html_body, text_body)
        with self._lock:
            if self._server is None and self._dropped:
                logger.info("Reconnecting to SMTP server %s:%s", self.settings.host, self.settings.port)
                self.open()
            if self._server is None:
                raise MailTransportError("SMTP transport is not open")
            try:
                refused = self._server.send_message(msg)
            except smtplib.SMTPRecipientsRefused as exc:
                return SendResult(rejected=tuple(exc.recipients))
            except smtplib.SMTPServerDisconnected as exc:
                self._server = None
                self._dropped = True
                raise MailTransportError(f"SMTP connection lost while sending to {to_addr}: {exc}") from exc
        if to_addr in refused:
            return SendResult(rejected=(to_addr,))
        return SendResult(accepted=(to_addr,))

    def close(self):
        self._dropped = False
        server, self._server = self._server, None
        if server is None:
            return
        try:
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.debug("Ignoring error while closing SMTP connection: %s", exc)
