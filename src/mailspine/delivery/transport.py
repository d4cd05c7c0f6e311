"""Send collaborators — the transport-level mail-sending call.

The dispatch core only depends on the :class:`Transport` protocol::

    send(recipient, subject, body) -> None    # raises on failure

A raised exception is a delivery failure; its ``str()`` is stored verbatim
as the Send's ``last_error``.

Implementations:
    - SmtpTransport: stdlib ``smtplib`` (STARTTLS + login when configured)
    - MockTransport: logs and succeeds (selected when no SMTP host is set)
"""

from __future__ import annotations

import smtplib
import threading
from collections.abc import Iterable
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

from mailspine.core.errors import ConfigError, DeliveryError
from mailspine.core.logging import get_logger
from mailspine.core.settings import MailSpineSettings

logger = get_logger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Contract for the external send collaborator."""

    name: str

    def send(self, recipient: str, subject: str, body: str) -> None:
        """Deliver one message or raise."""
        ...


def build_message(sender: str, recipient: str, subject: str, body: str) -> EmailMessage:
    """Plain-text UTF-8 message with From/To/Subject headers."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.set_content(body, charset="utf-8")
    return msg


class SmtpTransport:
    """Deliver through an SMTP relay, one connection per message."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        sender: str = "no-reply@example.com",
        starttls: bool = True,
        timeout: float | None = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.starttls = starttls
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> None:
        msg = build_message(self.sender, recipient, subject, body)
        try:
            kwargs = {"timeout": self.timeout} if self.timeout else {}
            with smtplib.SMTP(self.host, self.port, **kwargs) as server:
                if self.starttls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"{type(exc).__name__}: {exc}", cause=exc).with_context(
                recipient=recipient
            ) from exc

    def __repr__(self) -> str:
        return f"SmtpTransport({self.host!r}, {self.port})"


class MockTransport:
    """Log-only transport that always succeeds unless told otherwise.

    ``fail_for`` lists recipients that should fail, which is handy for
    exercising the ``completed_with_errors`` path locally.
    """

    name = "mock"

    def __init__(self, fail_for: Iterable[str] = ()) -> None:
        self.fail_for = frozenset(fail_for)
        self._lock = threading.Lock()
        self.sent: list[tuple[str, str, str]] = []

    def send(self, recipient: str, subject: str, body: str) -> None:
        if recipient in self.fail_for:
            raise DeliveryError(f"mock failure for {recipient}")
        logger.info("mock_send", to=recipient, subject=subject, body_len=len(body))
        with self._lock:
            self.sent.append((recipient, subject, body))


def build_transport(settings: MailSpineSettings) -> Transport:
    """SMTP when ``smtp_host`` is configured, otherwise the mock transport."""
    if not settings.smtp_host:
        return MockTransport()
    if bool(settings.smtp_user) != bool(settings.smtp_password):
        raise ConfigError("smtp_user and smtp_password must be set together")
    return SmtpTransport(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.smtp_from,
        starttls=settings.smtp_starttls,
        timeout=settings.effective_send_timeout,
    )
