"""Send collaborators (SMTP and mock transports)."""

from mailspine.delivery.transport import (
    MockTransport,
    SmtpTransport,
    Transport,
    build_message,
    build_transport,
)

__all__ = ["MockTransport", "SmtpTransport", "Transport", "build_message", "build_transport"]
