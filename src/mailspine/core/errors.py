"""
Structured error types for mail-spine.

Every error raised by the core carries a machine-readable ``code`` (used by
the HTTP layer to pick a status), a category, optional context metadata and
an optional chained cause.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      MailSpineError                              │
        │  (code, category, context, cause)                                │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError       ValidationError      NotFoundError            │
        │  (CONFIG)          (VALIDATION)         (NOT_FOUND)              │
        │                                              │                   │
        │                                         JobNotFoundError         │
        │                                                                  │
        │  StoreError        DeliveryError        DispatchError            │
        │  (DATABASE)        (DELIVERY)           (ORCHESTRATION)          │
        │       │                                      │                   │
        │  DuplicateSubscriberError              ExpansionError            │
        │                                        ClaimConflict             │
        └─────────────────────────────────────────────────────────────────┘

Failure scopes:
    - ``ClaimConflict`` is informational: another actor owns the job.
    - ``ExpansionError`` is job-fatal: the job goes to ``failed``.
    - ``StoreError`` on a single Send insert is recipient-fatal.
    - ``DeliveryError`` is recipient-fatal and recorded on the Send.

Usage:
    from mailspine.core.errors import DeliveryError

    try:
        smtp.send_message(msg)
    except smtplib.SMTPException as e:
        raise DeliveryError(f"smtp rejected {recipient}", cause=e)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
    DELIVERY = "DELIVERY"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error."""

    job_id: str | None = None
    send_id: str | None = None
    recipient: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.job_id:
            result["job_id"] = self.job_id
        if self.send_id:
            result["send_id"] = self.send_id
        if self.recipient:
            result["recipient"] = self.recipient
        if self.metadata:
            result.update(self.metadata)
        return result


class MailSpineError(Exception):
    """Base exception for all mail-spine errors.

    Subclasses set ``default_category`` and ``code``; instances may add
    context fluently with :meth:`with_context`.

    Examples:
        >>> error = MailSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(job_id="j-1").context.job_id
        'j-1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MailSpineError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION / INPUT ERRORS
# =============================================================================


class ConfigError(MailSpineError):
    """Configuration is missing or invalid."""

    default_category = ErrorCategory.CONFIG
    code = "INVALID_CONFIG"


class ValidationError(MailSpineError):
    """Caller-supplied data is invalid (empty subject, bad due time, ...)."""

    default_category = ErrorCategory.VALIDATION
    code = "VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class NotFoundError(MailSpineError):
    """A requested record does not exist."""

    default_category = ErrorCategory.VALIDATION
    code = "NOT_FOUND"


class JobNotFoundError(NotFoundError):
    """No job with the given id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", context=ErrorContext(job_id=job_id))
        self.job_id = job_id


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StoreError(MailSpineError):
    """A durable-store statement failed."""

    default_category = ErrorCategory.DATABASE
    code = "STORE_ERROR"


class DuplicateSubscriberError(StoreError):
    """A subscriber with this e-mail address already exists."""

    code = "CONFLICT"

    def __init__(self, email: str, *, cause: Exception | None = None):
        super().__init__(
            f"Subscriber already exists: {email}",
            context=ErrorContext(recipient=email),
            cause=cause,
        )
        self.email = email


# =============================================================================
# DELIVERY / ORCHESTRATION ERRORS
# =============================================================================


class DeliveryError(MailSpineError):
    """The send collaborator could not deliver one message.

    ``str(error)`` is what ends up in ``sends.last_error``.
    """

    default_category = ErrorCategory.DELIVERY
    code = "DELIVERY_FAILED"


class DispatchError(MailSpineError):
    """Base for errors raised while expanding or running a job."""

    default_category = ErrorCategory.ORCHESTRATION
    code = "DISPATCH_FAILED"


class ExpansionError(DispatchError):
    """The job could not be expanded into per-recipient Sends."""


class ClaimConflict(DispatchError):
    """Another actor already moved the job out of ``pending``."""

    code = "CONFLICT"

    def __init__(self, job_id: str):
        super().__init__(f"Job already claimed: {job_id}", context=ErrorContext(job_id=job_id))
        self.job_id = job_id


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MailSpineError",
    "ConfigError",
    "ValidationError",
    "NotFoundError",
    "JobNotFoundError",
    "StoreError",
    "DuplicateSubscriberError",
    "DeliveryError",
    "DispatchError",
    "ExpansionError",
    "ClaimConflict",
]
