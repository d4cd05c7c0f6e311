"""
mail-spine core primitives.

Components:
- settings: MailSpineSettings (pydantic-settings)
- logging: structlog configuration and helpers
- errors: MailSpineError hierarchy
- enums: JobStatus / SendStatus state machines
- models: Subscriber, Job, Send, DeliveryTask, DispatchResult
- store: MailStore (SQLite durable state store)
"""

from mailspine.core.enums import (
    InvalidTransitionError,
    JobStatus,
    SendStatus,
    validate_job_transition,
)
from mailspine.core.errors import (
    ClaimConflict,
    ConfigError,
    DeliveryError,
    DuplicateSubscriberError,
    ExpansionError,
    JobNotFoundError,
    MailSpineError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from mailspine.core.models import DeliveryTask, DispatchResult, Job, Send, Subscriber, utcnow
from mailspine.core.store import MailStore

__all__ = [
    # enums
    "InvalidTransitionError",
    "JobStatus",
    "SendStatus",
    "validate_job_transition",
    # errors
    "ClaimConflict",
    "ConfigError",
    "DeliveryError",
    "DuplicateSubscriberError",
    "ExpansionError",
    "JobNotFoundError",
    "MailSpineError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
    # models
    "DeliveryTask",
    "DispatchResult",
    "Job",
    "Send",
    "Subscriber",
    "utcnow",
    # store
    "MailStore",
]
