"""
Job operations.

Create, list and inspect bulk-message jobs. These are the functions the
API and CLI call; they validate input, talk to :class:`MailStore` and raise
:class:`MailSpineError` subclasses that both surfaces know how to render.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mailspine.core.errors import JobNotFoundError, ValidationError
from mailspine.core.logging import get_logger
from mailspine.core.models import Job, Send, utcnow
from mailspine.core.store import MailStore

logger = get_logger(__name__)


@dataclass
class JobDetail:
    """A job plus the distribution of its Sends."""

    job: Job
    send_counts: dict[str, int] = field(default_factory=dict)
    sends: list[Send] | None = None

    @property
    def total_sends(self) -> int:
        return sum(self.send_counts.values())

    def to_dict(self) -> dict[str, Any]:
        data = self.job.to_dict()
        data["send_counts"] = dict(self.send_counts)
        data["total_sends"] = self.total_sends
        if self.sends is not None:
            data["sends"] = [s.to_dict() for s in self.sends]
        return data


def parse_scheduled_at(value: str | int | float | datetime | None) -> datetime:
    """Normalize a due time to an aware UTC datetime.

    Accepts ``None`` or blank text (meaning now), a ``datetime``, RFC 3339
    text, or unix seconds as a number or digit string. Naive values are
    taken to be UTC.

    Raises:
        ValidationError: For anything else.
    """
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValidationError("invalid scheduled_at", field="scheduled_at", value=value)
    if isinstance(value, (int, float)):
        return _from_unix(value)

    text = str(value).strip()
    if not text:
        return utcnow()
    if text.lstrip("-").isdigit():
        return _from_unix(int(text))
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(
            "invalid scheduled_at", field="scheduled_at", value=value, cause=exc
        ) from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _from_unix(seconds: int | float) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValidationError(
            "invalid scheduled_at", field="scheduled_at", value=seconds, cause=exc
        ) from exc


def schedule_job(
    store: MailStore,
    subject: str | None,
    body: str | None,
    scheduled_at: str | int | float | datetime | None = None,
) -> Job:
    """Create a ``pending`` job; subject and body are trimmed and required."""
    subject = (subject or "").strip()
    body = (body or "").strip()
    if not subject or not body:
        raise ValidationError("subject and body required", field="subject" if not subject else "body")

    due = parse_scheduled_at(scheduled_at)
    job = store.create_job(subject, body, due)
    logger.info("job_scheduled", job_id=job.id, scheduled_at=job.scheduled_at.isoformat())
    return job


def list_jobs(store: MailStore) -> list[Job]:
    """All jobs, newest first."""
    return store.list_jobs()


def get_job_detail(store: MailStore, job_id: str, *, include_sends: bool = False) -> JobDetail:
    """Job with its Send status counts.

    Raises:
        JobNotFoundError: If no such job exists.
    """
    job = store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return JobDetail(
        job=job,
        send_counts=store.send_status_counts(job_id),
        sends=store.list_sends(job_id) if include_sends else None,
    )
