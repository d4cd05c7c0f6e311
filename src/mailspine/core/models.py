"""Domain records for subscribers, jobs and per-recipient sends.

These are plain dataclasses hydrated from store rows; the store is the only
source of truth, so instances are snapshots and never mutated in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from mailspine.core.enums import JobStatus, SendStatus


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Serialize a datetime for storage (UTC, sortable ISO-8601)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Subscriber:
    """A recipient address. Immutable after creation."""

    id: str
    email: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> Subscriber:
        return cls(id=row["id"], email=row["email"], created_at=from_iso(row["created_at"]))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "created_at": self.created_at.isoformat()}


@dataclass(frozen=True)
class Job:
    """A time-triggered bulk message."""

    id: str
    subject: str
    body: str
    scheduled_at: datetime
    status: JobStatus
    created_at: datetime
    completed_at: datetime | None = None
    dropped_count: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_due(self, now: datetime) -> bool:
        return self.status is JobStatus.PENDING and self.scheduled_at <= now

    @classmethod
    def from_row(cls, row: Any) -> Job:
        return cls(
            id=row["id"],
            subject=row["subject"],
            body=row["body"],
            scheduled_at=from_iso(row["scheduled_at"]),
            status=JobStatus(row["status"]),
            created_at=from_iso(row["created_at"]),
            completed_at=from_iso(row["completed_at"]),
            dropped_count=row["dropped_count"] or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "body": self.body,
            "scheduled_at": self.scheduled_at.isoformat(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "completed_at": _iso_or_none(self.completed_at),
            "dropped_count": self.dropped_count,
        }


@dataclass(frozen=True)
class Send:
    """Delivery record for one (job, subscriber) pair."""

    id: str
    job_id: str
    subscriber_id: str
    email: str
    status: SendStatus
    attempts: int
    created_at: datetime
    last_error: str | None = None
    sent_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> Send:
        return cls(
            id=row["id"],
            job_id=row["job_id"],
            subscriber_id=row["subscriber_id"],
            email=row["email"],
            status=SendStatus(row["status"]),
            attempts=row["attempts"],
            created_at=from_iso(row["created_at"]),
            last_error=row["last_error"],
            sent_at=from_iso(row["sent_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "subscriber_id": self.subscriber_id,
            "email": self.email,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "sent_at": _iso_or_none(self.sent_at),
        }


@dataclass(frozen=True)
class DeliveryTask:
    """In-memory message describing one recipient delivery."""

    send_id: str
    job_id: str
    email: str
    subject: str
    body: str


@dataclass
class DispatchResult:
    """Outcome of expanding and running one claimed job."""

    job_id: str
    status: JobStatus
    send_count: int = 0
    dropped_count: int = 0
    timed_out: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "send_count": self.send_count,
            "dropped_count": self.dropped_count,
            "timed_out": self.timed_out,
            "error": self.error,
        }
