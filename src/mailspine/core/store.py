"""Durable state store — SQLite persistence for subscribers, jobs and sends.

Every component of the dispatch core reads and writes through
:class:`MailStore`; there is no in-memory copy of job or send state.

┌──────────────────────────────────────────────────────────────────────────────┐
│  MAIL STORE                                                                   │
│                                                                               │
│  Writers per transition:                                                      │
│  ├── Scheduler loop   claim_job()           pending → running                 │
│  ├── Job dispatcher   insert_send()         (new) → queued                    │
│  │                    finish_job()          running → terminal                │
│  │                    expire_unfinished()   queued|sending → failed           │
│  └── Worker pool      mark_send_sending()   queued → sending                  │
│                       mark_send_sent()      sending → sent                    │
│                       mark_send_failed()    queued|sending → failed           │
│                                                                               │
│  Every transition is ONE conditional UPDATE keyed on the expected prior       │
│  status, so terminal statuses are absorbing and a job is claimed at most      │
│  once even if several schedulers race.                                        │
└──────────────────────────────────────────────────────────────────────────────┘

Thread-safety:
    The store uses a single SQLite connection with ``check_same_thread=False``
    and serializes statements with a lock; SQLite does not support
    concurrent writers on one connection.
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from mailspine.core.enums import (
    UNFINISHED_SEND_STATUSES,
    JobStatus,
    SendStatus,
    sources_for,
    validate_job_transition,
)
from mailspine.core.errors import DuplicateSubscriberError, StoreError
from mailspine.core.logging import get_logger
from mailspine.core.models import Job, Send, Subscriber, to_iso, utcnow
from mailspine.core.schema import SCHEMA_SQL

logger = get_logger(__name__)

_UNFINISHED = tuple(sorted(s.value for s in UNFINISHED_SEND_STATUSES))


def _placeholders(values: tuple[Any, ...]) -> str:
    return ", ".join("?" for _ in values)


class MailStore:
    """SQLite-backed store for the dispatch core.

    Example:
        >>> store = MailStore(":memory:")
        >>> sub = store.add_subscriber("a@example.com")
        >>> job = store.create_job("Hi", "Body", utcnow())
        >>> store.claim_job(job.id)
        True
        >>> store.claim_job(job.id)
        False
    """

    def __init__(self, path: str | Path = ":memory:", *, init_schema: bool = True) -> None:
        """
        Args:
            path: SQLite database file, or ``":memory:"``.
            init_schema: Create tables if missing.
        """
        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False, timeout=30.0)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()

        if init_schema:
            self.init_schema()

    @property
    def path(self) -> str:
        return self._path

    def init_schema(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _write(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """Run one write statement group under the lock and commit it.

        ``sqlite3.Error`` is rolled back and re-raised as :class:`StoreError`.
        """
        with self._lock:
            try:
                cursor = self._conn.cursor()
                yield cursor
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(f"{operation} failed: {exc}", cause=exc) from exc

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"query failed: {exc}", cause=exc) from exc

    def _scalar(self, sql: str, params: tuple[Any, ...] = ()) -> Any:
        rows = self._query(sql, params)
        return rows[0][0] if rows else None

    # ------------------------------------------------------------------ #
    # Subscribers
    # ------------------------------------------------------------------ #

    def add_subscriber(self, email: str) -> Subscriber:
        """Insert a subscriber. Emails are unique and case-sensitive as stored.

        Raises:
            DuplicateSubscriberError: If the address already exists.
        """
        subscriber = Subscriber(id=str(uuid.uuid4()), email=email, created_at=utcnow())
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO subscribers (id, email, created_at) VALUES (?, ?, ?)",
                    (subscriber.id, subscriber.email, to_iso(subscriber.created_at)),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                raise DuplicateSubscriberError(email, cause=exc) from exc
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(f"add_subscriber failed: {exc}", cause=exc) from exc
        return subscriber

    def list_subscribers(self) -> list[Subscriber]:
        rows = self._query("SELECT id, email, created_at FROM subscribers ORDER BY created_at, rowid")
        return [Subscriber.from_row(r) for r in rows]

    def count_subscribers(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM subscribers")

    def delete_subscriber(self, subscriber_id: str) -> bool:
        """Administrative delete; cascades to the subscriber's Sends."""
        with self._write("delete_subscriber") as cur:
            cur.execute("DELETE FROM subscribers WHERE id = ?", (subscriber_id,))
            return cur.rowcount == 1

    # ------------------------------------------------------------------ #
    # Jobs
    # ------------------------------------------------------------------ #

    def create_job(self, subject: str, body: str, scheduled_at: datetime) -> Job:
        now = utcnow()
        job = Job(
            id=str(uuid.uuid4()),
            subject=subject,
            body=body,
            scheduled_at=scheduled_at,
            status=JobStatus.PENDING,
            created_at=now,
        )
        with self._write("create_job") as cur:
            cur.execute(
                "INSERT INTO jobs (id, subject, body, scheduled_at, status, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (job.id, subject, body, to_iso(scheduled_at), job.status.value, to_iso(now)),
            )
        return self.get_job(job.id) or job

    def get_job(self, job_id: str) -> Job | None:
        rows = self._query("SELECT * FROM jobs WHERE id = ?", (job_id,))
        return Job.from_row(rows[0]) if rows else None

    def list_jobs(self) -> list[Job]:
        """All jobs, newest first."""
        rows = self._query("SELECT * FROM jobs ORDER BY created_at DESC, rowid DESC")
        return [Job.from_row(r) for r in rows]

    def delete_job(self, job_id: str) -> bool:
        """Administrative delete; cascades to the job's Sends."""
        with self._write("delete_job") as cur:
            cur.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            return cur.rowcount == 1

    def due_jobs(self, now: datetime | None = None) -> list[Job]:
        """Jobs still ``pending`` whose scheduled-at is at or before *now*."""
        now = now or utcnow()
        rows = self._query(
            "SELECT * FROM jobs WHERE status = ? AND scheduled_at <= ? ORDER BY scheduled_at, rowid",
            (JobStatus.PENDING.value, to_iso(now)),
        )
        return [Job.from_row(r) for r in rows]

    def claim_job(self, job_id: str) -> bool:
        """Atomically transition ``pending → running``.

        Returns:
            True if this caller claimed the job, False if it was no longer
            pending (claimed by another actor, or unknown).
        """
        with self._write("claim_job") as cur:
            cur.execute(
                "UPDATE jobs SET status = ? WHERE id = ? AND status = ?",
                (JobStatus.RUNNING.value, job_id, JobStatus.PENDING.value),
            )
            return cur.rowcount == 1

    def finish_job(self, job_id: str, status: JobStatus, *, at: datetime | None = None) -> bool:
        """Move a ``running`` job to a terminal status and stamp completion time."""
        validate_job_transition(JobStatus.RUNNING, status)
        prior = sources_for(status)
        with self._write("finish_job") as cur:
            cur.execute(
                f"UPDATE jobs SET status = ?, completed_at = ? "
                f"WHERE id = ? AND status IN ({_placeholders(prior)})",
                (status.value, to_iso(at or utcnow()), job_id, *prior),
            )
            return cur.rowcount == 1

    def record_dropped(self, job_id: str, count: int) -> None:
        """Persist how many recipients were skipped because their Send insert failed."""
        with self._write("record_dropped") as cur:
            cur.execute("UPDATE jobs SET dropped_count = ? WHERE id = ?", (count, job_id))

    # ------------------------------------------------------------------ #
    # Sends
    # ------------------------------------------------------------------ #

    def insert_send(self, job_id: str, subscriber: Subscriber) -> Send:
        """Create the ``queued`` Send for one (job, subscriber) pair.

        Raises:
            StoreError: If the insert fails (constraint violation, I/O error).
        """
        now = utcnow()
        send = Send(
            id=str(uuid.uuid4()),
            job_id=job_id,
            subscriber_id=subscriber.id,
            email=subscriber.email,
            status=SendStatus.QUEUED,
            attempts=0,
            created_at=now,
        )
        with self._write("insert_send") as cur:
            cur.execute(
                "INSERT INTO sends (id, job_id, subscriber_id, email, status, attempts, created_at) "
                "VALUES (?, ?, ?, ?, ?, 0, ?)",
                (send.id, job_id, subscriber.id, subscriber.email, send.status.value, to_iso(now)),
            )
        return send

    def get_send(self, send_id: str) -> Send | None:
        rows = self._query("SELECT * FROM sends WHERE id = ?", (send_id,))
        return Send.from_row(rows[0]) if rows else None

    def list_sends(self, job_id: str) -> list[Send]:
        rows = self._query("SELECT * FROM sends WHERE job_id = ? ORDER BY created_at, rowid", (job_id,))
        return [Send.from_row(r) for r in rows]

    def mark_send_sending(self, send_id: str) -> bool:
        """``queued → sending`` and bump the attempt counter."""
        with self._write("mark_send_sending") as cur:
            cur.execute(
                "UPDATE sends SET status = ?, attempts = attempts + 1 WHERE id = ? AND status = ?",
                (SendStatus.SENDING.value, send_id, SendStatus.QUEUED.value),
            )
            return cur.rowcount == 1

    def mark_send_sent(self, send_id: str, *, at: datetime | None = None) -> bool:
        """``sending → sent`` and stamp sent time."""
        with self._write("mark_send_sent") as cur:
            cur.execute(
                "UPDATE sends SET status = ?, sent_at = ? WHERE id = ? AND status = ?",
                (SendStatus.SENT.value, to_iso(at or utcnow()), send_id, SendStatus.SENDING.value),
            )
            return cur.rowcount == 1

    def mark_send_failed(self, send_id: str, error: str) -> bool:
        """``queued|sending → failed`` storing the error text verbatim."""
        prior = sources_for(SendStatus.FAILED)
        with self._write("mark_send_failed") as cur:
            cur.execute(
                f"UPDATE sends SET status = ?, last_error = ? "
                f"WHERE id = ? AND status IN ({_placeholders(prior)})",
                (SendStatus.FAILED.value, error, send_id, *prior),
            )
            return cur.rowcount == 1

    def count_unfinished_sends(self, job_id: str) -> int:
        """Sends of the job still ``queued`` or ``sending``."""
        return self._scalar(
            f"SELECT COUNT(*) FROM sends WHERE job_id = ? AND status IN ({_placeholders(_UNFINISHED)})",
            (job_id, *_UNFINISHED),
        )

    def send_status_counts(self, job_id: str) -> dict[str, int]:
        rows = self._query(
            "SELECT status, COUNT(*) AS n FROM sends WHERE job_id = ? GROUP BY status",
            (job_id,),
        )
        return {r["status"]: r["n"] for r in rows}

    def expire_unfinished_sends(self, job_id: str, reason: str) -> int:
        """Fail every ``queued``/``sending`` Send of the job. Returns rows changed."""
        with self._write("expire_unfinished_sends") as cur:
            cur.execute(
                f"UPDATE sends SET status = ?, last_error = ? "
                f"WHERE job_id = ? AND status IN ({_placeholders(_UNFINISHED)})",
                (SendStatus.FAILED.value, reason, job_id, *_UNFINISHED),
            )
            return cur.rowcount

    def __repr__(self) -> str:
        return f"MailStore({self._path!r})"
