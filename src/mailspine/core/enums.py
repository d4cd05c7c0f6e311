"""Job and Send status state machines.

Valid transition graphs::

    JobStatus
        PENDING  → RUNNING
        RUNNING  → COMPLETED | COMPLETED_WITH_ERRORS | FAILED
        COMPLETED, COMPLETED_WITH_ERRORS, FAILED → (terminal)

    SendStatus
        QUEUED   → SENDING | FAILED
        SENDING  → SENT | FAILED
        SENT, FAILED → (terminal)

``QUEUED → FAILED`` exists only for the dispatcher's delivery deadline,
which expires Sends that never reached a worker.

The store expresses every edge as a conditional ``UPDATE ... WHERE status
= <expected prior>``; the tables here are the single definition of which
edges exist.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum


class InvalidTransitionError(ValueError):
    """Raised when an illegal state transition is attempted."""

    def __init__(self, current: str, target: str, enum_name: str = "Status") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} → {target}")


class JobStatus(str, Enum):
    """Lifecycle of a bulk-messaging job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not JOB_VALID_TRANSITIONS[self]

    def can_transition_to(self, target: JobStatus) -> bool:
        return target in JOB_VALID_TRANSITIONS[self]

    @classmethod
    def from_send_counts(cls, counts: Mapping[str, int]) -> JobStatus:
        """Terminal job status for a fully-converged Send distribution.

        Any ``failed`` Send makes the job ``completed_with_errors``; zero
        Sends (no subscribers) is vacuously ``completed``.

        Raises:
            ValueError: If any Send is still ``queued`` or ``sending``.
        """
        unfinished = sum(counts.get(s.value, 0) for s in SendStatus if not s.is_terminal)
        if unfinished:
            raise ValueError(f"{unfinished} send(s) have not reached a terminal status")
        if counts.get(SendStatus.FAILED.value, 0) > 0:
            return cls.COMPLETED_WITH_ERRORS
        return cls.COMPLETED


class SendStatus(str, Enum):
    """Lifecycle of one per-recipient delivery."""

    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not SEND_VALID_TRANSITIONS[self]

    def can_transition_to(self, target: SendStatus) -> bool:
        return target in SEND_VALID_TRANSITIONS[self]


JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({
        JobStatus.COMPLETED,
        JobStatus.COMPLETED_WITH_ERRORS,
        JobStatus.FAILED,
    }),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.COMPLETED_WITH_ERRORS: frozenset(),
    JobStatus.FAILED: frozenset(),
}

SEND_VALID_TRANSITIONS: dict[SendStatus, frozenset[SendStatus]] = {
    SendStatus.QUEUED: frozenset({SendStatus.SENDING, SendStatus.FAILED}),
    SendStatus.SENDING: frozenset({SendStatus.SENT, SendStatus.FAILED}),
    SendStatus.SENT: frozenset(),
    SendStatus.FAILED: frozenset(),
}

UNFINISHED_SEND_STATUSES = frozenset(s for s in SendStatus if not s.is_terminal)


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_job_transition(JobStatus.PENDING, JobStatus.RUNNING)
        >>> validate_job_transition(JobStatus.COMPLETED, JobStatus.RUNNING)
        Traceback (most recent call last):
        ...
        InvalidTransitionError: Invalid JobStatus transition: completed → running
    """
    if not current.can_transition_to(target):
        raise InvalidTransitionError(current.value, target.value, "JobStatus")


def sources_for(target: JobStatus | SendStatus) -> tuple[str, ...]:
    """Prior statuses from which *target* is reachable, as raw values.

    Used by the store to build ``WHERE status IN (...)`` guards.
    """
    table: Mapping = JOB_VALID_TRANSITIONS if isinstance(target, JobStatus) else SEND_VALID_TRANSITIONS
    return tuple(sorted(src.value for src, targets in table.items() if target in targets))
