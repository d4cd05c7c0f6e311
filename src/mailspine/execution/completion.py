"""Completion detection — when has every Send of a job become terminal?

Two strategies share one interface so the dispatcher does not care which
is configured:

┌──────────────────────────────────────────────────────────────────────────────┐
│  CountdownTracker (default)                                                   │
│    register(job, n)  ── counter = n                                           │
│    task_done(job)    ── counter -= 1, notify at 0   (called by workers)       │
│    wait(job)         ── Condition.wait_for(counter == 0), then confirm        │
│                         count_unfinished_sends == 0 against the store         │
│                                                                               │
│  PollingTracker                                                               │
│    wait(job)         ── re-query count_unfinished_sends every poll_interval   │
└──────────────────────────────────────────────────────────────────────────────┘

Both return ``False`` when the optional deadline expires first.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol

from mailspine.core.errors import StoreError
from mailspine.core.logging import get_logger
from mailspine.core.store import MailStore

logger = get_logger(__name__)


class CompletionTracker(Protocol):
    """Contract between dispatcher (waiter) and worker pool (signaller)."""

    def register(self, job_id: str, expected: int) -> None: ...

    def task_done(self, job_id: str) -> None: ...

    def wait(self, job_id: str, timeout: float | None = None) -> bool: ...

    def discard(self, job_id: str) -> None: ...


def _poll_until_finished(
    store: MailStore,
    job_id: str,
    interval: float,
    deadline: float | None,
) -> bool:
    """Poll until no Send is unfinished; store read errors are retried."""
    while True:
        remaining: int | None
        try:
            remaining = store.count_unfinished_sends(job_id)
        except StoreError as exc:
            remaining = None
            logger.warning("completion_check_failed", job_id=job_id, error=str(exc))
        if remaining == 0:
            return True
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("completion_deadline_expired", job_id=job_id, unfinished=remaining)
            return False
        sleep_for = interval
        if deadline is not None:
            sleep_for = max(0.0, min(interval, deadline - time.monotonic()))
        time.sleep(sleep_for)


class PollingTracker:
    """Re-query the store at a fixed cadence until no Send is unfinished.

    Detection latency is at most one ``poll_interval`` after the last Send
    becomes terminal.
    """

    name = "polling"

    def __init__(self, store: MailStore, poll_interval: float = 1.0) -> None:
        self.store = store
        self.poll_interval = poll_interval

    def register(self, job_id: str, expected: int) -> None:
        pass

    def task_done(self, job_id: str) -> None:
        pass

    def wait(self, job_id: str, timeout: float | None = None) -> bool:
        deadline = time.monotonic() + timeout if timeout is not None else None
        return _poll_until_finished(self.store, job_id, self.poll_interval, deadline)

    def discard(self, job_id: str) -> None:
        pass


class CountdownTracker:
    """Per-job countdown signalled by workers.

    The countdown covers tasks that reached a worker; the final store check
    covers anything the countdown cannot see (a worker whose terminal write
    failed). The check shares the polling loop, so unfinished Sends or a
    failed store read keep it polling for the rest of the deadline.

    Example:
        >>> tracker = CountdownTracker(store)
        >>> tracker.register("job-1", 2)
        >>> tracker.task_done("job-1"); tracker.task_done("job-1")
        >>> tracker.wait("job-1", timeout=1.0)
        True
    """

    name = "countdown"

    def __init__(self, store: MailStore, poll_interval: float = 1.0) -> None:
        self.store = store
        self.poll_interval = poll_interval
        self._remaining: dict[str, int] = {}
        self._cond = threading.Condition()

    def register(self, job_id: str, expected: int) -> None:
        with self._cond:
            self._remaining[job_id] = expected
            self._cond.notify_all()

    def task_done(self, job_id: str) -> None:
        with self._cond:
            if job_id not in self._remaining:
                return
            self._remaining[job_id] -= 1
            if self._remaining[job_id] <= 0:
                self._cond.notify_all()

    def remaining(self, job_id: str) -> int | None:
        with self._cond:
            return self._remaining.get(job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> bool:
        deadline = time.monotonic() + timeout if timeout is not None else None
        with self._cond:
            done = self._cond.wait_for(lambda: self._remaining.get(job_id, 0) <= 0, timeout=timeout)
        if not done:
            logger.warning("completion_deadline_expired", job_id=job_id, unfinished=self.remaining(job_id))
            return False

        return _poll_until_finished(self.store, job_id, self.poll_interval, deadline)

    def discard(self, job_id: str) -> None:
        with self._cond:
            self._remaining.pop(job_id, None)

    def active_jobs(self) -> list[str]:
        with self._cond:
            return list(self._remaining)
