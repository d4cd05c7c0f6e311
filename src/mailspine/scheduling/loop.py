"""Scheduler loop — finds due jobs, claims them, starts supervised dispatch.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER LOOP                                                               │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   Daemon thread:                                                              │
│      tick()                                                                   │
│      while not stop_event.wait(interval):                                     │
│          tick()                                                               │
│                                                                               │
│   tick(now):                                                                  │
│      reap finished dispatch threads                                           │
│      for job in store.due_jobs(now):                                          │
│          if store.claim_job(job.id):      pending → running (conditional)     │
│              spawn dispatch thread        tracked by job id                   │
│          else: skip (claimed elsewhere)                                       │
│                                                                               │
│   stop(drain=True):                                                           │
│      stop_event.set(); join loop thread; join in-flight dispatches            │
└──────────────────────────────────────────────────────────────────────────────┘

A tick never waits for dispatch to finish. A store error during a tick is
logged and the rest of the tick abandoned; the next tick sees the same
pending jobs again, and claiming is conditional, so retrying is safe.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mailspine.core.errors import ClaimConflict, JobNotFoundError
from mailspine.core.logging import get_logger
from mailspine.core.models import Job, utcnow
from mailspine.core.store import MailStore
from mailspine.execution.dispatcher import JobDispatcher

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Statistics for the scheduler loop."""

    tick_count: int = 0
    jobs_claimed: int = 0
    claims_skipped: int = 0
    ticks_failed: int = 0
    dispatches_finished: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "jobs_claimed": self.jobs_claimed,
            "claims_skipped": self.claims_skipped,
            "ticks_failed": self.ticks_failed,
            "dispatches_finished": self.dispatches_finished,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for the scheduler loop."""

    healthy: bool
    interval_seconds: float
    inflight: list[str] = field(default_factory=list)
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "interval_seconds": self.interval_seconds,
            "inflight": list(self.inflight),
            "stats": self.stats.to_dict(),
        }


class SchedulerLoop:
    """Periodic due-job poller with supervised, tracked dispatch threads.

    Example:
        >>> loop = SchedulerLoop(store, dispatcher, interval=5.0)
        >>> loop.tick()          # one synchronous pass, returns claimed ids
        ['8c1f...']
        >>> loop.start()
        >>> # ... later ...
        >>> loop.stop(drain=True)
    """

    name = "thread"

    def __init__(self, store: MailStore, dispatcher: JobDispatcher, *, interval: float = 5.0) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.store = store
        self.dispatcher = dispatcher
        self.interval = interval

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._inflight: dict[str, threading.Thread] = {}
        self._inflight_lock = threading.Lock()
        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._started = False

    # === Lifecycle ===

    def start(self) -> None:
        """Run ticks on a daemon thread until :meth:`stop`."""
        if self._started:
            logger.warning("scheduler_already_started")
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("scheduler_started", interval=self.interval)
            self.tick()
            while not self._stop_event.wait(self.interval):
                self.tick()
            logger.info("scheduler_loop_exited")

        self._thread = threading.Thread(target=_loop, daemon=True, name="mail-scheduler")
        self._thread.start()
        self._started = True

    def stop(self, drain: bool = True, timeout: float | None = None) -> None:
        """Stop ticking; with *drain*, wait for in-flight dispatches to finish.

        Draining also covers dispatches started by :meth:`trigger` on a loop
        that was never started.
        """
        if self._started:
            self._stop_event.set()
            if self._thread:
                self._thread.join(timeout=timeout)
                if self._thread.is_alive():
                    logger.warning("scheduler_thread_did_not_stop")
            self._started = False

        if drain:
            self.drain(timeout=timeout)
        logger.info("scheduler_stopped", inflight=len(self.inflight()))

    def drain(self, timeout: float | None = None) -> bool:
        """Join every in-flight dispatch thread. Returns True if all finished."""
        with self._inflight_lock:
            threads = list(self._inflight.values())
        for t in threads:
            t.join(timeout=timeout)
        self._reap()
        return not self.inflight()

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    # === Tick Processing ===

    def tick(self, now: datetime | None = None) -> list[str]:
        """One scheduling pass. Returns the ids of jobs claimed by this tick."""
        now = now or utcnow()
        with self._stats_lock:
            self._stats.tick_count += 1
            self._stats.last_tick = now

        self._reap()
        claimed: list[str] = []
        try:
            due = self.store.due_jobs(now)
            if not due:
                logger.debug("no_jobs_due")
                return claimed

            logger.info("jobs_due", count=len(due))
            for job in due:
                if not self.store.claim_job(job.id):
                    with self._stats_lock:
                        self._stats.claims_skipped += 1
                    logger.debug("claim_skipped", job_id=job.id)
                    continue
                with self._stats_lock:
                    self._stats.jobs_claimed += 1
                logger.info("job_claimed", job_id=job.id)
                claimed.append(job.id)
                self._spawn(job)
        except Exception as exc:
            with self._stats_lock:
                self._stats.ticks_failed += 1
                self._stats.last_error = str(exc)
            logger.exception("tick_failed", claimed=len(claimed))
        return claimed

    def trigger(self, job_id: str) -> str:
        """Claim and dispatch one pending job now, ignoring its due time.

        Raises:
            JobNotFoundError: If the job does not exist.
            ClaimConflict: If the job is no longer ``pending``.
        """
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if not self.store.claim_job(job_id):
            raise ClaimConflict(job_id)
        with self._stats_lock:
            self._stats.jobs_claimed += 1
        logger.info("job_triggered", job_id=job_id)
        self._spawn(job)
        return job_id

    def _spawn(self, job: Job) -> None:
        thread = threading.Thread(
            target=self._supervise,
            args=(job,),
            name=f"dispatch-{job.id[:8]}",
            daemon=True,
        )
        with self._inflight_lock:
            self._inflight[job.id] = thread
        thread.start()

    def _supervise(self, job: Job) -> None:
        try:
            self.dispatcher.dispatch(job)
        except Exception:
            logger.exception("dispatch_crashed", job_id=job.id)
        finally:
            with self._stats_lock:
                self._stats.dispatches_finished += 1

    def _reap(self) -> None:
        with self._inflight_lock:
            for job_id in [j for j, t in self._inflight.items() if not t.is_alive()]:
                del self._inflight[job_id]

    # === Health & Stats ===

    def inflight(self) -> list[str]:
        """Job ids whose dispatch thread is still alive."""
        with self._inflight_lock:
            return [j for j, t in self._inflight.items() if t.is_alive()]

    def stats(self) -> SchedulerStats:
        with self._stats_lock:
            return SchedulerStats(**{k: getattr(self._stats, k) for k in self._stats.__dataclass_fields__})

    def health(self) -> SchedulerHealth:
        return SchedulerHealth(
            healthy=self.is_running,
            interval_seconds=self.interval,
            inflight=self.inflight(),
            stats=self.stats(),
        )
