"""Job dispatcher — expands one claimed job into Sends and waits them out.

Runs on its own supervised thread, started by the scheduler loop after a
successful claim. The dispatcher never touches the network; it only writes
rows and hands tasks to the worker pool.

Steps::

    1. enumerate subscribers ────── error ──► job failed, no Sends
    2. insert one queued Send each  (insert error ──► recipient dropped)
    3. register countdown, submit tasks in enumeration order
    4. wait for completion ──────── deadline ──► expire unfinished Sends
    5. finalize from the Send distribution

Terminal status:
    - every Send sent           → completed
    - at least one Send failed  → completed_with_errors
    - expansion failed          → failed

Dropped recipients do not change the status; their count is stored on the
job row (``dropped_count``) and logged.
"""

from __future__ import annotations

from mailspine.core.enums import JobStatus
from mailspine.core.errors import ExpansionError
from mailspine.core.logging import LogContext, get_logger
from mailspine.core.models import DeliveryTask, DispatchResult, Job, Subscriber
from mailspine.core.store import MailStore
from mailspine.execution.completion import CompletionTracker
from mailspine.execution.pool import WorkerPool

logger = get_logger(__name__)

DEADLINE_REASON = "delivery deadline exceeded"


class JobDispatcher:
    """Expand, submit, wait and finalize a single claimed job.

    One instance is shared by every dispatch thread; per-job state lives in
    the store and in the completion tracker.

    Example:
        >>> dispatcher = JobDispatcher(store, pool, tracker, deadline=3600.0)
        >>> result = dispatcher.dispatch(job)
        >>> result.status
        <JobStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        store: MailStore,
        pool: WorkerPool,
        tracker: CompletionTracker,
        *,
        deadline: float | None = None,
    ) -> None:
        self.store = store
        self.pool = pool
        self.tracker = tracker
        self.deadline = deadline

    def dispatch(self, job: Job) -> DispatchResult:
        """Run a job that this process has already moved to ``running``."""
        with LogContext(job_id=job.id):
            logger.info("dispatch_started", subject=job.subject)
            try:
                result = self._run(job)
            except Exception as exc:
                logger.exception("dispatch_error")
                result = self._recover(job, exc)
            finally:
                self.tracker.discard(job.id)
            logger.info("dispatch_finished", **result.to_dict())
            return result

    def _run(self, job: Job) -> DispatchResult:
        try:
            subscribers = self.store.list_subscribers()
        except Exception as exc:
            error = ExpansionError(f"subscriber enumeration failed: {exc}", cause=exc)
            logger.error("expansion_failed", code=error.code, error=str(error))
            self.store.finish_job(job.id, JobStatus.FAILED)
            return DispatchResult(job_id=job.id, status=JobStatus.FAILED, error=str(error))

        tasks, dropped = self._expand(job, subscribers)
        if dropped:
            logger.warning("recipients_dropped", dropped=dropped, subscribers=len(subscribers))
            self.store.record_dropped(job.id, dropped)

        self.tracker.register(job.id, len(tasks))
        for task in tasks:
            self.pool.submit(task)
        logger.debug("tasks_submitted", count=len(tasks))

        timed_out = not self.tracker.wait(job.id, timeout=self.deadline)
        if timed_out:
            expired = self.store.expire_unfinished_sends(job.id, DEADLINE_REASON)
            logger.warning("dispatch_deadline_exceeded", deadline=self.deadline, expired=expired)

        status = self._finalize(job)
        return DispatchResult(
            job_id=job.id,
            status=status,
            send_count=len(tasks),
            dropped_count=dropped,
            timed_out=timed_out,
        )

    def _expand(self, job: Job, subscribers: list[Subscriber]) -> tuple[list[DeliveryTask], int]:
        tasks: list[DeliveryTask] = []
        dropped = 0
        for subscriber in subscribers:
            try:
                send = self.store.insert_send(job.id, subscriber)
            except Exception as exc:
                dropped += 1
                logger.debug("send_insert_failed", email=subscriber.email, error=str(exc))
                continue
            tasks.append(
                DeliveryTask(
                    send_id=send.id,
                    job_id=job.id,
                    email=subscriber.email,
                    subject=job.subject,
                    body=job.body,
                )
            )
        return tasks, dropped

    def _finalize(self, job: Job) -> JobStatus:
        counts = self.store.send_status_counts(job.id)
        status = JobStatus.from_send_counts(counts)
        if not self.store.finish_job(job.id, status):
            logger.warning("finalize_skipped", status=status.value)
        return status

    def _recover(self, job: Job, exc: Exception) -> DispatchResult:
        """Finalize a job whose dispatch raised, so it never stays ``running``."""
        try:
            self.store.expire_unfinished_sends(job.id, f"dispatch aborted: {exc}")
            counts = self.store.send_status_counts(job.id)
            status = JobStatus.from_send_counts(counts) if counts else JobStatus.FAILED
            self.store.finish_job(job.id, status)
        except Exception:
            logger.exception("dispatch_recovery_failed")
            status = JobStatus.FAILED
        return DispatchResult(job_id=job.id, status=status, error=str(exc))
