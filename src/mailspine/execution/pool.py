"""Bounded worker pool — executes delivery tasks concurrently.

A fixed number of daemon threads pull :class:`DeliveryTask` messages from
one shared bounded queue. Submission blocks while the queue is full, which
back-pressures the dispatcher instead of letting fan-out grow without limit.

Per task::

    queued ──mark_send_sending──► sending ──transport.send()──┬─► sent
                                                             └─► failed (last_error)

A delivery failure is recorded on the Send and logged; the worker moves on
to its next task. Nothing a single task does can stop a worker thread.

Usage::

    pool = WorkerPool(store, MockTransport(), tracker, worker_count=4)
    pool.start()
    pool.submit(task)        # blocks while the queue is full
    ...
    pool.close()             # drains queued tasks, then joins the workers
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import Any

from mailspine.core.logging import get_logger
from mailspine.core.models import DeliveryTask
from mailspine.core.store import MailStore
from mailspine.delivery.transport import Transport
from mailspine.execution.completion import CompletionTracker
from mailspine.execution.timeout import run_with_timeout

logger = get_logger(__name__)

_STOP = object()


@dataclass
class PoolStats:
    """Aggregate counters for a worker pool."""

    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class WorkerPool:
    """Fixed-size pool of delivery workers over a bounded task queue."""

    def __init__(
        self,
        store: MailStore,
        transport: Transport,
        tracker: CompletionTracker | None = None,
        *,
        worker_count: int = 4,
        queue_capacity: int = 1000,
        send_timeout: float | None = None,
        name: str = "mail-worker",
    ) -> None:
        """
        Args:
            store: Durable store holding the Send rows.
            transport: Send collaborator invoked once per task.
            tracker: Completion tracker notified after each task.
            worker_count: Number of worker threads.
            queue_capacity: Maximum queued tasks before ``submit`` blocks.
            send_timeout: Per-send deadline in seconds; ``None`` disables.
            name: Thread name prefix.
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        if queue_capacity < 1:
            raise ValueError(f"queue_capacity must be >= 1, got {queue_capacity}")

        self.store = store
        self.transport = transport
        self.tracker = tracker
        self.worker_count = worker_count
        self.queue_capacity = queue_capacity
        self.send_timeout = send_timeout
        self._name = name

        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_capacity)
        self._threads: list[threading.Thread] = []
        self._stats = PoolStats()
        self._stats_lock = threading.Lock()
        self._running = False
        self._state_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        with self._state_lock:
            if self._running:
                logger.warning("pool_already_started", pool=self._name)
                return
            self._threads = [
                threading.Thread(
                    target=self._worker_loop,
                    args=(idx,),
                    name=f"{self._name}-{idx}",
                    daemon=True,
                )
                for idx in range(1, self.worker_count + 1)
            ]
            for t in self._threads:
                t.start()
            self._running = True
        logger.info(
            "pool_started",
            pool=self._name,
            workers=self.worker_count,
            queue_capacity=self.queue_capacity,
            transport=getattr(self.transport, "name", type(self.transport).__name__),
        )

    def close(self, wait: bool = True, timeout: float | None = None) -> None:
        """Stop accepting tasks; workers finish what is queued, then exit.

        *timeout* bounds the whole call: queueing the stop signals and joining
        the workers. Workers still busy when it runs out are left running as
        daemon threads.
        """
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            threads = list(self._threads)

        deadline = time.monotonic() + timeout if timeout is not None else None
        for queued, _ in enumerate(threads):
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                self._queue.put(_STOP, timeout=remaining)
            except queue.Full:
                logger.warning(
                    "worker_did_not_stop",
                    pool=self._name,
                    reason="queue full",
                    stop_signals=queued,
                    queue_depth=self.queue_depth(),
                )
                break
        if wait:
            for t in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                t.join(timeout=remaining)
                if t.is_alive():
                    logger.warning("worker_did_not_stop", thread=t.name)
        logger.info("pool_stopped", pool=self._name, **self.stats().to_dict())

    @property
    def is_running(self) -> bool:
        return self._running and any(t.is_alive() for t in self._threads)

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def submit(self, task: DeliveryTask, timeout: float | None = None) -> None:
        """Enqueue one task, blocking while the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
            queue.Full: If *timeout* elapses before a slot frees up.
        """
        if not self._running:
            raise RuntimeError(f"WorkerPool {self._name!r} is not running")
        self._queue.put(task, timeout=timeout)

    def join_queue(self) -> None:
        """Block until every submitted task has been processed."""
        self._queue.join()

    def queue_depth(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------ #
    # Workers
    # ------------------------------------------------------------------ #

    def _worker_loop(self, idx: int) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._execute(idx, task)
            except Exception:
                with self._stats_lock:
                    self._stats.errors += 1
                logger.exception("worker_task_error", worker=idx, send_id=getattr(task, "send_id", None))
            finally:
                self._queue.task_done()

    def _execute(self, idx: int, task: DeliveryTask) -> None:
        try:
            with self._stats_lock:
                self._stats.processed += 1

            if not self.store.mark_send_sending(task.send_id):
                # Already terminal, e.g. expired by the dispatcher deadline
                with self._stats_lock:
                    self._stats.skipped += 1
                logger.info("send_skipped", worker=idx, job_id=task.job_id, send_id=task.send_id)
                return

            try:
                run_with_timeout(
                    self.transport.send,
                    self.send_timeout,
                    operation="send",
                    args=(task.email, task.subject, task.body),
                )
            except Exception as exc:
                error_text = str(exc) or type(exc).__name__
                self.store.mark_send_failed(task.send_id, error_text)
                with self._stats_lock:
                    self._stats.failed += 1
                logger.warning(
                    "send_failed",
                    worker=idx,
                    job_id=task.job_id,
                    email=task.email,
                    error=error_text,
                )
                return

            if not self.store.mark_send_sent(task.send_id):
                # Expired while the transport call was in flight
                logger.warning("send_result_discarded", worker=idx, job_id=task.job_id, email=task.email)
                return
            with self._stats_lock:
                self._stats.sent += 1
            logger.info("send_succeeded", worker=idx, job_id=task.job_id, email=task.email)
        finally:
            if self.tracker is not None:
                self.tracker.task_done(task.job_id)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def stats(self) -> PoolStats:
        with self._stats_lock:
            return PoolStats(**self._stats.to_dict())

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "workers": self.worker_count,
            "workers_alive": sum(1 for t in self._threads if t.is_alive()),
            "queue_depth": self.queue_depth(),
            "queue_capacity": self.queue_capacity,
            **self.stats().to_dict(),
        }
