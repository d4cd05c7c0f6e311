"""
Composition root — wires store, transport, worker pool, completion tracking,
dispatcher and scheduler loop into one startable service.

Manifesto:
    Components never construct their collaborators. ``MailService`` is the
    one place that reads :class:`MailSpineSettings` and decides which
    transport and completion strategy to use, so the API and CLI share a
    single wiring.

Lifecycle::

    service = MailService.from_settings(settings)
    service.start()        # worker threads + scheduler thread
    ...
    service.stop()         # stop ticking, drain dispatches, close pool

Shutdown order matters: the scheduler is stopped (and in-flight dispatches
drained) before the pool is closed, so no dispatcher ever submits into a
closed pool.
"""

from __future__ import annotations

from typing import Any

from mailspine import __version__
from mailspine.core.logging import get_logger
from mailspine.core.settings import CompletionMode, MailSpineSettings, get_settings
from mailspine.core.store import MailStore
from mailspine.delivery.transport import Transport, build_transport
from mailspine.execution.completion import CompletionTracker, CountdownTracker, PollingTracker
from mailspine.execution.dispatcher import JobDispatcher
from mailspine.execution.pool import WorkerPool
from mailspine.scheduling.loop import SchedulerLoop

logger = get_logger(__name__)


def build_tracker(settings: MailSpineSettings, store: MailStore) -> CompletionTracker:
    if settings.completion_mode is CompletionMode.POLLING:
        return PollingTracker(store, poll_interval=settings.completion_poll_interval)
    return CountdownTracker(store, poll_interval=settings.completion_poll_interval)


class MailService:
    """Running instance of the dispatch core."""

    def __init__(
        self,
        settings: MailSpineSettings,
        store: MailStore,
        transport: Transport,
        *,
        tracker: CompletionTracker | None = None,
        owns_store: bool = False,
    ) -> None:
        self.settings = settings
        self.store = store
        self.transport = transport
        self.tracker = tracker or build_tracker(settings, store)
        self.pool = WorkerPool(
            store,
            transport,
            self.tracker,
            worker_count=settings.worker_count,
            queue_capacity=settings.queue_capacity,
            send_timeout=settings.effective_send_timeout,
        )
        self.dispatcher = JobDispatcher(
            store,
            self.pool,
            self.tracker,
            deadline=settings.effective_dispatch_deadline,
        )
        self.scheduler = SchedulerLoop(store, self.dispatcher, interval=settings.scheduler_interval)
        self._owns_store = owns_store

    @classmethod
    def from_settings(
        cls,
        settings: MailSpineSettings | None = None,
        *,
        store: MailStore | None = None,
        transport: Transport | None = None,
    ) -> MailService:
        """Build a service, opening the store and transport from *settings*."""
        settings = settings or get_settings()
        owns_store = store is None
        store = store or MailStore(settings.database_path)
        transport = transport or build_transport(settings)
        return cls(settings, store, transport, owns_store=owns_store)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self, *, scheduler: bool = True) -> None:
        """Start the worker pool and, unless told otherwise, the scheduler."""
        self.pool.start()
        if scheduler:
            self.scheduler.start()
        logger.info(
            "service_started",
            version=__version__,
            database=self.store.path,
            transport=getattr(self.transport, "name", type(self.transport).__name__),
            completion=getattr(self.tracker, "name", type(self.tracker).__name__),
        )

    def stop(self, drain: bool = True, timeout: float | None = None) -> None:
        self.scheduler.stop(drain=drain, timeout=timeout)
        self.pool.close(wait=True, timeout=timeout)
        if self._owns_store:
            self.store.close()
        logger.info("service_stopped")

    def __enter__(self) -> MailService:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def trigger(self, job_id: str) -> str:
        """Dispatch a pending job immediately.

        Raises:
            JobNotFoundError: Unknown job.
            ClaimConflict: The job has already left ``pending``.
        """
        if not self.pool.is_running:
            self.pool.start()
        return self.scheduler.trigger(job_id)

    def health(self) -> dict[str, Any]:
        scheduler = self.scheduler.health()
        pool = self.pool.health()
        return {
            "healthy": scheduler.healthy and pool["healthy"],
            "version": __version__,
            "scheduler": scheduler.to_dict(),
            "pool": pool,
            "completion": getattr(self.tracker, "name", type(self.tracker).__name__),
            "transport": getattr(self.transport, "name", type(self.transport).__name__),
        }
