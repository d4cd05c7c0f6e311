"""
Shared pytest fixtures for mail-spine tests.

This module provides:
- In-memory store and fast-cadence settings
- Transports (mock, hanging) and a running worker pool
- A ``wait_until`` poller for asserting on background threads

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_something(store, add_subscribers, dispatcher):
        ...
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator
from datetime import timedelta
from pathlib import Path

import pytest
import structlog

from mailspine.core.models import Job, utcnow
from mailspine.core.settings import MailSpineSettings
from mailspine.core.store import MailStore
from mailspine.delivery.transport import MockTransport
from mailspine.execution.completion import CountdownTracker
from mailspine.execution.dispatcher import JobDispatcher
from mailspine.execution.pool import WorkerPool


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any configure_logging() a test performed."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Store / settings
# =============================================================================


@pytest.fixture
def store() -> Generator[MailStore, None, None]:
    s = MailStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "mail_spine.db")


@pytest.fixture
def settings() -> MailSpineSettings:
    """Settings tuned for fast tests (short intervals, small pool)."""
    return MailSpineSettings(
        _env_file=None,
        database_path=":memory:",
        worker_count=2,
        queue_capacity=10,
        scheduler_interval=0.05,
        completion_poll_interval=0.01,
        send_timeout=2.0,
        dispatch_deadline=5.0,
        log_json=True,
        run_background=False,
        uploads_dir=None,
    )


@pytest.fixture
def add_subscribers(store: MailStore) -> Callable[..., list]:
    def _add(*emails: str) -> list:
        return [store.add_subscriber(e) for e in emails]

    return _add


@pytest.fixture
def due_job(store: MailStore) -> Callable[..., Job]:
    """Factory for a pending job due now (or *offset* from now)."""

    def _make(subject: str = "Hello", body: str = "World", offset: timedelta = timedelta(0)) -> Job:
        return store.create_job(subject, body, utcnow() + offset)

    return _make


@pytest.fixture
def claimed_job(store: MailStore, due_job: Callable[..., Job]) -> Callable[..., Job]:
    """Factory for a job already moved to ``running``."""

    def _make(**kwargs) -> Job:
        job = due_job(**kwargs)
        assert store.claim_job(job.id)
        return store.get_job(job.id)

    return _make


# =============================================================================
# Transports
# =============================================================================


class HangingTransport:
    """Blocks every send until ``release`` is set."""

    name = "hanging"

    def __init__(self) -> None:
        self.release = threading.Event()
        self.started = threading.Event()

    def send(self, recipient: str, subject: str, body: str) -> None:
        self.started.set()
        self.release.wait(10)


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def hanging_transport() -> Generator[HangingTransport, None, None]:
    t = HangingTransport()
    yield t
    t.release.set()


# =============================================================================
# Execution
# =============================================================================


@pytest.fixture
def tracker(store: MailStore) -> CountdownTracker:
    return CountdownTracker(store, poll_interval=0.01)


@pytest.fixture
def pool(store: MailStore, transport: MockTransport, tracker: CountdownTracker) -> Generator[WorkerPool, None, None]:
    p = WorkerPool(store, transport, tracker, worker_count=2, queue_capacity=10, send_timeout=2.0)
    p.start()
    yield p
    p.close(timeout=5.0)


@pytest.fixture
def dispatcher(store: MailStore, pool: WorkerPool, tracker: CountdownTracker) -> JobDispatcher:
    return JobDispatcher(store, pool, tracker, deadline=5.0)


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll *predicate* until true or *timeout* seconds elapse."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
