"""Tests for SchedulerLoop — claiming, supervised dispatch, lifecycle."""

import threading
import time
from datetime import timedelta

import pytest

from mailspine.core.enums import JobStatus
from mailspine.core.errors import ClaimConflict, JobNotFoundError, StoreError
from mailspine.core.models import utcnow
from mailspine.execution.dispatcher import JobDispatcher
from mailspine.execution.pool import WorkerPool
from mailspine.scheduling.loop import SchedulerLoop


@pytest.fixture
def loop(store, dispatcher):
    sched = SchedulerLoop(store, dispatcher, interval=0.05)
    yield sched
    sched.stop(drain=True, timeout=5.0)


class TestTick:
    def test_claims_due_job_and_dispatches(self, store, loop, due_job, add_subscribers):
        add_subscribers("a@example.com")
        job = due_job()

        assert loop.tick() == [job.id]
        assert loop.drain(timeout=5.0)
        assert store.get_job(job.id).status is JobStatus.COMPLETED

    def test_future_job_stays_pending_until_due(self, store, loop, due_job):
        job = due_job(offset=timedelta(hours=1))

        for _ in range(3):
            assert loop.tick() == []
        assert store.get_job(job.id).status is JobStatus.PENDING

        later = utcnow() + timedelta(hours=1, seconds=1)
        assert loop.tick(now=later) == [job.id]
        assert loop.drain(timeout=5.0)
        assert store.get_job(job.id).status is JobStatus.COMPLETED

    def test_claimed_job_not_claimed_again(self, store, loop, due_job):
        job = due_job()
        assert loop.tick() == [job.id]
        assert loop.tick() == []
        assert loop.stats().jobs_claimed == 1

    def test_claim_conflict_is_skipped(self, store, loop, due_job, monkeypatch):
        job = due_job()
        # another actor wins the claim between query and update
        monkeypatch.setattr(store, "claim_job", lambda job_id: False)

        assert loop.tick() == []
        assert loop.stats().claims_skipped == 1
        assert store.get_job(job.id).status is JobStatus.PENDING

    def test_store_error_abandons_tick(self, store, loop, due_job, monkeypatch):
        job = due_job()
        original = store.due_jobs

        def broken(now=None):
            raise StoreError("database is locked")

        monkeypatch.setattr(store, "due_jobs", broken)
        assert loop.tick() == []
        stats = loop.stats()
        assert stats.ticks_failed == 1
        assert "database is locked" in stats.last_error

        # next tick retries the same pending job
        monkeypatch.setattr(store, "due_jobs", original)
        assert loop.tick() == [job.id]

    def test_tick_does_not_wait_for_dispatch(self, store, hanging_transport, tracker, due_job, add_subscribers):
        add_subscribers("a@example.com")
        pool = WorkerPool(store, hanging_transport, tracker, worker_count=1)
        pool.start()
        sched = SchedulerLoop(store, JobDispatcher(store, pool, tracker, deadline=5.0), interval=1.0)
        try:
            job = due_job()
            start = time.monotonic()
            assert sched.tick() == [job.id]
            assert time.monotonic() - start < 1.0
            assert sched.inflight() == [job.id]
        finally:
            hanging_transport.release.set()
            sched.stop(drain=True, timeout=5.0)
            pool.close(timeout=5.0)

        assert store.get_job(job.id).status is JobStatus.COMPLETED
        assert sched.inflight() == []


class TestConcurrentSchedulers:
    def test_job_claimed_at_most_once(self, store, due_job, add_subscribers, transport, tracker):
        add_subscribers("a@example.com", "b@example.com")
        jobs = [due_job() for _ in range(5)]
        pool = WorkerPool(store, transport, tracker, worker_count=2)
        pool.start()
        dispatcher = JobDispatcher(store, pool, tracker, deadline=5.0)
        loops = [SchedulerLoop(store, dispatcher, interval=1.0) for _ in range(4)]
        claimed: list[list[str]] = [[] for _ in loops]
        barrier = threading.Barrier(len(loops))

        def run(i):
            barrier.wait()
            claimed[i].extend(loops[i].tick())

        threads = [threading.Thread(target=run, args=(i,)) for i in range(len(loops))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for sched in loops:
            sched.stop(drain=True, timeout=5.0)
        pool.close(timeout=5.0)

        all_claimed = [j for ids in claimed for j in ids]
        assert sorted(all_claimed) == sorted(j.id for j in jobs)
        for job in jobs:
            assert store.send_status_counts(job.id) == {"sent": 2}


class TestLifecycle:
    def test_background_loop_picks_up_jobs(self, store, loop, due_job, wait_until):
        loop.start()
        assert loop.is_running
        job = due_job()

        assert wait_until(lambda: store.get_job(job.id).status is JobStatus.COMPLETED)
        assert loop.stats().tick_count >= 1

    def test_stop_halts_ticking(self, store, loop):
        loop.start()
        time.sleep(0.15)
        loop.stop()
        assert not loop.is_running
        ticks = loop.stats().tick_count
        time.sleep(0.15)
        assert loop.stats().tick_count == ticks

    def test_double_start_ignored(self, loop):
        loop.start()
        loop.start()
        assert loop.is_running

    def test_interval_must_be_positive(self, store, dispatcher):
        with pytest.raises(ValueError):
            SchedulerLoop(store, dispatcher, interval=0)

    def test_health(self, loop):
        before = loop.health()
        assert before.healthy is False
        loop.start()
        data = loop.health().to_dict()
        assert data["healthy"] is True
        assert data["interval_seconds"] == 0.05
        assert "tick_count" in data["stats"]


class TestTrigger:
    def test_trigger_runs_future_job_now(self, store, loop, due_job):
        job = due_job(offset=timedelta(days=1))
        assert loop.trigger(job.id) == job.id
        assert loop.drain(timeout=5.0)
        assert store.get_job(job.id).status is JobStatus.COMPLETED

    def test_trigger_unknown_job(self, loop):
        with pytest.raises(JobNotFoundError):
            loop.trigger("missing")

    def test_trigger_claimed_job_conflicts(self, store, loop, claimed_job):
        job = claimed_job()
        with pytest.raises(ClaimConflict):
            loop.trigger(job.id)
