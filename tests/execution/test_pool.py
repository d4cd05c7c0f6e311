"""Tests for WorkerPool."""

import queue
import threading
import time

import pytest

from mailspine.core.enums import SendStatus
from mailspine.core.models import DeliveryTask
from mailspine.delivery.transport import MockTransport
from mailspine.execution.completion import CountdownTracker
from mailspine.execution.pool import WorkerPool


def _tasks(store, job, subscribers):
    out = []
    for sub in subscribers:
        send = store.insert_send(job.id, sub)
        out.append(DeliveryTask(send_id=send.id, job_id=job.id, email=sub.email, subject=job.subject, body=job.body))
    return out


class TestLifecycle:
    def test_rejects_bad_sizes(self, store, transport):
        with pytest.raises(ValueError):
            WorkerPool(store, transport, worker_count=0)
        with pytest.raises(ValueError):
            WorkerPool(store, transport, queue_capacity=0)

    def test_start_and_close(self, store, transport):
        pool = WorkerPool(store, transport, worker_count=3)
        pool.start()
        assert pool.is_running
        assert pool.health()["workers_alive"] == 3
        pool.close(timeout=5.0)
        assert not pool.is_running

    def test_submit_requires_running(self, store, transport, claimed_job, add_subscribers):
        pool = WorkerPool(store, transport)
        task = _tasks(store, claimed_job(), add_subscribers("a@example.com"))[0]
        with pytest.raises(RuntimeError):
            pool.submit(task)

    def test_close_processes_queued_tasks(self, store, transport, claimed_job, add_subscribers):
        job = claimed_job()
        tasks = _tasks(store, job, add_subscribers("a@example.com", "b@example.com"))
        pool = WorkerPool(store, transport, worker_count=1)
        pool.start()
        for task in tasks:
            pool.submit(task)
        pool.close(timeout=5.0)
        assert store.send_status_counts(job.id) == {"sent": 2}


class TestDelivery:
    def test_success_marks_sent(self, store, pool, transport, claimed_job, add_subscribers):
        job = claimed_job()
        (task,) = _tasks(store, job, add_subscribers("a@example.com"))
        pool.submit(task)
        pool.join_queue()

        send = store.get_send(task.send_id)
        assert send.status is SendStatus.SENT
        assert send.attempts == 1
        assert transport.sent == [("a@example.com", job.subject, job.body)]
        assert pool.stats().sent == 1

    def test_failure_recorded_and_worker_survives(self, store, tracker, claimed_job, add_subscribers):
        transport = MockTransport(fail_for={"bad@example.com"})
        pool = WorkerPool(store, transport, tracker, worker_count=1)
        pool.start()
        try:
            job = claimed_job()
            tasks = _tasks(store, job, add_subscribers("bad@example.com", "good@example.com"))
            for task in tasks:
                pool.submit(task)
            pool.join_queue()

            bad, good = (store.get_send(t.send_id) for t in tasks)
            assert bad.status is SendStatus.FAILED
            assert bad.last_error == "mock failure for bad@example.com"
            assert good.status is SendStatus.SENT
            assert pool.is_running
        finally:
            pool.close(timeout=5.0)

    def test_error_without_message_uses_type_name(self, store, claimed_job, add_subscribers):
        class Silent:
            name = "silent"

            def send(self, recipient, subject, body):
                raise ConnectionResetError()

        pool = WorkerPool(store, Silent(), worker_count=1)
        pool.start()
        try:
            (task,) = _tasks(store, claimed_job(), add_subscribers("a@example.com"))
            pool.submit(task)
            pool.join_queue()
            assert store.get_send(task.send_id).last_error == "ConnectionResetError"
        finally:
            pool.close(timeout=5.0)

    def test_send_timeout_fails_the_send(self, store, hanging_transport, claimed_job, add_subscribers):
        pool = WorkerPool(store, hanging_transport, worker_count=1, send_timeout=0.1)
        pool.start()
        try:
            (task,) = _tasks(store, claimed_job(), add_subscribers("a@example.com"))
            pool.submit(task)
            pool.join_queue()
            send = store.get_send(task.send_id)
            assert send.status is SendStatus.FAILED
            assert "timed out" in send.last_error
        finally:
            hanging_transport.release.set()
            pool.close(timeout=5.0)

    def test_already_terminal_send_is_skipped(self, store, pool, transport, claimed_job, add_subscribers):
        job = claimed_job()
        (task,) = _tasks(store, job, add_subscribers("a@example.com"))
        store.expire_unfinished_sends(job.id, "deadline")

        pool.submit(task)
        pool.join_queue()

        assert transport.sent == []
        assert store.get_send(task.send_id).last_error == "deadline"
        assert pool.stats().skipped == 1

    def test_store_error_does_not_kill_worker(self, store, transport, tracker, claimed_job, add_subscribers):
        pool = WorkerPool(store, transport, tracker, worker_count=1)
        pool.start()
        try:
            job = claimed_job()
            tasks = _tasks(store, job, add_subscribers("a@example.com", "b@example.com"))
            tracker.register(job.id, 2)
            original = store.mark_send_sending
            calls = []

            def flaky(send_id):
                calls.append(send_id)
                if len(calls) == 1:
                    from mailspine.core.errors import StoreError

                    raise StoreError("disk I/O error")
                return original(send_id)

            store.mark_send_sending = flaky
            for task in tasks:
                pool.submit(task)
            pool.join_queue()

            assert pool.stats().errors == 1
            assert store.get_send(tasks[1].send_id).status is SendStatus.SENT
            # countdown still reached zero
            assert tracker.remaining(job.id) == 0
        finally:
            pool.close(timeout=5.0)


class TestBackpressure:
    def test_submit_blocks_when_full(self, store, hanging_transport, claimed_job, add_subscribers):
        pool = WorkerPool(store, hanging_transport, worker_count=1, queue_capacity=1)
        pool.start()
        try:
            job = claimed_job()
            tasks = _tasks(store, job, add_subscribers("a@example.com", "b@example.com", "c@example.com"))
            pool.submit(tasks[0])
            assert hanging_transport.started.wait(5.0)
            pool.submit(tasks[1])  # fills the single slot

            with pytest.raises(queue.Full):
                pool.submit(tasks[2], timeout=0.1)

            hanging_transport.release.set()
            pool.submit(tasks[2], timeout=5.0)
            pool.join_queue()
            assert store.send_status_counts(job.id) == {"sent": 3}
        finally:
            hanging_transport.release.set()
            pool.close(timeout=5.0)


    def test_close_with_full_queue_honours_timeout(self, store, hanging_transport, claimed_job, add_subscribers):
        pool = WorkerPool(store, hanging_transport, worker_count=1, queue_capacity=1)
        pool.start()
        job = claimed_job()
        tasks = _tasks(store, job, add_subscribers("a@example.com", "b@example.com"))
        pool.submit(tasks[0])
        assert hanging_transport.started.wait(5.0)
        pool.submit(tasks[1])

        closer = threading.Thread(target=pool.close, kwargs={"timeout": 0.2})
        start = time.monotonic()
        closer.start()
        closer.join(timeout=5.0)
        try:
            assert not closer.is_alive()
            assert time.monotonic() - start < 2.0
            assert not pool.is_running
        finally:
            hanging_transport.release.set()

class TestTrackerNotification:
    def test_task_done_called_per_task(self, store, claimed_job, add_subscribers):
        tracker = CountdownTracker(store)
        pool = WorkerPool(store, MockTransport(fail_for={"b@example.com"}), tracker, worker_count=2)
        pool.start()
        try:
            job = claimed_job()
            tasks = _tasks(store, job, add_subscribers("a@example.com", "b@example.com", "c@example.com"))
            tracker.register(job.id, len(tasks))
            for task in tasks:
                pool.submit(task)
            assert tracker.wait(job.id, timeout=5.0)
            assert store.send_status_counts(job.id) == {"sent": 2, "failed": 1}
        finally:
            pool.close(timeout=5.0)


def test_concurrent_workers_share_queue(store, claimed_job, add_subscribers):
    seen_threads = set()
    lock = threading.Lock()
    barrier = threading.Barrier(2, timeout=5.0)

    class Recording:
        name = "recording"

        def send(self, recipient, subject, body):
            with lock:
                seen_threads.add(threading.current_thread().name)
            barrier.wait()

    pool = WorkerPool(store, Recording(), worker_count=2)
    pool.start()
    try:
        job = claimed_job()
        for task in _tasks(store, job, add_subscribers("a@example.com", "b@example.com")):
            pool.submit(task)
        pool.join_queue()
        assert len(seen_threads) == 2
    finally:
        pool.close(timeout=5.0)
