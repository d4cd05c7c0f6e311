"""Tests for run_with_timeout."""

import threading
import time

import pytest

from mailspine.execution.timeout import TimeoutExpired, run_with_timeout


class TestRunWithTimeout:
    def test_returns_result(self):
        assert run_with_timeout(lambda a, b: a + b, 1.0, args=(1, 2)) == 3

    def test_none_runs_inline(self):
        caller = threading.current_thread()
        seen = []
        run_with_timeout(lambda: seen.append(threading.current_thread()), None)
        assert seen == [caller]

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            run_with_timeout(lambda: None, 0)

    def test_expired(self):
        release = threading.Event()
        start = time.monotonic()
        with pytest.raises(TimeoutExpired) as exc_info:
            run_with_timeout(release.wait, 0.1, operation="send", args=(5,))
        release.set()

        assert time.monotonic() - start < 2.0
        assert exc_info.value.operation == "send"
        assert exc_info.value.timeout == 0.1
        assert "timed out after 0.1s" in str(exc_info.value)

    def test_timeout_expired_is_timeout_error(self):
        assert issubclass(TimeoutExpired, TimeoutError)

    def test_propagates_function_error(self):
        def boom():
            raise RuntimeError("smtp down")

        with pytest.raises(RuntimeError, match="smtp down"):
            run_with_timeout(boom, 1.0)

    def test_function_timeout_error_not_relabelled(self):
        def socket_timeout():
            raise TimeoutError("timed out")

        with pytest.raises(TimeoutError) as exc_info:
            run_with_timeout(socket_timeout, 1.0)
        assert not isinstance(exc_info.value, TimeoutExpired)
