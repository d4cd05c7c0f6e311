"""Per-call deadlines for blocking transport calls.

A transport call that never returns would otherwise hold a worker slot
forever. :func:`run_with_timeout` runs the callable on a helper thread and
stops waiting once the deadline passes.

Guardrails:
    - The helper thread cannot be killed; on timeout it is abandoned and
      finishes (or hangs) in the background. The worker slot is freed.
    - Sync timeout uses threads, one per call.
"""

from __future__ import annotations

import concurrent.futures
import time
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the caller waited
        operation: Name/description of the operation
    """

    def __init__(self, timeout: float, elapsed: float | None = None, operation: str = "operation"):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"
        super().__init__(msg)


def run_with_timeout(
    func: Callable[..., T],
    timeout_seconds: float | None,
    operation: str | None = None,
    args: tuple[Any, ...] | None = None,
    kwargs: dict[str, Any] | None = None,
) -> T:
    """Run a callable, giving up after *timeout_seconds*.

    ``None`` runs the callable inline with no deadline.

    Raises:
        TimeoutExpired: If execution exceeds the timeout
        Exception: Any exception raised by func

    Example:
        >>> run_with_timeout(transport.send, 30.0, "send", args=(to, subject, body))
    """
    pos_args = args or ()
    kw_args = kwargs or {}
    if timeout_seconds is None:
        return func(*pos_args, **kw_args)
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    start = time.monotonic()
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="deadline")
    future = executor.submit(func, *pos_args, **kw_args)
    try:
        return future.result(timeout=timeout_seconds)
    except concurrent.futures.TimeoutError:
        # socket timeouts raised by func itself are TimeoutError too
        if future.done():
            raise
        raise TimeoutExpired(
            timeout=timeout_seconds,
            elapsed=time.monotonic() - start,
            operation=operation or getattr(func, "__name__", "unknown"),
        ) from None
    finally:
        # Never join here: a hung call must not keep the caller blocked
        executor.shutdown(wait=False)
