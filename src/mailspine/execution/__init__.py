"""
Delivery execution: worker pool, completion tracking and job dispatch.

Components:
- pool: WorkerPool (bounded queue + fixed daemon worker threads)
- completion: CountdownTracker / PollingTracker
- dispatcher: JobDispatcher (expand → submit → wait → finalize)
- timeout: run_with_timeout / TimeoutExpired
"""

from mailspine.execution.completion import CompletionTracker, CountdownTracker, PollingTracker
from mailspine.execution.dispatcher import DEADLINE_REASON, JobDispatcher
from mailspine.execution.pool import PoolStats, WorkerPool
from mailspine.execution.timeout import TimeoutExpired, run_with_timeout

__all__ = [
    "CompletionTracker",
    "CountdownTracker",
    "PollingTracker",
    "DEADLINE_REASON",
    "JobDispatcher",
    "PoolStats",
    "WorkerPool",
    "TimeoutExpired",
    "run_with_timeout",
]
