"""Due-job scheduling: the periodic claim-and-dispatch loop."""

from mailspine.scheduling.loop import SchedulerHealth, SchedulerLoop, SchedulerStats

__all__ = ["SchedulerHealth", "SchedulerLoop", "SchedulerStats"]
