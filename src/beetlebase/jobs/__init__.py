"""Background jobs for BeetleBase.

The JobStore holds job records and user accounts. The JobRunner simulates
the out-of-band worker on an injected Scheduler. The JobService binds
submissions to real CSV import and PDF export work.
"""

from .runner import JobRunner, always_fail, always_succeed, weighted_outcome
from .scheduler import AsyncioScheduler, ManualScheduler, ScheduledCall, Scheduler
from .service import JobService
from .store import JobStore

__all__ = [
    "JobStore",
    "JobRunner",
    "JobService",
    # Outcome decisions
    "weighted_outcome",
    "always_succeed",
    "always_fail",
    # Schedulers
    "Scheduler",
    "ScheduledCall",
    "AsyncioScheduler",
    "ManualScheduler",
]
