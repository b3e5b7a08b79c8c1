"""Durable job scheduling.

Jobs are persisted in the job ledger and armed on APScheduler; after a
restart the scheduler rebuilds every timer from the ledger.
"""

from animebell.scheduler.job_keys import JobKey, ReminderKind
from animebell.scheduler.job_scheduler import JobScheduler, RehydrationResult, ScheduledJob

__all__ = [
    "JobKey",
    "JobScheduler",
    "RehydrationResult",
    "ReminderKind",
    "ScheduledJob",
]
