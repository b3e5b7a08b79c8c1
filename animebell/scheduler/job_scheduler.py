"""Durable job scheduler.

The JobScheduler keeps one APScheduler job armed per row of the job ledger.
Rows are written before anything is armed, so after a restart
``rehydrate`` can rebuild every timer from the database alone.

One-shot rows are deleted once they fire successfully. Recurring rows stay
until they are canceled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
)
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from animebell.config import SchedulerConfig
from animebell.database.connection import get_db_session
from animebell.database.models import Job
from animebell.database.repositories import JobRepository
from animebell.exceptions import DataIntegrityError, PermanentDestinationError
from animebell.scheduler.job_keys import INTERNAL_PREFIX, JobKey
from animebell.scheduler.triggers import build_trigger, describe_schedule, is_one_shot

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[None]]
ActionBuilder = Callable[[JobKey, Job], Action]


@dataclass
class ScheduledJob:
    """Handle to an armed job."""

    job_id: str
    trigger: str
    text: str = ""
    _owner: Optional["JobScheduler"] = field(default=None, repr=False, compare=False)

    @property
    def is_one_shot(self) -> bool:
        return is_one_shot(self.trigger)

    @property
    def next_run_time(self) -> Optional[datetime]:
        """Next fire time, or None before the scheduler has started."""
        if self._owner is None:
            return None
        return self._owner._next_run_time(self.job_id)

    def cancel(self) -> bool:
        """Disarm the timer. The ledger row is left in place."""
        if self._owner is None:
            return False
        return self._owner._disarm(self.job_id)


@dataclass
class RehydrationResult:
    """Outcome of rebuilding timers from the job ledger."""

    rearmed: int = 0
    skipped_internal: int = 0
    failed: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.rearmed + self.skipped_internal + self.failed


class JobScheduler:
    """Arms and disarms ledger jobs on an APScheduler AsyncIOScheduler.

    Example:
        scheduler = JobScheduler(config.scheduler)
        scheduler.rehydrate(reminders.build_action)
        scheduler.register_internal("daily_summary", "0 9 * * *", digest.send_daily_summaries)
        await scheduler.start()
    """

    def __init__(self, config: Optional[SchedulerConfig] = None) -> None:
        """Initialize the job scheduler.

        Args:
            config: Scheduler configuration (time zone, misfire grace time)
        """
        self._config = config or SchedulerConfig()
        self._handles: Dict[str, ScheduledJob] = {}
        self._running = False
        self._scheduler = self._create_scheduler()
        self._setup_listeners()

    @property
    def timezone(self) -> str:
        return self._config.timezone

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    @property
    def jobs(self) -> List[ScheduledJob]:
        """Get all armed jobs."""
        return list(self._handles.values())

    def schedule(
        self,
        job_id: Union[str, JobKey],
        trigger: str,
        action: Action,
        text: str = "",
    ) -> str:
        """Persist a job and arm it, replacing any job with the same id.

        Args:
            job_id: Job key or its encoded form
            trigger: Epoch milliseconds (one-shot) or cron expression
            action: Coroutine function invoked when the job fires
            text: Message text stored with the job

        Returns:
            Human readable description of when the job runs

        Raises:
            DataIntegrityError: If the trigger cannot be parsed; nothing is
                written in that case
        """
        job_id = str(job_id)
        aps_trigger = build_trigger(trigger, self.timezone, job_id=job_id)

        with get_db_session() as session:
            JobRepository(session).upsert(job_id, trigger, text)

        self._arm(job_id, trigger, aps_trigger, action, text)
        logger.info(f"Scheduled job {job_id} with trigger '{trigger}'")
        return describe_schedule(trigger, self.timezone)

    def get_scheduled(self, job_id: Union[str, JobKey]) -> Optional[ScheduledJob]:
        """Look up the armed handle for an id. Durable storage is not consulted."""
        job_id = str(job_id)
        handle = self._handles.get(job_id)
        if handle is None:
            return None
        if self._scheduler.get_job(job_id) is None:
            # Fired one-shot whose handle has not been released yet
            self._handles.pop(job_id, None)
            return None
        return handle

    def cancel(self, job_id: Union[str, JobKey]) -> bool:
        """Delete a job's ledger row, then disarm its timer.

        Returns:
            True if a row or an armed timer was removed
        """
        job_id = str(job_id)
        with get_db_session() as session:
            deleted = JobRepository(session).delete(job_id)

        disarmed = self._disarm(job_id)
        if deleted or disarmed:
            logger.info(f"Canceled job {job_id}")
        return deleted or disarmed

    def rehydrate(self, action_builder: ActionBuilder) -> RehydrationResult:
        """Re-arm every non-internal ledger row.

        Internal rows are skipped; their owners re-register them with
        ``register_internal``. A row with a malformed id or trigger is
        logged and skipped without affecting the others.

        Args:
            action_builder: Builds the action for a parsed key and its row

        Returns:
            Counts of re-armed, skipped and failed rows
        """
        result = RehydrationResult()

        with get_db_session() as session:
            rows = JobRepository(session).get_all()

        for row in rows:
            if row.id.startswith(INTERNAL_PREFIX):
                result.skipped_internal += 1
                continue

            try:
                key = JobKey.parse(row.id)
                aps_trigger = build_trigger(row.trigger, self.timezone, job_id=row.id)
                action = action_builder(key, row)
            except DataIntegrityError as e:
                logger.error(f"Skipping job during rehydration: {e}")
                result.failed += 1
                result.failed_ids.append(row.id)
                continue
            except Exception as e:
                logger.exception(f"Failed to rebuild job {row.id}: {e}")
                result.failed += 1
                result.failed_ids.append(row.id)
                continue

            self._arm(row.id, row.trigger, aps_trigger, action, row.text)
            result.rearmed += 1

        logger.info(
            f"Rehydrated {result.rearmed} jobs "
            f"({result.skipped_internal} internal skipped, {result.failed} failed)"
        )
        return result

    def register_internal(self, name: str, cron: str, action: Action, text: str = "") -> str:
        """Arm a system job under ``internal:<name>`` with its fixed action."""
        return self.schedule(JobKey.internal(name), cron, action, text)

    async def start(self) -> None:
        """Start firing armed jobs."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting job scheduler...")
        self._scheduler.start()
        self._running = True
        logger.info(f"Scheduler started with {len(self._handles)} jobs")

    async def stop(self) -> None:
        """Stop the scheduler. Ledger rows are untouched."""
        if not self._running:
            return

        logger.info("Stopping job scheduler...")
        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status.

        Returns:
            Dictionary with scheduler status information
        """
        jobs: List[Dict[str, Any]] = []
        for handle in self._handles.values():
            next_run = handle.next_run_time
            jobs.append(
                {
                    "id": handle.job_id,
                    "trigger": handle.trigger,
                    "next_run": next_run.isoformat() if next_run else None,
                }
            )

        return {
            "running": self._running,
            "timezone": self.timezone,
            "armed_jobs": len(self._handles),
            "jobs": jobs,
        }

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure APScheduler instance."""
        jobstores = {"default": MemoryJobStore()}

        executors = {"default": AsyncIOExecutor()}

        job_defaults = {
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,  # One instance per job
            "misfire_grace_time": self._config.misfire_grace_time,
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=self.timezone,
        )

    def _setup_listeners(self) -> None:
        """Set up APScheduler event listeners."""

        def on_job_executed(event: Any) -> None:
            logger.debug(f"Job {event.job_id} executed")

        def on_job_error(event: Any) -> None:
            exception = getattr(event, "exception", "Unknown error")
            logger.error(f"Job {event.job_id} failed: {exception}")

        def on_job_missed(event: Any) -> None:
            logger.warning(f"Job {event.job_id} missed scheduled run")

        self._scheduler.add_listener(on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(on_job_missed, EVENT_JOB_MISSED)

    def _arm(self, job_id: str, trigger: str, aps_trigger: Any, action: Action, text: str) -> None:
        self._disarm(job_id)

        options: Dict[str, Any] = {}
        if is_one_shot(trigger):
            options["misfire_grace_time"] = None

        self._scheduler.add_job(
            self._run_job,
            trigger=aps_trigger,
            id=job_id,
            name=job_id,
            args=[job_id, trigger, action],
            replace_existing=True,
            **options,
        )
        self._handles[job_id] = ScheduledJob(job_id=job_id, trigger=trigger, text=text, _owner=self)
        logger.debug(f"Armed job {job_id}")

    def _disarm(self, job_id: str) -> bool:
        self._handles.pop(job_id, None)
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.debug(f"Disarmed job {job_id}")
        return True

    def _next_run_time(self, job_id: str) -> Optional[datetime]:
        aps_job = self._scheduler.get_job(job_id)
        if aps_job is None:
            return None
        return getattr(aps_job, "next_run_time", None)

    async def _run_job(self, job_id: str, trigger: str, action: Action) -> None:
        """Invoke a job's action and prune fired one-shots."""
        one_shot = is_one_shot(trigger)
        logger.info(f"Running job {job_id}")

        prune = one_shot
        try:
            await action()
        except PermanentDestinationError as e:
            logger.warning(f"Destination for job {job_id} is gone: {e}")
        except Exception as e:
            logger.error(f"Job {job_id} action failed, keeping it for retry: {e}", exc_info=True)
            prune = False

        if not one_shot or self._scheduler.get_job(job_id) is not None:
            # Recurring, or re-armed while the action was running
            return

        self._handles.pop(job_id, None)
        if prune:
            self._prune(job_id, trigger)

    def _prune(self, job_id: str, trigger: str) -> None:
        try:
            with get_db_session() as session:
                if JobRepository(session).delete_if_trigger(job_id, trigger):
                    logger.debug(f"Pruned fired job {job_id}")
        except Exception as e:
            logger.error(f"Failed to prune job {job_id}: {e}")
