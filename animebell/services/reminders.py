"""Reminder operations used by the chat commands.

Every reminder is a job in the scheduler. The delivered message carries
inline actions that depend on the reminder kind:

- content reminders offer "Repeat next week"
- custom reminders offer "Cancel Reminder" and "Check date"
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from animebell.database.connection import get_db_session
from animebell.database.models import Job, TrackedItem
from animebell.database.repositories import RepositoryFactory
from animebell.exceptions import DataIntegrityError, NotOwnerError
from animebell.gateways.delivery import DeliveryGateway, InlineAction
from animebell.scheduler.job_keys import JobKey, ReminderKind
from animebell.scheduler.job_scheduler import Action, JobScheduler
from animebell.scheduler import triggers

logger = logging.getLogger(__name__)

REPEAT_PREFIX = "a_scheduler:"
CANCEL_PREFIX = "cancel:"
CHECK_DATE_PREFIX = "check_date:"


def content_reminder_text(name: str) -> str:
    return f"This is your reminder for anime {name}"


def repeat_callback(subject_id: int, trigger: str, owner_id: str) -> str:
    return f"{REPEAT_PREFIX}{subject_id}:{trigger}:{owner_id}"


def parse_repeat_callback(callback_data: str) -> JobKey:
    """
    Parse ``a_scheduler:<subject>:<trigger>:<owner>`` into a content key.

    Raises:
        DataIntegrityError: If the payload is malformed
    """
    if not callback_data.startswith(REPEAT_PREFIX):
        raise DataIntegrityError(f"Not a repeat callback: '{callback_data}'")
    key = JobKey.parse(callback_data[len(REPEAT_PREFIX):])
    if key.kind is not ReminderKind.CONTENT:
        raise DataIntegrityError(f"Repeat callback without a content id: '{callback_data}'")
    return key


class ReminderService:
    """Create, repeat, cancel and list reminders."""

    def __init__(self, scheduler: JobScheduler, delivery: DeliveryGateway):
        self.scheduler = scheduler
        self.delivery = delivery

    def actions_for(self, key: JobKey) -> List[InlineAction]:
        """Inline actions attached to a reminder's message."""
        if key.kind is ReminderKind.CONTENT:
            if not triggers.is_one_shot(key.trigger):
                return []
            return [
                InlineAction(
                    "Repeat next week",
                    repeat_callback(key.subject_id, triggers.add_week(key.trigger), key.owner_id),
                )
            ]
        if key.kind is ReminderKind.CUSTOM:
            return [
                InlineAction("Cancel Reminder", f"{CANCEL_PREFIX}{key.encode()}"),
                InlineAction("Check date", f"{CHECK_DATE_PREFIX}{key.trigger}"),
            ]
        return []

    def build_action(self, key: JobKey, job: Job) -> Action:
        """Build the delivery action for a ledger row. Used for rehydration."""
        return self._deliver(key.owner_id, job.text, self.actions_for(key))

    def remind_content(self, item: TrackedItem, fire_at_ms: int) -> str:
        """
        Remind a user about the next episode of a tracked title.

        Args:
            item: Tracked item the reminder is about
            fire_at_ms: When to fire, epoch milliseconds

        Returns:
            Description of the schedule
        """
        key = JobKey.content(item.id, str(fire_at_ms), item.owner_id)
        return self._schedule(key, content_reminder_text(item.name))

    def remind_custom(self, owner_id: str, trigger: str, text: str) -> str:
        """
        Schedule a free-form reminder.

        Args:
            owner_id: User to remind
            trigger: Epoch milliseconds or cron expression
            text: Reminder text

        Returns:
            Description of the schedule
        """
        key = JobKey.custom(trigger.strip(), owner_id)
        return self._schedule(key, text)

    def repeat(self, callback_data: str, requester_id: str) -> str:
        """
        Handle a "Repeat next week" press.

        Raises:
            DataIntegrityError: If the callback payload is malformed
            NotOwnerError: If someone other than the owner pressed it
        """
        key = parse_repeat_callback(callback_data)
        if str(requester_id) != key.owner_id:
            raise NotOwnerError("This is not your list")

        with get_db_session() as session:
            item = RepositoryFactory(session).tracked.get(key.subject_id, key.owner_id)
            name = item.name if item is not None else "n/a"

        return self._schedule(key, content_reminder_text(name))

    def cancel(self, job_id: str) -> bool:
        """Delete a reminder and disarm it."""
        if job_id.startswith(CANCEL_PREFIX):
            job_id = job_id[len(CANCEL_PREFIX):]
        return self.scheduler.cancel(job_id)

    def list_reminders(self, owner_id: str, now: Optional[datetime] = None) -> List[Job]:
        """A user's reminders, without one-shots that are already past."""
        now_ms = triggers.datetime_to_ms(now or triggers.now_utc())
        with get_db_session() as session:
            jobs = RepositoryFactory(session).jobs.for_owner(owner_id)
        return [j for j in jobs if not j.is_one_shot or int(j.trigger) > now_ms]

    def format_reminders(self, jobs: Sequence[Job], now: Optional[datetime] = None) -> str:
        """Render the /myjobs answer (HTML)."""
        if not jobs:
            return "You have no reminders currently active"
        lines = []
        for job in jobs:
            if job.is_one_shot:
                when = triggers.relative_time(triggers.one_shot_datetime(job.trigger, job.id), now)
            else:
                when = job.trigger
            lines.append(f"[{when}] <i>{job.text}</i>")
        return "<b>Your reminders:</b>\n" + "\n".join(lines)

    def describe_trigger(self, trigger: str, now: Optional[datetime] = None) -> str:
        """Render the "Check date" answer for a trigger."""
        if trigger.startswith(CHECK_DATE_PREFIX):
            trigger = trigger[len(CHECK_DATE_PREFIX):]
        return triggers.describe_trigger(trigger, self.scheduler.timezone, now)

    def _schedule(self, key: JobKey, text: str) -> str:
        action = self._deliver(key.owner_id, text, self.actions_for(key))
        description = self.scheduler.schedule(key, key.trigger, action, text)
        logger.info(f"Reminder {key} for user {key.owner_id}: {description}")
        return description

    def _deliver(self, owner_id: str, text: str, actions: List[InlineAction]) -> Action:
        async def deliver() -> None:
            await self.delivery.send(owner_id, text, actions or None)

        return deliver
