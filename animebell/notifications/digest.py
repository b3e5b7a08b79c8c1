"""Daily summary generator.

Each notification group receives one message per day listing the episodes
its members have reminders for on that day. Content reminders in the job
ledger double as the release calendar.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence, Union

from animebell.config import SchedulerConfig
from animebell.database.connection import get_db_session
from animebell.database.repositories import RepositoryFactory
from animebell.exceptions import (
    DataIntegrityError,
    GroupNotFoundError,
    PermanentDestinationError,
    TransientDeliveryError,
)
from animebell.gateways.delivery import DeliveryGateway
from animebell.notifications import formatting
from animebell.scheduler.job_keys import JobKey, ReminderKind
from animebell.scheduler.triggers import day_window, get_zone, now_utc

logger = logging.getLogger(__name__)

# Sunday-first numbering, as used by the /notify_on command
WEEKDAYS = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}


class SubscriptionResult(str, Enum):
    """Outcome of subscribing a user to a group digest."""

    CREATED = "created"
    JOINED = "joined"
    ALREADY_MEMBER = "already_member"
    GROUP_MISSING = "group_missing"

    @property
    def added(self) -> bool:
        return self in (SubscriptionResult.CREATED, SubscriptionResult.JOINED)


@dataclass
class DigestRunResult:
    """Outcome of one daily summary sweep."""

    groups: int = 0
    sent: int = 0
    empty: int = 0
    no_members: int = 0
    removed: List[str] = field(default_factory=list)
    rate_limited: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def resolve_weekday(weekday: Union[str, int]) -> int:
    """Resolve a weekday name or Sunday-first number (0-6)."""
    if isinstance(weekday, int):
        number = weekday
    elif weekday.strip().isdigit():
        number = int(weekday)
    else:
        try:
            number = WEEKDAYS[weekday.strip().lower()]
        except KeyError:
            raise ValueError(
                "Invalid day of the week. Please use Sunday, Monday, Tuesday, "
                "Wednesday, Thursday, Friday, or Saturday."
            ) from None
    if not 0 <= number <= 6:
        raise ValueError(f"Weekday number must be between 0 and 6, got {number}")
    return number


def next_weekday(weekday: Union[str, int], today: date) -> date:
    """
    Get the next date falling on ``weekday``, strictly after ``today``.

    The weekday of the current week is taken; if that is today or already
    past, the same weekday of next week is used.
    """
    target = resolve_weekday(weekday)
    current = (today.weekday() + 1) % 7
    candidate = today + timedelta(days=target - current)
    if candidate <= today:
        candidate += timedelta(weeks=1)
    return candidate


class DigestGenerator:
    """Builds and sends per-group daily summaries."""

    def __init__(
        self,
        delivery: Optional[DeliveryGateway],
        config: Optional[SchedulerConfig] = None,
    ):
        """Initialize the generator.

        Args:
            delivery: Gateway used to post digests (None for read-only previews)
            config: Scheduler configuration (time zone, concurrency)
        """
        self.delivery = delivery
        self.config = config or SchedulerConfig()

    def _today(self) -> date:
        return now_utc().astimezone(get_zone(self.config.timezone)).date()

    def airing_on(self, owner_id: str, day: Optional[Union[date, datetime]] = None) -> List[str]:
        """
        List "<name> - Ep <n>" strings for a user's content reminders on a day.

        Args:
            owner_id: User whose reminders are scanned
            day: Day to scan in the reference time zone (defaults to today)

        Returns:
            Rendered strings in ledger order
        """
        if day is None:
            day = self._today()
        if not isinstance(day, datetime):
            day = datetime(day.year, day.month, day.day)
        start_ms, end_ms = day_window(day, self.config.timezone)

        lines: List[str] = []
        with get_db_session() as session:
            repos = RepositoryFactory(session)
            for job in repos.jobs.content_reminders_for_owner(owner_id, start_ms, end_ms):
                try:
                    key = JobKey.parse(job.id)
                except DataIntegrityError as e:
                    logger.warning(f"Skipping reminder in digest: {e}")
                    continue
                if key.kind is not ReminderKind.CONTENT:
                    continue

                item = repos.tracked.get(key.subject_id, owner_id)
                if item is None:
                    logger.warning(
                        f"No tracked item {key.subject_id} for user {owner_id} (job {job.id})"
                    )
                    continue
                lines.append(f"{item.name} - Ep {item.progress_counter + 1}")
        return lines

    def collect(self, owner_ids: Sequence[str], day: Optional[Union[date, datetime]] = None) -> List[str]:
        """Union the airing lists of several users, dropping repeats."""
        seen = {}
        for owner_id in owner_ids:
            try:
                lines = self.airing_on(owner_id, day)
            except Exception as e:
                logger.error(f"Failed to get airing list for user {owner_id}: {e}")
                continue
            for line in lines:
                seen.setdefault(line, None)
        return list(seen)

    async def send_daily_summaries(self, day: Optional[Union[date, datetime]] = None) -> DigestRunResult:
        """
        Send today's digest to every notification group.

        Failures are isolated per group: a gone destination deletes the
        group, rate limiting skips it for this cycle, anything else is logged.
        """
        if self.delivery is None:
            raise RuntimeError("DigestGenerator has no delivery gateway")

        logger.info("Starting daily summary generation...")
        result = DigestRunResult()

        with get_db_session() as session:
            groups = [(g.chat_id, list(g.member_ids)) for g in RepositoryFactory(session).groups.get_all()]

        result.groups = len(groups)
        if not groups:
            logger.info("No groups subscribed to daily notifications")
            return result

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def process(chat_id: str, member_ids: List[str]) -> None:
            async with semaphore:
                try:
                    await self._send_group(chat_id, member_ids, day, result)
                except Exception as e:
                    logger.error(f"Daily summary for group {chat_id} failed: {e}")
                    result.failed.append(chat_id)

        await asyncio.gather(*(process(chat_id, members) for chat_id, members in groups))

        logger.info(
            f"Finished daily summaries: {result.sent} sent, {result.empty} empty, "
            f"{len(result.removed)} removed, {len(result.failed)} failed"
        )
        return result

    async def _send_group(
        self,
        chat_id: str,
        member_ids: List[str],
        day: Optional[Union[date, datetime]],
        result: DigestRunResult,
    ) -> None:
        if not member_ids:
            logger.warning(f"Skipping group {chat_id}: no opted-in users")
            result.no_members += 1
            return

        items = self.collect(member_ids, day)
        if not items:
            logger.info(f"Nothing airing today for group {chat_id}, summary skipped")
            result.empty += 1
            return

        try:
            await self.delivery.send(chat_id, formatting.daily_summary(items))
        except PermanentDestinationError as e:
            logger.warning(f"Group {chat_id} is unreachable, removing it: {e}")
            with get_db_session() as session:
                RepositoryFactory(session).groups.delete(chat_id)
            result.removed.append(chat_id)
            return
        except TransientDeliveryError as e:
            logger.warning(f"Rate limited while sending to group {chat_id}: {e}")
            result.rate_limited.append(chat_id)
            return

        logger.info(f"Sent daily summary to group {chat_id} ({len(items)} items)")
        result.sent += 1

    def preview(self, chat_id: str, weekday: Union[str, int], today: Optional[date] = None) -> str:
        """
        Render the digest a group would get on the next given weekday.

        Raises:
            GroupNotFoundError: If the chat has no notification group
            ValueError: If the weekday is not recognised
        """
        target = next_weekday(weekday, today or self._today())

        with get_db_session() as session:
            group = RepositoryFactory(session).groups.get_by_chat(chat_id)
            if group is None:
                raise GroupNotFoundError(
                    "Daily notifications haven't been activated in this group yet. Use /notify first."
                )
            member_ids = list(group.member_ids)

        if not member_ids:
            return formatting.NO_MEMBERS

        items = self.collect(member_ids, target)
        if not items:
            return formatting.empty_preview(target)
        return formatting.preview_summary(target, items)

    def subscribe(self, chat_id: str, owner_id: str, create: bool = True) -> SubscriptionResult:
        """
        Add a user to a group's digest, creating the group when allowed.

        Args:
            chat_id: Group chat
            owner_id: User opting in
            create: Whether a missing group may be created

        Returns:
            The subscription outcome
        """
        with get_db_session() as session:
            groups = RepositoryFactory(session).groups
            group = groups.get_by_chat(chat_id)

            if group is None:
                if not create:
                    return SubscriptionResult.GROUP_MISSING
                group = groups.create(chat_id)
                groups.add_member(group, owner_id)
                logger.info(f"Notifications activated for group {chat_id} by user {owner_id}")
                return SubscriptionResult.CREATED

            if not groups.add_member(group, owner_id):
                return SubscriptionResult.ALREADY_MEMBER

        logger.info(f"User {owner_id} joined notifications for group {chat_id}")
        return SubscriptionResult.JOINED

    def confirmation_text(self, owner_id: str) -> str:
        """Render the sample of today's digest shown right after opting in."""
        items = self.airing_on(owner_id)
        if not items:
            return formatting.EMPTY_OPT_IN_SAMPLE
        return formatting.opt_in_sample(items)
