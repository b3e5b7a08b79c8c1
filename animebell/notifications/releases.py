"""New release detector.

Polls the external relation graph for every tracked title and alerts users
about sequels they do not track yet. Each (user, content) pair is alerted at
most once: the notification history row is claimed before the message is
sent, and released again if the send fails.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from animebell.config import NotificationConfig, SchedulerConfig
from animebell.database.connection import get_db_session
from animebell.database.models import TrackedKind
from animebell.database.repositories import RepositoryFactory
from animebell.exceptions import CheckRateLimitedError
from animebell.gateways.delivery import DeliveryGateway
from animebell.gateways.metadata import MediaNode, MetadataGateway, RelationEdge
from animebell.notifications import formatting

logger = logging.getLogger(__name__)

ALERT_STATUSES = frozenset({"RELEASING", "NOT_YET_RELEASED"})


@dataclass(frozen=True)
class ReleaseRule:
    """Which relations of a tracked kind count as a new release."""

    relation_types: FrozenSet[str]
    target_kind: str
    render: Callable[[str], str]

    def matches(self, edge: RelationEdge) -> bool:
        return (
            edge.relation_type in self.relation_types
            and edge.target.kind == self.target_kind
            and edge.target.status in ALERT_STATUSES
        )


RELEASE_RULES: Dict[str, ReleaseRule] = {
    TrackedKind.ANIME.value: ReleaseRule(
        relation_types=frozenset({"SEQUEL"}),
        target_kind="ANIME",
        render=formatting.season_alert,
    ),
    TrackedKind.NOVEL.value: ReleaseRule(
        relation_types=frozenset({"SEQUEL", "SIDE_STORY"}),
        target_kind="MANGA",
        render=formatting.novel_alert,
    ),
}


@dataclass
class ReleaseCheckResult:
    """Outcome of one release sweep."""

    checked: int = 0
    candidates: int = 0
    notified: int = 0
    already_notified: int = 0
    failed: int = 0
    alerts: List[Tuple[str, int]] = field(default_factory=list)

    def merge(self, other: "ReleaseCheckResult") -> None:
        self.checked += other.checked
        self.candidates += other.candidates
        self.notified += other.notified
        self.already_notified += other.already_notified
        self.failed += other.failed
        self.alerts.extend(other.alerts)


class ReleaseDetector:
    """Sends new season / new novel alerts."""

    def __init__(
        self,
        delivery: Optional[DeliveryGateway],
        metadata: MetadataGateway,
        config: Optional[SchedulerConfig] = None,
        notifications: Optional[NotificationConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the detector.

        Args:
            delivery: Gateway used to send alerts (may be None for dry runs)
            metadata: Gateway used to fetch relations
            config: Scheduler configuration (concurrency)
            notifications: Notification configuration (check cooldown)
            clock: Monotonic clock used by the on-demand rate limit
        """
        self.delivery = delivery
        self.metadata = metadata
        self.config = config or SchedulerConfig()
        self.notifications = notifications or NotificationConfig()
        self._clock = clock
        self._last_check: Dict[str, float] = {}

    async def run(self, owner_id: Optional[str] = None, dry_run: bool = False) -> ReleaseCheckResult:
        """
        Check every tracked title for new releases.

        Args:
            owner_id: Only check (and alert) this user's titles
            dry_run: Report would-be alerts without claiming or sending

        Returns:
            Sweep counters
        """
        scope = f"user {owner_id}" if owner_id else "all users"
        logger.info(f"Checking for new releases ({scope})...")

        result = ReleaseCheckResult()
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        for kind, rule in RELEASE_RULES.items():
            with get_db_session() as session:
                content_ids = RepositoryFactory(session).tracked.distinct_external_ids(kind, owner_id)

            async def process(content_id: int, kind: str = kind, rule: ReleaseRule = rule) -> ReleaseCheckResult:
                async with semaphore:
                    return await self._check_content(kind, rule, content_id, owner_id, dry_run)

            for partial in await asyncio.gather(*(process(cid) for cid in content_ids)):
                result.merge(partial)

        logger.info(
            f"Release check finished: {result.checked} titles, {result.notified} alerts sent, "
            f"{result.already_notified} already notified, {result.failed} failures"
        )
        return result

    async def request_check(self, owner_id: str) -> ReleaseCheckResult:
        """
        Run an on-demand check for one user.

        Raises:
            CheckRateLimitedError: If the user checked within the cooldown
        """
        now = self._clock()
        cooldown = self.notifications.check_cooldown
        self._last_check = {
            owner: checked_at for owner, checked_at in self._last_check.items() if now - checked_at < cooldown
        }
        last = self._last_check.get(owner_id)
        if last is not None and now - last < cooldown:
            retry_after = cooldown - (now - last)
            raise CheckRateLimitedError(
                formatting.check_cooldown(math.ceil(retry_after / 60)),
                retry_after=retry_after,
            )

        self._last_check[owner_id] = now
        return await self.run(owner_id=owner_id)

    async def _check_content(
        self,
        kind: str,
        rule: ReleaseRule,
        content_id: int,
        owner_id: Optional[str],
        dry_run: bool,
    ) -> ReleaseCheckResult:
        result = ReleaseCheckResult(checked=1)

        try:
            edges = await self.metadata.get_relations(content_id, kind)
        except Exception as e:
            logger.error(f"Failed to fetch relations for {kind} {content_id}: {e}")
            result.failed += 1
            return result

        for edge in edges:
            if not rule.matches(edge):
                continue
            result.candidates += 1
            try:
                await self._alert_trackers(kind, rule, content_id, edge.target, owner_id, dry_run, result)
            except Exception as e:
                logger.error(f"Failed to process release {edge.target.id} of {kind} {content_id}: {e}")
                result.failed += 1

        return result

    async def _alert_trackers(
        self,
        kind: str,
        rule: ReleaseRule,
        content_id: int,
        target: MediaNode,
        owner_id: Optional[str],
        dry_run: bool,
        result: ReleaseCheckResult,
    ) -> None:
        with get_db_session() as session:
            repos = RepositoryFactory(session)
            owners = repos.tracked.owners_tracking(kind, content_id)
            if owner_id is not None:
                owners = [o for o in owners if o == owner_id]
            recipients = [o for o in owners if not repos.tracked.is_tracking(o, kind, target.id)]

        for recipient in recipients:
            if dry_run:
                with get_db_session() as session:
                    seen = RepositoryFactory(session).history.exists(recipient, target.id)
                if seen:
                    result.already_notified += 1
                else:
                    result.alerts.append((recipient, target.id))
                continue

            await self._notify(recipient, target, rule, result)

    async def _notify(
        self,
        recipient: str,
        target: MediaNode,
        rule: ReleaseRule,
        result: ReleaseCheckResult,
    ) -> None:
        with get_db_session() as session:
            claimed = RepositoryFactory(session).history.claim(recipient, target.id)
        if not claimed:
            result.already_notified += 1
            return

        try:
            await self.delivery.send(recipient, rule.render(target.title), parse_mode="HTML")
        except Exception as e:
            logger.error(f"Failed to notify user {recipient} about {target.id}: {e}")
            with get_db_session() as session:
                RepositoryFactory(session).history.release(recipient, target.id)
            result.failed += 1
            return

        logger.info(f"Notified user {recipient} about release {target.id}")
        result.notified += 1
        result.alerts.append((recipient, target.id))
