"""Database repositories for animebell.

Provides data access for the job ledger, the notification history ledger,
notification groups and the tracked items read from the catalog.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from animebell.database.models import (
    Job,
    NotificationGroup,
    NotificationGroupMember,
    NotificationHistory,
    TrackedItem,
    _utcnow,
)


def _dialect_insert(session: Session):
    """Return the dialect specific ``insert`` construct with ON CONFLICT support."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")
    return insert


class JobRepository:
    """
    Repository for the job ledger.

    Every write is a single-row statement committed immediately.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def upsert(self, job_id: str, trigger: str, text: str = "") -> Job:
        """
        Insert a job row or replace trigger and text of an existing one.

        Args:
            job_id: Encoded job key
            trigger: Epoch milliseconds or cron expression
            text: Message text delivered when the job fires

        Returns:
            The stored Job
        """
        insert = _dialect_insert(self.session)
        now = _utcnow()
        stmt = insert(Job).values(
            id=job_id,
            trigger=trigger,
            text=text,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Job.id],
            set_={"trigger": trigger, "text": text, "updated_at": now},
        )
        self.session.execute(stmt)
        self.session.commit()
        return self.session.get(Job, job_id, populate_existing=True)

    def get(self, job_id: str) -> Optional[Job]:
        """
        Get a job by id.

        Args:
            job_id: Encoded job key

        Returns:
            Job if found, None otherwise
        """
        return self.session.get(Job, job_id, populate_existing=True)

    def get_all(self) -> List[Job]:
        """Get all job rows ordered by id."""
        return self.session.query(Job).order_by(Job.id).all()

    def delete(self, job_id: str) -> bool:
        """
        Delete a job row.

        Args:
            job_id: Encoded job key

        Returns:
            True if a row was deleted, False if not found
        """
        deleted = self.session.query(Job).filter(Job.id == job_id).delete(
            synchronize_session=False
        )
        self.session.commit()
        return deleted > 0

    def delete_if_trigger(self, job_id: str, trigger: str) -> bool:
        """
        Delete a job row only while it still carries ``trigger``.

        A row that was re-scheduled with a different trigger is left alone.

        Returns:
            True if a row was deleted
        """
        deleted = self.session.query(Job).filter(
            Job.id == job_id,
            Job.trigger == trigger,
        ).delete(synchronize_session=False)
        self.session.commit()
        return deleted > 0

    def for_owner(self, owner_id: str) -> List[Job]:
        """
        Get the user-facing job rows owned by a user.

        Ownership is the trailing ``:<owner_id>`` segment of the id.
        Internal jobs are never returned.
        """
        # Deferred: the scheduler package imports this module
        from animebell.scheduler.job_keys import INTERNAL_PREFIX

        return self.session.query(Job).filter(
            Job.id.endswith(f":{owner_id}", autoescape=True),
            ~Job.id.startswith(INTERNAL_PREFIX),
        ).order_by(Job.id).all()

    def content_reminders_for_owner(
        self,
        owner_id: str,
        start_ms: int,
        end_ms: int,
    ) -> List[Job]:
        """
        Get a user's content reminders with a one-shot trigger in a window.

        Args:
            owner_id: Owner of the reminders
            start_ms: Window start, epoch milliseconds (inclusive)
            end_ms: Window end, epoch milliseconds (exclusive)

        Returns:
            Matching job rows in ledger order
        """
        from animebell.scheduler.job_keys import CUSTOM_PREFIX

        rows = []
        for job in self.for_owner(owner_id):
            if job.id.startswith(CUSTOM_PREFIX) or not job.is_one_shot:
                continue
            if start_ms <= int(job.trigger) < end_ms:
                rows.append(job)
        return rows

    def count(self) -> int:
        """Count all job rows."""
        return self.session.query(func.count(Job.id)).scalar() or 0


class NotificationHistoryRepository:
    """
    Repository for the notification history ledger.

    The unique (owner_id, external_content_id) constraint decides which of
    several concurrent claims wins.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def exists(self, owner_id: str, external_content_id: int) -> bool:
        """Check whether a user was already alerted about a content id."""
        return self.session.query(NotificationHistory.id).filter(
            NotificationHistory.owner_id == owner_id,
            NotificationHistory.external_content_id == external_content_id,
        ).first() is not None

    def claim(self, owner_id: str, external_content_id: int) -> bool:
        """
        Record an alert for a user and content id.

        Args:
            owner_id: User being alerted
            external_content_id: Content the alert is about

        Returns:
            True if this call created the record, False if it already existed
        """
        self.session.add(
            NotificationHistory(
                owner_id=owner_id,
                external_content_id=external_content_id,
            )
        )
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def release(self, owner_id: str, external_content_id: int) -> bool:
        """
        Remove a claim so a later run can alert again.

        Returns:
            True if a record was removed
        """
        deleted = self.session.query(NotificationHistory).filter(
            NotificationHistory.owner_id == owner_id,
            NotificationHistory.external_content_id == external_content_id,
        ).delete(synchronize_session=False)
        self.session.commit()
        return deleted > 0

    def count(self, owner_id: Optional[str] = None) -> int:
        """Count history records, optionally for one user."""
        query = self.session.query(func.count(NotificationHistory.id))
        if owner_id is not None:
            query = query.filter(NotificationHistory.owner_id == owner_id)
        return query.scalar() or 0


class NotificationGroupRepository:
    """Repository for digest notification groups and their members."""

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get_by_chat(self, chat_id: str) -> Optional[NotificationGroup]:
        """
        Get a group by its chat id.

        Args:
            chat_id: Chat the digest is posted to

        Returns:
            NotificationGroup if found, None otherwise
        """
        return self.session.query(NotificationGroup).filter(
            NotificationGroup.chat_id == chat_id
        ).first()

    def get_all(self) -> List[NotificationGroup]:
        """Get all groups ordered by creation."""
        return self.session.query(NotificationGroup).order_by(NotificationGroup.id).all()

    def create(self, chat_id: str) -> NotificationGroup:
        """Create an empty group for a chat."""
        group = NotificationGroup(chat_id=chat_id)
        self.session.add(group)
        self.session.commit()
        self.session.refresh(group)
        return group

    def add_member(self, group: NotificationGroup, owner_id: str) -> bool:
        """
        Add a user to a group.

        Returns:
            True if the user was added, False if already a member
        """
        if owner_id in group.member_ids:
            return False
        group.members.append(NotificationGroupMember(owner_id=owner_id))
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def delete(self, chat_id: str) -> bool:
        """
        Delete a group and its memberships.

        Returns:
            True if deleted, False if not found
        """
        group = self.get_by_chat(chat_id)
        if group is None:
            return False
        self.session.delete(group)
        self.session.commit()
        return True


class TrackedItemRepository:
    """
    Read access to tracked items.

    Tracked items are written by the catalog; ``create`` exists for seeding.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def create(self, **kwargs) -> TrackedItem:
        """Create a tracked item."""
        item = TrackedItem(**kwargs)
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def get(self, item_id: int, owner_id: str) -> Optional[TrackedItem]:
        """Get a user's tracked item by id."""
        return self.session.query(TrackedItem).filter(
            TrackedItem.id == item_id,
            TrackedItem.owner_id == owner_id,
        ).first()

    def get_for_owner(self, owner_id: str, kind: Optional[str] = None) -> List[TrackedItem]:
        """Get all items a user tracks, optionally of one kind."""
        query = self.session.query(TrackedItem).filter(TrackedItem.owner_id == owner_id)
        if kind is not None:
            query = query.filter(TrackedItem.kind == kind)
        return query.order_by(TrackedItem.id).all()

    def distinct_external_ids(self, kind: str, owner_id: Optional[str] = None) -> List[int]:
        """
        Get every distinct external content id tracked for a kind.

        Args:
            kind: Tracked kind (anime or novel)
            owner_id: Restrict to one user's items

        Returns:
            Sorted list of external content ids
        """
        query = self.session.query(TrackedItem.external_content_id).filter(
            TrackedItem.kind == kind,
            TrackedItem.external_content_id.isnot(None),
        )
        if owner_id is not None:
            query = query.filter(TrackedItem.owner_id == owner_id)
        return [row[0] for row in query.distinct().order_by(TrackedItem.external_content_id)]

    def owners_tracking(self, kind: str, external_content_id: int) -> List[str]:
        """Get the users tracking an external content id."""
        rows = self.session.query(TrackedItem.owner_id).filter(
            TrackedItem.kind == kind,
            TrackedItem.external_content_id == external_content_id,
        ).distinct().order_by(TrackedItem.owner_id)
        return [row[0] for row in rows]

    def is_tracking(self, owner_id: str, kind: str, external_content_id: int) -> bool:
        """Check whether a user already tracks an external content id."""
        return self.session.query(TrackedItem.id).filter(
            TrackedItem.owner_id == owner_id,
            TrackedItem.kind == kind,
            TrackedItem.external_content_id == external_content_id,
        ).first() is not None


class RepositoryFactory:
    """
    Factory for creating repository instances.

    Usage:
        with get_db_session() as session:
            repos = RepositoryFactory(session)
            rows = repos.jobs.get_all()
    """

    def __init__(self, session: Session):
        """
        Initialize factory with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session
        self._jobs: Optional[JobRepository] = None
        self._history: Optional[NotificationHistoryRepository] = None
        self._groups: Optional[NotificationGroupRepository] = None
        self._tracked: Optional[TrackedItemRepository] = None

    @property
    def jobs(self) -> JobRepository:
        """Get job ledger repository."""
        if self._jobs is None:
            self._jobs = JobRepository(self.session)
        return self._jobs

    @property
    def history(self) -> NotificationHistoryRepository:
        """Get notification history repository."""
        if self._history is None:
            self._history = NotificationHistoryRepository(self.session)
        return self._history

    @property
    def groups(self) -> NotificationGroupRepository:
        """Get notification group repository."""
        if self._groups is None:
            self._groups = NotificationGroupRepository(self.session)
        return self._groups

    @property
    def tracked(self) -> TrackedItemRepository:
        """Get tracked item repository."""
        if self._tracked is None:
            self._tracked = TrackedItemRepository(self.session)
        return self._tracked
