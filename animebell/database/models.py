"""
SQLAlchemy models for the animebell database.

The job ledger, notification history and notification groups are owned by
this package. Tracked items belong to the catalog component and are only read
here.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

# Create base class for all models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackedKind(str, Enum):
    """Kinds of tracked items."""

    ANIME = "anime"
    NOVEL = "novel"


class Job(Base):
    """
    Job ledger row.

    One row per scheduling intent. ``id`` is the encoded job key and
    ``trigger`` is either epoch milliseconds (one-shot) or a cron expression
    (recurring).
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    trigger: Mapped[str] = mapped_column(String, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    @property
    def is_one_shot(self) -> bool:
        """Whether the trigger is an epoch-millisecond timestamp."""
        from animebell.scheduler.triggers import is_one_shot

        return is_one_shot(self.trigger)

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary representation."""
        return {
            "id": self.id,
            "trigger": self.trigger,
            "text": self.text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class NotificationHistory(Base):
    """
    Record of a release alert sent to a user.

    The unique constraint on (owner_id, external_content_id) is the
    at-most-once guarantee for alerts. Rows are never pruned.
    """

    __tablename__ = "notification_history"
    __table_args__ = (
        UniqueConstraint("owner_id", "external_content_id", name="uq_notification_owner_content"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    external_content_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert history entry to dictionary representation."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "external_content_id": self.external_content_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class NotificationGroup(Base):
    """
    A group chat that receives the daily digest.

    Members are the users whose reminders feed the group's digest.
    """

    __tablename__ = "notification_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    chat_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )

    members: Mapped[List["NotificationGroupMember"]] = relationship(
        "NotificationGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="NotificationGroupMember.joined_at",
    )

    @property
    def member_ids(self) -> List[str]:
        """Owner ids of all members, in join order."""
        return [m.owner_id for m in self.members]

    def to_dict(self) -> Dict[str, Any]:
        """Convert group to dictionary representation."""
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "members": self.member_ids,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class NotificationGroupMember(Base):
    """Membership of a user in a notification group."""

    __tablename__ = "notification_group_members"

    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("notification_groups.id", ondelete="CASCADE"),
        primary_key=True,
    )
    owner_id: Mapped[str] = mapped_column(String, primary_key=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )

    group: Mapped[NotificationGroup] = relationship("NotificationGroup", back_populates="members")


class TrackedItem(Base):
    """
    A user's progress record for one title.

    Written by the catalog component; ``progress_counter`` is the last
    watched episode or read chapter.
    """

    __tablename__ = "tracked_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False, default=TrackedKind.ANIME.value)
    name: Mapped[str] = mapped_column(String, nullable=False)
    external_content_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    progress_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert tracked item to dictionary representation."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "kind": self.kind,
            "name": self.name,
            "external_content_id": self.external_content_id,
            "progress_counter": self.progress_counter,
        }


# Additional indexes for common queries
Index("ix_tracked_items_kind_external", TrackedItem.kind, TrackedItem.external_content_id)
