"""Persistence layer for animebell.

SQLAlchemy models for the job ledger, notification history and groups,
plus session management and repositories.
"""

from animebell.database.connection import (
    create_tables,
    dispose_engine,
    get_db_session,
    init_engine,
)
from animebell.database.models import (
    Base,
    Job,
    NotificationGroup,
    NotificationGroupMember,
    NotificationHistory,
    TrackedItem,
    TrackedKind,
)
from animebell.database.repositories import (
    JobRepository,
    NotificationGroupRepository,
    NotificationHistoryRepository,
    RepositoryFactory,
    TrackedItemRepository,
)

__all__ = [
    "Base",
    "Job",
    "JobRepository",
    "NotificationGroup",
    "NotificationGroupMember",
    "NotificationGroupRepository",
    "NotificationHistory",
    "NotificationHistoryRepository",
    "RepositoryFactory",
    "TrackedItem",
    "TrackedItemRepository",
    "TrackedKind",
    "create_tables",
    "dispose_engine",
    "get_db_session",
    "init_engine",
]
