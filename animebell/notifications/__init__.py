"""Recurring notification sweeps: the daily digest and release alerts."""

from animebell.notifications.digest import (
    DigestGenerator,
    DigestRunResult,
    SubscriptionResult,
)
from animebell.notifications.releases import (
    RELEASE_RULES,
    ReleaseCheckResult,
    ReleaseDetector,
)

__all__ = [
    "DigestGenerator",
    "DigestRunResult",
    "RELEASE_RULES",
    "ReleaseCheckResult",
    "ReleaseDetector",
    "SubscriptionResult",
]
