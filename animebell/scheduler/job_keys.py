"""Structured job keys.

A job id is stored as a single string, but inside the process it is always
handled as a ``JobKey``:

    <subject_id>:<trigger>:<owner_id>   content reminder
    custom:<trigger>:<owner_id>         free-form reminder
    internal:<name>                     system recurring task
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from animebell.exceptions import DataIntegrityError

INTERNAL_PREFIX = "internal:"
CUSTOM_PREFIX = "custom:"

_CONTENT_PREFIX = re.compile(r"^(\d+):")


class ReminderKind(str, Enum):
    """Kinds of scheduled jobs."""

    CONTENT = "content"
    CUSTOM = "custom"
    INTERNAL = "internal"


@dataclass(frozen=True)
class JobKey:
    """Typed form of a job id."""

    kind: ReminderKind
    trigger: str = ""
    owner_id: str = ""
    subject_id: Optional[int] = None
    name: str = ""

    @classmethod
    def content(cls, subject_id: int, trigger: str, owner_id: str) -> "JobKey":
        return cls(ReminderKind.CONTENT, trigger=trigger, owner_id=owner_id, subject_id=subject_id)

    @classmethod
    def custom(cls, trigger: str, owner_id: str) -> "JobKey":
        return cls(ReminderKind.CUSTOM, trigger=trigger, owner_id=owner_id)

    @classmethod
    def internal(cls, name: str) -> "JobKey":
        return cls(ReminderKind.INTERNAL, name=name)

    @property
    def is_internal(self) -> bool:
        return self.kind is ReminderKind.INTERNAL

    def encode(self) -> str:
        """Encode the key into its stored string form."""
        if self.kind is ReminderKind.INTERNAL:
            return f"{INTERNAL_PREFIX}{self.name}"
        if self.kind is ReminderKind.CUSTOM:
            return f"{CUSTOM_PREFIX}{self.trigger}:{self.owner_id}"
        return f"{self.subject_id}:{self.trigger}:{self.owner_id}"

    def __str__(self) -> str:
        return self.encode()

    @classmethod
    def parse(cls, job_id: str) -> "JobKey":
        """Parse a stored job id.

        The owner is the segment after the last ``:``; the trigger is
        everything between the prefix and the owner.

        Raises:
            DataIntegrityError: If the id matches none of the known forms
        """
        if job_id.startswith(INTERNAL_PREFIX):
            name = job_id[len(INTERNAL_PREFIX):]
            if not name:
                raise DataIntegrityError("Internal job id without a name", job_id=job_id)
            return cls.internal(name)

        if job_id.startswith(CUSTOM_PREFIX):
            trigger, owner_id = cls._split_tail(job_id, job_id[len(CUSTOM_PREFIX):])
            return cls.custom(trigger, owner_id)

        match = _CONTENT_PREFIX.match(job_id)
        if match:
            trigger, owner_id = cls._split_tail(job_id, job_id[match.end():])
            return cls.content(int(match.group(1)), trigger, owner_id)

        raise DataIntegrityError("Unrecognised job id", job_id=job_id)

    @staticmethod
    def _split_tail(job_id: str, rest: str) -> tuple[str, str]:
        trigger, sep, owner_id = rest.rpartition(":")
        if not sep or not trigger or not owner_id:
            raise DataIntegrityError("Job id is missing its trigger or owner", job_id=job_id)
        return trigger, owner_id
