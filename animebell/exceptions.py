"""Exceptions raised by the scheduling and notification core."""

from __future__ import annotations

from enum import Enum


class AnimeBellError(Exception):
    """Base exception for animebell errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class DeliveryFailure(str, Enum):
    """Reasons a chat delivery can fail."""

    DESTINATION_GONE = "destination_gone"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class DeliveryError(AnimeBellError):
    """Raised when the delivery gateway could not send a message."""

    reason: DeliveryFailure = DeliveryFailure.OTHER

    def __init__(
        self,
        message: str,
        destination: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.destination = destination
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.destination:
            parts.append(f"(destination: {self.destination})")
        if self.status_code is not None:
            parts.append(f"(status: {self.status_code})")
        return " ".join(parts)


class TransientDeliveryError(DeliveryError):
    """Delivery was refused for now; the next natural cycle retries."""

    reason = DeliveryFailure.RATE_LIMITED

    def __init__(
        self,
        message: str,
        destination: str | None = None,
        status_code: int | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, destination, status_code)
        self.retry_after = retry_after


class PermanentDestinationError(DeliveryError):
    """The destination no longer exists or has blocked the bot."""

    reason = DeliveryFailure.DESTINATION_GONE


class DataIntegrityError(AnimeBellError):
    """Raised for a malformed job id or an unparseable trigger."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id

    def __str__(self) -> str:
        if self.job_id:
            return f"{self.message} (job: {self.job_id})"
        return self.message


class ExternalServiceError(AnimeBellError):
    """Raised when the metadata gateway fails for a content id."""

    def __init__(self, message: str, content_id: int | None = None) -> None:
        super().__init__(message)
        self.content_id = content_id

    def __str__(self) -> str:
        if self.content_id is not None:
            return f"{self.message} (content: {self.content_id})"
        return self.message


class GroupNotFoundError(AnimeBellError):
    """Raised when a notification group does not exist."""
    pass


class NotOwnerError(AnimeBellError):
    """Raised when a user acts on a reminder owned by someone else."""
    pass


class CheckRateLimitedError(AnimeBellError):
    """Raised when an on-demand release check is requested too often."""

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after
