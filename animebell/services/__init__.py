"""Services called by the chat command layer."""

from animebell.services.reminders import ReminderService

__all__ = [
    "ReminderService",
]
