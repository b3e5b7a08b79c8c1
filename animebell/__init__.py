"""animebell - episode reminders, daily digests and new-release alerts."""

__app_name__ = "animebell"
__version__ = "0.4.0"
