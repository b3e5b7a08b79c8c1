"""Message texts sent by the notification sweeps."""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable

_TAG = re.compile(r"</?\w+>")
_HTML_ESCAPES = {
    "&": "&amp;",
    '"': "&quot;",
    "'": "&apos;",
    "<": "&lt;",
    ">": "&gt;",
}
_SPECIAL = re.compile(r"[&\"'<>]")


def escape(text: str) -> str:
    """Strip simple HTML tags, then escape HTML special characters."""
    return _SPECIAL.sub(lambda m: _HTML_ESCAPES[m.group()], _TAG.sub("", text))


def _bullets(items: Iterable[str]) -> str:
    return "".join(f"\n- {item}" for item in items)


def format_day(day: date) -> str:
    """Format a date like "Friday, March 8"."""
    return f"{day:%A}, {day:%B} {day.day}"


def daily_summary(items: Iterable[str]) -> str:
    return (
        "☀️ Daily Anime Summary ☀️\n\n"
        "Based on opted-in users, here are some anime episodes potentially available today:\n"
        f"{_bullets(items)}"
        "\n\nEnjoy your watch!"
    )


def preview_summary(day: date, items: Iterable[str]) -> str:
    return (
        f"🗓️ Anime Summary for {format_day(day)} 🗓️\n\n"
        "Based on opted-in users, here's what might air:\n"
        f"{_bullets(items)}"
    )


def empty_preview(day: date) -> str:
    return f"Looks like nothing is scheduled for opted-in users on {format_day(day)}."


def opt_in_sample(items: Iterable[str]) -> str:
    return (
        "👀 Here's a sample of what you might see today:\n"
        f"{_bullets(items)}"
        "\n\n(This is just a preview based on your current reminders. "
        "The full daily summary includes everyone who opted in.)"
    )


EMPTY_OPT_IN_SAMPLE = (
    "(Based on your current reminders, it looks like nothing is scheduled for you today.)"
)

NO_MEMBERS = "No users have opted into notifications in this group yet."


def season_alert(title: str) -> str:
    return (
        "📢 <b>New Season Alert!</b>\n\n"
        "A sequel to an anime you are watching is available or coming soon:\n\n"
        f"<b>{escape(title)}</b>\n\n"
        "Do you want to add it to your list?"
    )


def novel_alert(title: str) -> str:
    return (
        "📚 <b>New Novel Alert!</b>\n\n"
        "A sequel/related novel to one you are reading is available or coming soon:\n\n"
        f"<b>{escape(title)}</b>\n\n"
        "Do you want to add it to your list?"
    )


def check_cooldown(minutes: int) -> str:
    return f"Please wait {minutes} minutes before checking again."
