"""Trigger classification and rendering.

A stored trigger is either a decimal string of epoch milliseconds (one-shot)
or a cron expression (recurring). This module turns both into APScheduler
triggers and human readable descriptions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from animebell.exceptions import DataIntegrityError

logger = logging.getLogger(__name__)

TimeZone = Union[str, tzinfo]

ONE_WEEK_MS = 7 * 24 * 60 * 60 * 1000

# (upper bound in seconds, singular phrase, unit length in seconds, unit name)
_RELATIVE_STEPS = [
    (45, "a few seconds", None, None),
    (90, "a minute", None, None),
    (45 * 60, None, 60, "minutes"),
    (90 * 60, "an hour", None, None),
    (22 * 3600, None, 3600, "hours"),
    (36 * 3600, "a day", None, None),
    (26 * 86400, None, 86400, "days"),
    (46 * 86400, "a month", None, None),
    (320 * 86400, None, 30 * 86400, "months"),
    (548 * 86400, "a year", None, None),
]


def is_one_shot(trigger: str) -> bool:
    """Whether a trigger is an epoch-millisecond timestamp."""
    return trigger.isascii() and trigger.isdigit()


def ms_to_datetime(ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def one_shot_datetime(trigger: str, job_id: Optional[str] = None) -> datetime:
    """Convert a one-shot trigger to its UTC fire time.

    Raises:
        DataIntegrityError: If the timestamp is outside the representable range
    """
    try:
        return ms_to_datetime(int(trigger))
    except (OverflowError, OSError, ValueError) as e:
        raise DataIntegrityError(f"Timestamp out of range: '{trigger}'", job_id=job_id) from e


def datetime_to_ms(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(value.timestamp() * 1000)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(tz: TimeZone) -> tzinfo:
    """Resolve a time zone name to a tzinfo."""
    return ZoneInfo(tz) if isinstance(tz, str) else tz


_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _expand_weekday_step(field: str, expr: str, step: str) -> str:
    """Expand "*/N", "A/N" or "A-B/N" on crontab numbering into day names."""
    if not step.isdigit() or int(step) == 0:
        raise ValueError(f"Invalid weekday step in '{field}'")
    if expr == "*":
        first, last = 0, 6
    else:
        start, dash, end = expr.partition("-")
        first = int(start)
        # "A/N" runs to the end of the week
        last = int(end) if dash else max(first, 6)
    if first > 7 or last > 7:
        raise ValueError(f"Weekday out of range in '{field}'")
    if first > last:
        raise ValueError(f"Invalid weekday range in '{field}'")
    names = []
    for day in range(first, last + 1, int(step)):
        if _WEEKDAY_NAMES[day] not in names:
            names.append(_WEEKDAY_NAMES[day])
    return ",".join(names)


def crontab_weekdays(field: str) -> str:
    """
    Translate numeric crontab weekdays (0 or 7 = Sunday) to names.

    APScheduler numbers weekdays from Monday, so "1" would otherwise mean
    Tuesday. Stepped numeric expressions are expanded to explicit day
    lists. Names and a bare "*" pass through unchanged.
    """
    items = []
    for item in field.split(","):
        expr, slash, step = item.partition("/")
        start, dash, end = expr.partition("-")
        numeric = start.isdigit() and (not dash or end.isdigit())
        if slash and (expr == "*" or numeric):
            items.append(_expand_weekday_step(field, expr, step))
            continue
        if not numeric:
            items.append(item)
            continue
        first, last = int(start), int(end) if dash else None
        if first > 7 or (last is not None and last > 7):
            raise ValueError(f"Weekday out of range in '{field}'")
        if last is None:
            items.append(_WEEKDAY_NAMES[first])
        elif first == 0 and last >= 1:
            # sun-X would wrap, APScheduler ranges do not
            items.append(f"sun,mon-{_WEEKDAY_NAMES[last]}" if last < 7 else "*")
        else:
            items.append(f"{_WEEKDAY_NAMES[first]}-{_WEEKDAY_NAMES[last]}")
    return ",".join(items)


def parse_cron_trigger(schedule: str, tz: TimeZone = "UTC") -> CronTrigger:
    """Parse a cron schedule string into a CronTrigger.

    Supports both 5-part (minute hour day month weekday) and
    6-part (second minute hour day month weekday) cron formats.

    Args:
        schedule: Cron schedule string
        tz: Time zone the fields are evaluated in

    Returns:
        CronTrigger instance

    Raises:
        ValueError: If the expression is malformed
    """
    parts = schedule.split()

    if len(parts) == 6:
        second, minute, hour, day, month, weekday = parts
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=crontab_weekdays(weekday),
            timezone=tz,
        )
    elif len(parts) == 5:
        minute, hour, day, month, weekday = parts
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=crontab_weekdays(weekday),
            timezone=tz,
        )
    else:
        raise ValueError(
            f"Invalid cron schedule: '{schedule}'. "
            "Expected 5 or 6 parts (minute hour day month weekday "
            "or second minute hour day month weekday)"
        )


def build_trigger(
    trigger: str,
    tz: TimeZone = "UTC",
    now: Optional[datetime] = None,
    job_id: Optional[str] = None,
) -> BaseTrigger:
    """
    Build the APScheduler trigger for a stored trigger string.

    One-shot timestamps in the past are clamped to ``now`` so they fire
    immediately instead of being reported as missed.

    Raises:
        DataIntegrityError: If the trigger is neither a timestamp nor a
            valid cron expression
    """
    if is_one_shot(trigger):
        if now is None:
            now = now_utc()
        run_date = max(one_shot_datetime(trigger, job_id), now)
        return DateTrigger(run_date=run_date, timezone=timezone.utc)

    try:
        return parse_cron_trigger(trigger, tz)
    except ValueError as e:
        raise DataIntegrityError(f"Unparseable trigger '{trigger}': {e}", job_id=job_id) from e


def next_fire_time(trigger: str, tz: TimeZone = "UTC", now: Optional[datetime] = None) -> Optional[datetime]:
    """Compute the next fire time of a stored trigger, or None if it never fires again."""
    if now is None:
        now = now_utc()
    if is_one_shot(trigger):
        return one_shot_datetime(trigger)
    cron = build_trigger(trigger, tz, now)
    return cron.get_next_fire_time(None, now)


def relative_time(target: datetime, now: Optional[datetime] = None) -> str:
    """
    Render the distance between two instants, e.g. "in 3 days" or "2 hours ago".

    Thresholds round the way a person would: 40 seconds is "a few seconds",
    100 minutes is "2 hours".
    """
    if now is None:
        now = now_utc()
    delta = (target - now).total_seconds()
    seconds = abs(delta)

    phrase = None
    for bound, singular, unit, unit_name in _RELATIVE_STEPS:
        if seconds < bound:
            if singular is not None:
                phrase = singular
            else:
                phrase = f"{max(2, round(seconds / unit))} {unit_name}"
            break
    if phrase is None:
        phrase = f"{max(2, round(seconds / (365 * 86400)))} years"

    return f"in {phrase}" if delta >= 0 else f"{phrase} ago"


def format_datetime(value: datetime, tz: TimeZone = "UTC") -> str:
    """Format an instant in the reference time zone."""
    return value.astimezone(get_zone(tz)).strftime("%Y-%m-%d %H:%M %Z")


def describe_schedule(
    trigger: str,
    tz: TimeZone = "UTC",
    now: Optional[datetime] = None,
) -> str:
    """
    Describe a trigger after scheduling it.

    Returns:
        "Scheduled for <date> (<relative>)" for one-shots, or
        "Scheduled with cron '<expr>', next run <date>" for recurring jobs
    """
    if now is None:
        now = now_utc()
    if is_one_shot(trigger):
        fire_at = one_shot_datetime(trigger)
        return f"Scheduled for {format_datetime(fire_at, tz)} ({relative_time(fire_at, now)})"

    next_run = next_fire_time(trigger, tz, now)
    if next_run is None:
        return f"Scheduled with cron '{trigger}', no upcoming run"
    return f"Scheduled with cron '{trigger}', next run {format_datetime(next_run, tz)}"


def describe_trigger(
    trigger: str,
    tz: TimeZone = "UTC",
    now: Optional[datetime] = None,
) -> str:
    """Render the "check date" answer for a trigger (HTML)."""
    if is_one_shot(trigger):
        fire_at = one_shot_datetime(trigger)
        return (
            f"This job should run at {format_datetime(fire_at, tz)} "
            f"<i>({relative_time(fire_at, now)})</i>"
        )
    return f"This job uses no date, but a cron expression: <i>{trigger}</i>"


def add_week(trigger: str) -> str:
    """Shift a one-shot trigger forward by seven days."""
    return str(int(trigger) + ONE_WEEK_MS)


def day_window(day: datetime, tz: TimeZone = "UTC") -> tuple[int, int]:
    """
    Get the ``[start, end)`` epoch-millisecond window of a calendar day.

    Args:
        day: Any instant on the day (naive values are taken as local to ``tz``)
        tz: Reference time zone

    Returns:
        Tuple of (start_ms, end_ms)
    """
    zone = get_zone(tz)
    local = day.replace(tzinfo=zone) if day.tzinfo is None else day.astimezone(zone)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    # Wall-clock arithmetic: the next local midnight, even across DST changes
    end = start + timedelta(days=1)
    return datetime_to_ms(start), datetime_to_ms(end)
