"""Tests for trigger classification, building and rendering."""

from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from animebell.exceptions import DataIntegrityError
from animebell.scheduler.triggers import (
    ONE_WEEK_MS,
    add_week,
    build_trigger,
    crontab_weekdays,
    datetime_to_ms,
    day_window,
    describe_schedule,
    describe_trigger,
    is_one_shot,
    ms_to_datetime,
    next_fire_time,
    parse_cron_trigger,
    relative_time,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestClassification:
    """Tests for one-shot vs. recurring triggers."""

    @pytest.mark.parametrize("trigger", ["1700000000000", "0"])
    def test_digits_are_one_shot(self, trigger: str) -> None:
        assert is_one_shot(trigger) is True

    @pytest.mark.parametrize("trigger", ["0 9 * * *", "", "-1", "17e3", "１２３"])
    def test_everything_else_is_recurring(self, trigger: str) -> None:
        assert is_one_shot(trigger) is False

    def test_ms_conversion(self) -> None:
        assert ms_to_datetime(1700000000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert datetime_to_ms(ms_to_datetime(1700000000000)) == 1700000000000


class TestCrontabWeekdays:
    """Numeric crontab weekdays count from Sunday."""

    @pytest.mark.parametrize(
        "field,expected",
        [
            ("*", "*"),
            ("1", "mon"),
            ("0", "sun"),
            ("7", "sun"),
            ("1-5", "mon-fri"),
            ("0-2", "sun,mon-tue"),
            ("1,3,5", "mon,wed,fri"),
            ("mon-fri", "mon-fri"),
            ("*/2", "sun,tue,thu,sat"),
            ("0-6/2", "sun,tue,thu,sat"),
            ("0/2", "sun,tue,thu,sat"),
            ("1-5/2", "mon,wed,fri"),
            ("1-7/3", "mon,thu,sun"),
            ("mon-fri/2", "mon-fri/2"),
        ],
    )
    def test_translation(self, field: str, expected: str) -> None:
        assert crontab_weekdays(field) == expected

    def test_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            crontab_weekdays("8")

    @pytest.mark.parametrize("field", ["*/0", "5-1/2", "0-8/2"])
    def test_invalid_step(self, field: str) -> None:
        with pytest.raises(ValueError):
            crontab_weekdays(field)

    def test_stepped_cron_fires_on_sunday_based_days(self) -> None:
        trigger = build_trigger("0 0 * * */2")
        fired = []
        current = NOW
        for _ in range(4):
            current = trigger.get_next_fire_time(None, current + timedelta(seconds=1))
            fired.append(current.strftime("%a"))

        # 2024-03-01 is a Friday
        assert fired == ["Sat", "Sun", "Tue", "Thu"]


class TestBuildTrigger:
    """Tests for building APScheduler triggers."""

    def test_future_one_shot(self) -> None:
        fire_at = NOW + timedelta(hours=1)
        trigger = build_trigger(str(datetime_to_ms(fire_at)), now=NOW)

        assert isinstance(trigger, DateTrigger)
        assert trigger.run_date == fire_at

    def test_past_one_shot_is_clamped_to_now(self) -> None:
        trigger = build_trigger(str(datetime_to_ms(NOW - timedelta(days=2))), now=NOW)

        assert isinstance(trigger, DateTrigger)
        assert trigger.run_date == NOW

    def test_cron(self) -> None:
        assert isinstance(build_trigger("0 9 * * *", "Europe/Berlin"), CronTrigger)

    def test_six_field_cron(self) -> None:
        assert isinstance(parse_cron_trigger("30 0 9 * * *"), CronTrigger)

    @pytest.mark.parametrize("trigger", ["tomorrow", "0 9 * *", "99 9 * * *"])
    def test_unparseable_trigger(self, trigger: str) -> None:
        with pytest.raises(DataIntegrityError) as exc_info:
            build_trigger(trigger, job_id="custom:x:7")

        assert exc_info.value.job_id == "custom:x:7"

    @pytest.mark.parametrize("trigger", ["99999999999999999999", "9" * 400])
    def test_out_of_range_timestamp(self, trigger: str) -> None:
        with pytest.raises(DataIntegrityError) as exc_info:
            build_trigger(trigger, job_id="custom:x:7")

        assert exc_info.value.job_id == "custom:x:7"

    def test_out_of_range_timestamp_has_no_next_fire_time(self) -> None:
        with pytest.raises(DataIntegrityError):
            next_fire_time("99999999999999999999")

    def test_parse_cron_trigger_rejects_wrong_field_count(self) -> None:
        with pytest.raises(ValueError):
            parse_cron_trigger("* * *")


class TestNextFireTime:
    """Tests for computing the next fire time."""

    def test_one_shot(self) -> None:
        assert next_fire_time("1700000000000") == ms_to_datetime(1700000000000)

    def test_monday_cron_uses_crontab_numbering(self) -> None:
        # 2024-03-03 is a Sunday
        sunday = datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc)

        next_run = next_fire_time("0 9 * * 1", "UTC", now=sunday)

        assert next_run == datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("tz", ["UTC", "Europe/Berlin", "America/New_York"])
    def test_daily_cron_fires_once_per_day_across_dst(self, tz: str) -> None:
        """Consecutive runs of a daily cron are 23 to 25 hours apart."""
        trigger = parse_cron_trigger("0 9 * * *", tz)
        current = datetime(2024, 1, 1, tzinfo=timezone.utc)
        fire_times = []
        for _ in range(366):
            current = trigger.get_next_fire_time(None, current + timedelta(seconds=1))
            fire_times.append(current)

        for earlier, later in zip(fire_times, fire_times[1:]):
            gap = later - earlier
            assert timedelta(hours=23) <= gap <= timedelta(hours=25)
        assert len({t.date() for t in fire_times}) == len(fire_times)


class TestRendering:
    """Tests for human readable descriptions."""

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(seconds=40), "in a few seconds"),
            (timedelta(minutes=1), "in a minute"),
            (timedelta(minutes=10), "in 10 minutes"),
            (timedelta(minutes=100), "in 2 hours"),
            (timedelta(hours=30), "in a day"),
            (timedelta(days=3), "in 3 days"),
            (timedelta(days=-3), "3 days ago"),
            (timedelta(days=40), "in a month"),
            (timedelta(days=400), "in a year"),
            (timedelta(days=800), "in 2 years"),
        ],
    )
    def test_relative_time(self, delta: timedelta, expected: str) -> None:
        assert relative_time(NOW + delta, NOW) == expected

    def test_describe_one_shot(self) -> None:
        trigger = str(datetime_to_ms(NOW + timedelta(days=3)))

        assert describe_schedule(trigger, "UTC", NOW) == "Scheduled for 2024-03-04 12:00 UTC (in 3 days)"

    def test_describe_cron(self) -> None:
        description = describe_schedule("0 9 * * *", "UTC", NOW)

        assert description == "Scheduled with cron '0 9 * * *', next run 2024-03-02 09:00 UTC"

    def test_describe_trigger_for_cron(self) -> None:
        assert describe_trigger("0 9 * * *") == "This job uses no date, but a cron expression: <i>0 9 * * *</i>"

    def test_describe_trigger_for_one_shot(self) -> None:
        trigger = str(datetime_to_ms(NOW + timedelta(hours=5)))

        text = describe_trigger(trigger, "UTC", NOW)

        assert text == "This job should run at 2024-03-01 17:00 UTC <i>(in 5 hours)</i>"


class TestWindows:
    """Tests for week shifting and day windows."""

    def test_add_week(self) -> None:
        assert add_week("1700000000000") == "1700604800000"
        assert int(add_week("0")) == ONE_WEEK_MS

    def test_day_window_utc(self) -> None:
        start, end = day_window(datetime(2024, 3, 8, 15, 30))

        assert start == datetime_to_ms(datetime(2024, 3, 8, tzinfo=timezone.utc))
        assert end - start == 24 * 3600 * 1000

    def test_day_window_on_dst_change_is_23_hours(self) -> None:
        start, end = day_window(datetime(2024, 3, 31), "Europe/Berlin")

        assert start == datetime_to_ms(datetime(2024, 3, 30, 23, 0, tzinfo=timezone.utc))
        assert end - start == 23 * 3600 * 1000
