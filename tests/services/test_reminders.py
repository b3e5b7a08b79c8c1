"""Tests for reminder operations."""

from datetime import datetime, timedelta, timezone

import pytest

from animebell.config import SchedulerConfig
from animebell.database.connection import get_db_session
from animebell.database.repositories import RepositoryFactory
from animebell.exceptions import DataIntegrityError, NotOwnerError
from animebell.gateways.delivery import InlineAction
from animebell.scheduler.job_keys import JobKey
from animebell.scheduler.job_scheduler import JobScheduler
from animebell.scheduler.triggers import datetime_to_ms
from animebell.services.reminders import (
    ReminderService,
    content_reminder_text,
    parse_repeat_callback,
    repeat_callback,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def stored(job_id: str):
    with get_db_session() as session:
        job = RepositoryFactory(session).jobs.get(job_id)
        return (job.trigger, job.text) if job else None


@pytest.fixture
def scheduler(db) -> JobScheduler:
    return JobScheduler(SchedulerConfig(timezone="UTC"))


@pytest.fixture
def service(scheduler, delivery) -> ReminderService:
    return ReminderService(scheduler, delivery)


class TestCallbacks:
    """Tests for inline action payloads."""

    def test_repeat_callback_round_trip(self) -> None:
        data = repeat_callback(42, "1700604800000", "7")

        assert data == "a_scheduler:42:1700604800000:7"
        assert parse_repeat_callback(data) == JobKey.content(42, "1700604800000", "7")

    @pytest.mark.parametrize(
        "data",
        ["cancel:custom:1:7", "a_scheduler:custom:1700000000000:7", "a_scheduler:42:7"],
    )
    def test_parse_repeat_callback_rejects(self, data: str) -> None:
        with pytest.raises(DataIntegrityError):
            parse_repeat_callback(data)

    def test_content_actions_offer_next_week(self, service) -> None:
        key = JobKey.content(42, "1700000000000", "7")

        assert service.actions_for(key) == [
            InlineAction("Repeat next week", "a_scheduler:42:1700604800000:7"),
        ]

    def test_recurring_content_has_no_repeat(self, service) -> None:
        assert service.actions_for(JobKey.content(42, "0 9 * * 5", "7")) == []

    def test_custom_actions(self, service) -> None:
        key = JobKey.custom("0 9 * * 1", "7")

        assert service.actions_for(key) == [
            InlineAction("Cancel Reminder", "cancel:custom:0 9 * * 1:7"),
            InlineAction("Check date", "check_date:0 9 * * 1"),
        ]

    def test_internal_has_no_actions(self, service) -> None:
        assert service.actions_for(JobKey.internal("daily_summary")) == []


class TestScheduling:
    """Tests for creating reminders."""

    def test_remind_content(self, service, scheduler, add_tracked) -> None:
        item_id = add_tracked("7", "Frieren")
        with get_db_session() as session:
            item = RepositoryFactory(session).tracked.get(item_id, "7")

        fire_at = datetime_to_ms(datetime.now(timezone.utc) + timedelta(days=2))
        description = service.remind_content(item, fire_at)

        job_id = f"{item_id}:{fire_at}:7"
        assert description.startswith("Scheduled for ")
        assert stored(job_id) == (str(fire_at), "This is your reminder for anime Frieren")
        assert scheduler.get_scheduled(job_id) is not None

    def test_remind_custom_cron(self, service) -> None:
        description = service.remind_custom("7", " 0 9 * * 1 ", "Stretch")

        assert description.startswith("Scheduled with cron '0 9 * * 1'")
        assert stored("custom:0 9 * * 1:7") == ("0 9 * * 1", "Stretch")

    def test_remind_custom_bad_trigger(self, service) -> None:
        with pytest.raises(DataIntegrityError):
            service.remind_custom("7", "next tuesday", "nope")

    @pytest.mark.asyncio
    async def test_built_action_delivers_with_buttons(self, service, delivery) -> None:
        key = JobKey.custom("0 9 * * 1", "7")
        service.remind_custom("7", "0 9 * * 1", "Stretch")
        with get_db_session() as session:
            job = RepositoryFactory(session).jobs.get(key.encode())

        await service.build_action(key, job)()

        [message] = delivery.sent
        assert message.destination == "7"
        assert message.text == "Stretch"
        assert [a.label for a in message.actions] == ["Cancel Reminder", "Check date"]


class TestRepeat:
    """Tests for the "Repeat next week" action."""

    def test_repeat_by_owner(self, service, add_tracked) -> None:
        item_id = add_tracked("7", "Frieren")

        service.repeat(f"a_scheduler:{item_id}:1700604800000:7", "7")

        assert stored(f"{item_id}:1700604800000:7") == (
            "1700604800000",
            content_reminder_text("Frieren"),
        )

    def test_repeat_by_someone_else(self, service, add_tracked) -> None:
        item_id = add_tracked("7", "Frieren")

        with pytest.raises(NotOwnerError, match="This is not your list"):
            service.repeat(f"a_scheduler:{item_id}:1700604800000:7", 8)

        assert stored(f"{item_id}:1700604800000:7") is None

    def test_repeat_missing_item_uses_placeholder(self, service) -> None:
        service.repeat("a_scheduler:42:1700604800000:7", "7")

        assert stored("42:1700604800000:7") == ("1700604800000", "This is your reminder for anime n/a")


class TestManage:
    """Tests for listing, canceling and describing reminders."""

    def test_cancel_strips_prefix(self, service) -> None:
        service.remind_custom("7", "0 9 * * 1", "Stretch")

        assert service.cancel("cancel:custom:0 9 * * 1:7") is True
        assert stored("custom:0 9 * * 1:7") is None
        assert service.cancel("cancel:custom:0 9 * * 1:7") is False

    def test_list_reminders_hides_past_one_shots(self, service) -> None:
        past = str(datetime_to_ms(NOW - timedelta(hours=1)))
        future = str(datetime_to_ms(NOW + timedelta(hours=1)))
        with get_db_session() as session:
            jobs = RepositoryFactory(session).jobs
            jobs.upsert(f"custom:{past}:7", past, "old")
            jobs.upsert(f"custom:{future}:7", future, "soon")
            jobs.upsert("custom:0 9 * * *:7", "0 9 * * *", "daily")
            jobs.upsert(f"custom:{future}:8", future, "not mine")
            jobs.upsert("internal:daily_summary", "0 9 * * *", "system")

        texts = sorted(j.text for j in service.list_reminders("7", now=NOW))

        assert texts == ["daily", "soon"]

    def test_format_reminders(self, service) -> None:
        future = str(datetime_to_ms(NOW + timedelta(days=3)))
        with get_db_session() as session:
            jobs = RepositoryFactory(session).jobs
            jobs.upsert(f"custom:{future}:7", future, "Dentist")
            jobs.upsert("custom:0 9 * * *:7", "0 9 * * *", "Water plants")

        text = service.format_reminders(service.list_reminders("7", now=NOW), now=NOW)

        assert text.startswith("<b>Your reminders:</b>\n")
        assert "[in 3 days] <i>Dentist</i>" in text
        assert "[0 9 * * *] <i>Water plants</i>" in text

    def test_format_no_reminders(self, service) -> None:
        assert service.format_reminders([]) == "You have no reminders currently active"

    def test_describe_trigger(self, service) -> None:
        trigger = str(datetime_to_ms(NOW + timedelta(hours=2)))

        assert service.describe_trigger(f"check_date:{trigger}", now=NOW) == (
            "This job should run at 2024-03-01 14:00 UTC <i>(in 2 hours)</i>"
        )
        assert service.describe_trigger("check_date:0 9 * * *") == (
            "This job uses no date, but a cron expression: <i>0 9 * * *</i>"
        )
