"""Tests for the new release detector."""

import asyncio
from typing import Dict, List, Tuple

import pytest

from animebell.config import NotificationConfig, SchedulerConfig
from animebell.database.connection import get_db_session
from animebell.database.repositories import RepositoryFactory
from animebell.exceptions import CheckRateLimitedError, DeliveryError, ExternalServiceError
from animebell.gateways.metadata import MediaNode, RelationEdge
from animebell.notifications import formatting
from animebell.notifications.releases import ReleaseDetector


def sequel(target_id: int, title: str, kind: str = "ANIME", status: str = "RELEASING",
           relation: str = "SEQUEL") -> RelationEdge:
    return RelationEdge(relation_type=relation, target=MediaNode(id=target_id, kind=kind, status=status, title=title))


class FakeMetadata:
    """Metadata gateway serving canned relation lists."""

    def __init__(self) -> None:
        self.relations: Dict[Tuple[int, str], List[RelationEdge]] = {}
        self.failures: Dict[int, Exception] = {}
        self.calls: List[Tuple[int, str]] = []

    async def get_relations(self, content_id: int, kind: str) -> List[RelationEdge]:
        self.calls.append((content_id, kind))
        await asyncio.sleep(0)
        if content_id in self.failures:
            raise self.failures[content_id]
        return self.relations.get((content_id, kind), [])


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def metadata() -> FakeMetadata:
    return FakeMetadata()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def detector(db, delivery, metadata, clock) -> ReleaseDetector:
    return ReleaseDetector(
        delivery,
        metadata,
        SchedulerConfig(max_concurrency=3),
        NotificationConfig(check_cooldown=900),
        clock=clock,
    )


def history_count(owner_id: str = None) -> int:
    with get_db_session() as session:
        return RepositoryFactory(session).history.count(owner_id)


class TestRun:
    """Tests for the release sweep."""

    @pytest.mark.asyncio
    async def test_each_tracker_alerted_exactly_once(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)
        add_tracked("B", "Frieren", external_id=100)
        metadata.relations[(100, "anime")] = [sequel(200, "Frieren Season 2")]

        first = await detector.run()

        assert first.checked == 1
        assert first.notified == 2
        assert sorted(first.alerts) == [("A", 200), ("B", 200)]
        assert len(delivery.to("A")) == 1
        assert len(delivery.to("B")) == 1
        message = delivery.to("A")[0]
        assert message.text == formatting.season_alert("Frieren Season 2")
        assert message.parse_mode == "HTML"

        second = await detector.run()

        assert second.notified == 0
        assert second.already_notified == 2
        assert len(delivery.sent) == 2

    @pytest.mark.asyncio
    async def test_users_already_tracking_target_are_skipped(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)
        add_tracked("B", "Frieren", external_id=100)
        add_tracked("B", "Frieren Season 2", external_id=200)
        metadata.relations[(100, "anime")] = [sequel(200, "Frieren Season 2")]

        result = await detector.run()

        assert result.alerts == [("A", 200)]
        assert delivery.to("B") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "edge",
        [
            sequel(200, "Done", status="FINISHED"),
            sequel(200, "Prequel", relation="PREQUEL"),
            sequel(200, "Manga", kind="MANGA"),
            sequel(200, "Unknown", status=None),
        ],
    )
    async def test_non_matching_relations_are_ignored(self, detector, delivery, metadata, add_tracked, edge) -> None:
        add_tracked("A", "Frieren", external_id=100)
        metadata.relations[(100, "anime")] = [edge]

        result = await detector.run()

        assert result.candidates == 0
        assert delivery.sent == []

    @pytest.mark.asyncio
    async def test_novel_side_story(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Mushoku Tensei", external_id=300, kind="novel")
        metadata.relations[(300, "novel")] = [
            sequel(301, "Mushoku Tensei: Redundancy", kind="MANGA", status="NOT_YET_RELEASED", relation="SIDE_STORY"),
        ]

        result = await detector.run()

        assert result.notified == 1
        assert delivery.to("A")[0].text == formatting.novel_alert("Mushoku Tensei: Redundancy")
        assert (300, "novel") in metadata.calls

    @pytest.mark.asyncio
    async def test_same_target_from_two_originals_alerts_once(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Season 1", external_id=100)
        add_tracked("A", "Movie", external_id=101)
        metadata.relations[(100, "anime")] = [sequel(200, "Season 2")]
        metadata.relations[(101, "anime")] = [sequel(200, "Season 2")]

        result = await detector.run()

        assert result.notified == 1
        assert result.already_notified == 1
        assert len(delivery.to("A")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_runs_alert_once(self, db, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)
        add_tracked("B", "Frieren", external_id=100)
        metadata.relations[(100, "anime")] = [sequel(200, "Frieren Season 2")]
        first = ReleaseDetector(delivery, metadata)
        second = ReleaseDetector(delivery, metadata)

        results = await asyncio.gather(first.run(), second.run())

        assert sum(r.notified for r in results) == 2
        assert len(delivery.to("A")) == 1
        assert len(delivery.to("B")) == 1
        assert history_count() == 2

    @pytest.mark.asyncio
    async def test_metadata_failure_is_isolated(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Broken", external_id=100)
        add_tracked("A", "Fine", external_id=101)
        metadata.failures[100] = ExternalServiceError("AniList request failed", content_id=100)
        metadata.relations[(101, "anime")] = [sequel(201, "Fine 2")]

        result = await detector.run()

        assert result.checked == 2
        assert result.failed == 1
        assert result.alerts == [("A", 201)]

    @pytest.mark.asyncio
    async def test_send_failure_releases_claim(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)
        metadata.relations[(100, "anime")] = [sequel(200, "Frieren Season 2")]
        delivery.errors["A"] = DeliveryError("timeout", destination="A")

        result = await detector.run()

        assert result.failed == 1
        assert history_count("A") == 0

        del delivery.errors["A"]
        retry = await detector.run()

        assert retry.notified == 1
        assert history_count("A") == 1

    @pytest.mark.asyncio
    async def test_owner_scope(self, detector, delivery, metadata, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)
        add_tracked("B", "Frieren", external_id=100)
        add_tracked("B", "Dandadan", external_id=500)
        metadata.relations[(100, "anime")] = [sequel(200, "Frieren Season 2")]

        result = await detector.run(owner_id="A")

        assert result.checked == 1
        assert result.alerts == [("A", 200)]
        assert delivery.to("B") == []
        assert (500, "anime") not in metadata.calls

    @pytest.mark.asyncio
    async def test_dry_run_sends_and_records_nothing(self, db, metadata, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)
        metadata.relations[(100, "anime")] = [sequel(200, "Frieren Season 2")]
        detector = ReleaseDetector(None, metadata)

        result = await detector.run(dry_run=True)

        assert result.alerts == [("A", 200)]
        assert result.notified == 0
        assert history_count() == 0

    @pytest.mark.asyncio
    async def test_items_without_external_id_are_not_checked(self, detector, metadata, add_tracked) -> None:
        add_tracked("A", "Homebrew")

        result = await detector.run()

        assert result.checked == 0
        assert metadata.calls == []


class TestRequestCheck:
    """Tests for the rate limited on-demand check."""

    @pytest.mark.asyncio
    async def test_cooldown(self, detector, clock, add_tracked) -> None:
        add_tracked("A", "Frieren", external_id=100)

        await detector.request_check("A")

        clock.now += 60
        with pytest.raises(CheckRateLimitedError) as exc_info:
            await detector.request_check("A")
        assert str(exc_info.value) == "Please wait 14 minutes before checking again."
        assert exc_info.value.retry_after == 840

        await detector.request_check("B")

        clock.now += 840
        await detector.request_check("A")

    @pytest.mark.asyncio
    async def test_expired_cooldowns_are_forgotten(self, detector, clock) -> None:
        await detector.request_check("A")
        clock.now += 300
        await detector.request_check("B")

        clock.now += 600
        await detector.request_check("C")

        assert set(detector._last_check) == {"B", "C"}
