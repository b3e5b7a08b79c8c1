"""Shared fixtures for animebell tests."""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import pytest

from animebell.config import AnimeBellConfig, clear_config_cache, set_config
from animebell.database.connection import create_tables, dispose_engine, get_db_session
from animebell.database.models import TrackedKind
from animebell.database.repositories import RepositoryFactory
from animebell.gateways.delivery import InlineAction


@pytest.fixture
def config(tmp_path) -> AnimeBellConfig:
    """Configuration pointing at a fresh SQLite database under tmp_path."""
    cfg = AnimeBellConfig(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
    cfg.telegram.bot_token = "123456:TEST"
    return cfg


@pytest.fixture
def db(config):
    """Install the config globally and create the schema."""
    dispose_engine()
    set_config(config)
    create_tables(config)
    yield config
    dispose_engine()
    clear_config_cache()


@dataclass
class SentMessage:
    destination: str
    text: str
    actions: Optional[List[InlineAction]] = None
    parse_mode: Optional[str] = None


@dataclass
class FakeDelivery:
    """Delivery gateway that records messages instead of sending them."""

    sent: List[SentMessage] = field(default_factory=list)
    errors: dict = field(default_factory=dict)

    async def send(
        self,
        destination: str,
        text: str,
        actions: Optional[Sequence[InlineAction]] = None,
        parse_mode: Optional[str] = None,
    ) -> None:
        error = self.errors.get(destination)
        if error is not None:
            raise error
        self.sent.append(
            SentMessage(destination, text, list(actions) if actions else None, parse_mode)
        )

    def to(self, destination: str) -> List[SentMessage]:
        return [m for m in self.sent if m.destination == destination]


@pytest.fixture
def delivery() -> FakeDelivery:
    return FakeDelivery()


@pytest.fixture
def add_tracked(db):
    """Factory that seeds a tracked item and returns its id."""

    def _add(owner_id: str, name: str, external_id: Optional[int] = None,
             kind: str = TrackedKind.ANIME.value, progress: int = 0, **extra: Any) -> int:
        with get_db_session() as session:
            item = RepositoryFactory(session).tracked.create(
                owner_id=owner_id,
                kind=kind,
                name=name,
                external_content_id=external_id,
                progress_counter=progress,
                **extra,
            )
            return item.id

    return _add
