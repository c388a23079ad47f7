"""Shared fixtures: a file-backed SQLite league with a controllable clock."""

from datetime import UTC, datetime, timedelta

import pytest

from ladder_engine.core.config import DATABASE_URL_ENV, EventsConfig, LadderConfig, StorageConfig
from ladder_engine.league import open_league
from ladder_engine.services.events import RecordingEventSink


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 1, 18, 0, tzinfo=UTC))


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    return LadderConfig(
        name="test-league",
        storage=StorageConfig(
            database_url=f"sqlite:///{tmp_path / 'ladder.db'}",
            retry_min_wait_seconds=0.01,
            retry_max_wait_seconds=0.1,
            max_attempts=5,
        ),
        events=EventsConfig(log_events=False, persist_activities=True),
    )


@pytest.fixture
def recorder():
    return RecordingEventSink()


@pytest.fixture
async def league(config, recorder, clock):
    league = open_league(config, extra_sinks=[recorder], clock=clock)
    yield league
    await league.close()


async def seed_ladder(league, names):
    """Seed ``names`` so the first name gets rank 1; returns members keyed by name."""
    roster = [(name, 1000 - i) for i, name in enumerate(names)]
    members = await league.seed(roster)
    return {member.display_name: member for member in members}


@pytest.fixture
async def abcd(league):
    """Four-member ladder A, B, C, D."""
    return await seed_ladder(league, ["A", "B", "C", "D"])


@pytest.fixture
async def eight(league):
    """Eight-member ladder A..H."""
    return await seed_ladder(league, list("ABCDEFGH"))


async def ladder_order(league):
    """Display names in rank order."""
    return [m.display_name for m in await league.standings()]
