"""League facade: wires storage, ranking, lifecycle, scoring and the sweeper."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from ladder_engine.core.clock import Clock, utc_now
from ladder_engine.core.config import LadderConfig
from ladder_engine.models import Challenge, LiveMatch, Member
from ladder_engine.ranking import EligibilityPolicy, RankStore, create_rank_store
from ladder_engine.services.challenge import ChallengeLifecycle
from ladder_engine.services.events import EventSink, create_event_sink
from ladder_engine.services.match import MatchScoring
from ladder_engine.services.storage import ActivityRepository, create_ladder_engine, init_schema
from ladder_engine.services.sweeper import HousekeepingSweeper

if TYPE_CHECKING:
    import asyncio

    from sqlalchemy import Engine

logger = structlog.get_logger()


class LadderLeague:
    """Inbound action API for one league.

    ``member_id`` arguments are identities already verified by the caller's
    auth layer.
    """

    def __init__(
        self,
        config: LadderConfig,
        engine: Engine | None = None,
        extra_sinks: Sequence[EventSink] = (),
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the league.

        Args:
            config: League configuration.
            engine: Optional pre-built engine; built from the config otherwise.
            extra_sinks: Sinks added after the configured ones.
            clock: Time source shared by every component.
        """
        self.config = config
        self.engine = engine or create_ladder_engine(
            config.get_database_url(), config.storage.lock_timeout_seconds
        )
        self.activities = ActivityRepository(self.engine, config.storage)
        self.events = create_event_sink(config.events, self.activities, extra_sinks)
        self.ranks: RankStore = create_rank_store(self.engine, config, self.events, clock)
        self.eligibility = EligibilityPolicy.from_config(config.policy, clock)
        self.lifecycle = ChallengeLifecycle(
            self.engine,
            self.ranks,
            policy=config.policy,
            engagement=config.engagement,
            events=self.events,
            storage=config.storage,
            clock=clock,
            eligibility=self.eligibility,
        )
        self.scoring = MatchScoring(
            self.engine,
            self.ranks,
            self.lifecycle,
            policy=config.policy,
            engagement=config.engagement,
            events=self.events,
            storage=config.storage,
            clock=clock,
        )
        self.sweeper = HousekeepingSweeper(self.lifecycle, clock)

    def init_schema(self) -> None:
        init_schema(self.engine)

    async def close(self) -> None:
        """Close event sinks and dispose of the engine."""
        await self.events.close()
        self.engine.dispose()

    # Membership

    async def join(self, display_name: str, rating: int = 0) -> Member:
        return await self.ranks.add_member(display_name, rating)

    async def seed(self, roster: Sequence[tuple[str, int]]) -> list[Member]:
        return await self.ranks.import_members(roster)

    async def standings(self, limit: int | None = None) -> list[Member]:
        return await self.ranks.standings(limit)

    # Challenges

    async def create_challenge(
        self,
        member_id: str,
        target_id: str,
        discipline: str = "8-ball",
        games_to_win: int | None = None,
    ) -> Challenge:
        return await self.lifecycle.create_challenge(member_id, target_id, discipline, games_to_win)

    async def propose(
        self, member_id: str, challenge_id: str, venue: str, proposed_time: datetime | None = None
    ) -> Challenge:
        return await self.lifecycle.propose(challenge_id, member_id, venue, proposed_time)

    async def counter_propose(
        self, member_id: str, challenge_id: str, venue: str, proposed_time: datetime | None = None
    ) -> Challenge:
        return await self.lifecycle.counter_propose(challenge_id, member_id, venue, proposed_time)

    async def confirm(self, member_id: str, challenge_id: str) -> Challenge:
        return await self.lifecycle.confirm(challenge_id, member_id)

    async def decline(self, member_id: str, challenge_id: str) -> Challenge:
        return await self.lifecycle.decline(challenge_id, member_id)

    # Matches

    async def start_live_match(self, member_id: str, challenge_id: str) -> LiveMatch:
        return await self.lifecycle.start_live_match(challenge_id, member_id)

    async def create_ladder_match(
        self, member_id: str, opponent_id: str, games_to_win: int | None = None
    ) -> LiveMatch:
        return await self.scoring.create_live_match(member_id, opponent_id, games_to_win)

    async def score_point(self, match_id: str, player_id: str) -> LiveMatch:
        return await self.scoring.score_point(match_id, player_id)

    # Housekeeping

    async def run_sweep(self, now: datetime | None = None) -> int:
        return await self.sweeper.run_sweep(now)

    async def run_sweeper(self, stop_event: asyncio.Event | None = None) -> None:
        await self.sweeper.run_forever(self.config.sweeper.interval_seconds, stop_event)


def open_league(
    config: LadderConfig,
    extra_sinks: Sequence[EventSink] = (),
    clock: Clock = utc_now,
    create_schema: bool = True,
) -> LadderLeague:
    """Build a league from config and make sure its tables exist.

    Args:
        config: League configuration.
        extra_sinks: Sinks added after the configured ones.
        clock: Time source shared by every component.
        create_schema: Create missing tables before returning.

    Returns:
        Ready-to-use league.
    """
    league = LadderLeague(config, extra_sinks=extra_sinks, clock=clock)
    if create_schema:
        league.init_schema()
    logger.debug("league_opened", name=config.name, database=config.get_database_url())
    return league
