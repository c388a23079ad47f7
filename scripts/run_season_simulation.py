#!/usr/bin/env python
"""Simulate a ladder season against a scratch SQLite database.

Seeds twenty players, then plays a few weeks of random challenges: some are
played out frame by frame, some declined, the rest left to the sweeper.
"""

import asyncio
import random
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from ladder_engine.core.config import EventsConfig, LadderConfig, StorageConfig
from ladder_engine.core.errors import LadderError
from ladder_engine.league import open_league

PLAYERS = 20
WEEKS = 6
CHALLENGES_PER_WEEK = 8


class SimClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


async def play_out(league, rng: random.Random, challenge, challenger_id: str) -> None:
    """Negotiate, confirm and score a challenge to completion."""
    await league.propose(challenge.challenged_id, challenge.id, "Capital Billiards")
    await league.confirm(challenger_id, challenge.id)
    match = await league.start_live_match(challenger_id, challenge.id)
    players = [match.player1_id, match.player2_id]
    while match.is_active:
        match = await league.score_point(match.id, rng.choice(players))


async def main() -> None:
    """Run the simulated season and print the final ladder."""
    rng = random.Random(2026)
    clock = SimClock(datetime(2026, 1, 5, 19, 0, tzinfo=UTC))
    db_path = Path(tempfile.mkdtemp()) / "season.db"
    config = LadderConfig(
        name="simulated-season",
        storage=StorageConfig(database_url=f"sqlite:///{db_path}"),
        events=EventsConfig(log_events=False),
    )
    league = open_league(config, clock=clock)
    try:
        members = await league.seed(
            [(f"Player {i}", 1600 - i * 15) for i in range(1, PLAYERS + 1)]
        )
        by_rank = {m.id: m for m in members}
        rejected = 0

        for week in range(WEEKS):
            for _ in range(CHALLENGES_PER_WEEK):
                standings = await league.standings()
                challenger = rng.choice(standings[1:])
                window = [m for m in standings if 0 < challenger.rank - m.rank <= 5]
                if not window:
                    continue
                target = rng.choice(window)
                try:
                    challenge = await league.create_challenge(challenger.id, target.id)
                    roll = rng.random()
                    if roll < 0.6:
                        await play_out(league, rng, challenge, challenger.id)
                    elif roll < 0.75:
                        await league.decline(target.id, challenge.id)
                except LadderError:
                    rejected += 1
                clock.now += timedelta(hours=rng.randint(2, 20))

            clock.now += timedelta(days=3)
            forfeited = await league.run_sweep()
            print(f"Week {week + 1}: swept {forfeited} expired challenge(s)")

        print(f"\nRejected actions: {rejected}")
        print("\nFinal ladder:")
        for member in await league.standings():
            start = by_rank[member.id].rank
            print(
                f"  {member.rank:>2}. {member.display_name:<10} "
                f"(from {start:>2}, {member.points} pts)"
            )
        print(f"\nDatabase: {db_path}")
    finally:
        await league.close()


if __name__ == "__main__":
    asyncio.run(main())
