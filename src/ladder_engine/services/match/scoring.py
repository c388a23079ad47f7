"""Live race-to-N scoring and hand-off of results to the ladder."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import Session, col, select

from ladder_engine.core.clock import Clock, utc_now
from ladder_engine.core.config import EngagementConfig, PolicyConfig
from ladder_engine.core.errors import InvalidMatchStateError, NotFoundError
from ladder_engine.models import LiveMatch, LiveMatchStatus, Member, pair_key
from ladder_engine.services.events import EventSink, EventType, RecordingEventSink
from ladder_engine.services.storage import AsyncRepository

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ladder_engine.core.config import StorageConfig
    from ladder_engine.ranking import RankChange, RankStore
    from ladder_engine.services.challenge import ChallengeLifecycle

logger = structlog.get_logger()


def open_live_match(
    session: Session,
    player1_id: str,
    player2_id: str,
    games_to_win: int,
    now: datetime,
    challenge_id: str | None = None,
) -> LiveMatch:
    """Insert an active LiveMatch inside ``session``.

    Raises:
        InvalidMatchStateError: If the pair already has an active match.
    """
    key = pair_key(player1_id, player2_id)
    existing = session.exec(
        select(LiveMatch).where(
            LiveMatch.pair_key == key,
            LiveMatch.status == LiveMatchStatus.ACTIVE.value,
        )
    ).first()
    if existing is not None:
        msg = f"an active match already exists for this pair: {existing.id}"
        raise InvalidMatchStateError(msg)
    match = LiveMatch(
        challenge_id=challenge_id,
        player1_id=player1_id,
        player2_id=player2_id,
        pair_key=key,
        games_to_win=games_to_win,
        scores={player1_id: 0, player2_id: 0},
        created_at=now,
    )
    session.add(match)
    session.flush()
    return match


def match_payload(match: LiveMatch) -> dict[str, Any]:
    return {
        "match_id": match.id,
        "challenge_id": match.challenge_id,
        "player1_id": match.player1_id,
        "player2_id": match.player2_id,
        "games_to_win": match.games_to_win,
        "scores": dict(match.scores),
        "current_frame": match.current_frame,
        "status": match.status,
        "winner_id": match.winner_id,
    }


class MatchScoring(AsyncRepository):
    """Only writer of LiveMatch rows.

    A point that completes a match triggers exactly one rank mutation, in the
    same transaction as the score write. Challenge-backed matches close their
    challenge through the lifecycle so status writes stay in one place.
    """

    def __init__(
        self,
        engine: Engine,
        rank_store: RankStore,
        lifecycle: ChallengeLifecycle,
        policy: PolicyConfig | None = None,
        engagement: EngagementConfig | None = None,
        events: EventSink | None = None,
        storage: StorageConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(engine, storage)
        self.rank_store = rank_store
        self.lifecycle = lifecycle
        self.policy = policy or PolicyConfig()
        self.engagement = engagement or EngagementConfig()
        self.events = events or RecordingEventSink()
        self._clock = clock

    async def create_live_match(
        self, player1_id: str, player2_id: str, games_to_win: int | None = None
    ) -> LiveMatch:
        """Start a direct ladder match with no challenge behind it.

        Args:
            player1_id: First player.
            player2_id: Second player.
            games_to_win: Race length; defaults to the league setting.

        Returns:
            The new active match.

        Raises:
            ValueError: ``games_to_win < 1`` or the players are the same.
            NotFoundError: Either player is not a member.
            InvalidMatchStateError: The pair already has an active match.
        """
        if games_to_win is None:
            games_to_win = self.policy.default_games_to_win
        if games_to_win < 1:
            msg = f"games_to_win must be at least 1, got {games_to_win}"
            raise ValueError(msg)
        if player1_id == player2_id:
            msg = "a match needs two different players"
            raise ValueError(msg)
        now = self._clock()

        def _create(session: Session) -> LiveMatch:
            for player_id in (player1_id, player2_id):
                if session.get(Member, player_id) is None:
                    raise NotFoundError("member", player_id)
            return open_live_match(session, player1_id, player2_id, games_to_win, now)

        match = await self._run_transaction(_create)
        logger.info("match_started", match_id=match.id, games_to_win=games_to_win)
        await self.events.emit(EventType.MATCH_STARTED, match_payload(match))
        return match

    async def score_point(self, match_id: str, player_id: str) -> LiveMatch:
        """Add one frame to ``player_id`` and complete the match at ``games_to_win``.

        Raises:
            InvalidMatchStateError: Unknown match, completed match, or a
                player who is not in it.
        """
        now = self._clock()

        def _score(session: Session) -> tuple[LiveMatch, RankChange | None]:
            match = session.get(LiveMatch, match_id)
            if match is None:
                msg = f"live match not found: {match_id}"
                raise InvalidMatchStateError(msg)
            if not match.is_active:
                msg = f"match {match_id} is already completed"
                raise InvalidMatchStateError(msg)
            if player_id not in (match.player1_id, match.player2_id):
                msg = f"{player_id} is not a player in match {match_id}"
                raise InvalidMatchStateError(msg)

            # Reassign so the JSON column is marked dirty.
            match.scores = {**match.scores, player_id: match.scores.get(player_id, 0) + 1}
            match.current_frame += 1
            change = None
            if match.scores[player_id] >= match.games_to_win:
                change = self._complete_in(session, match, player_id, now)
            session.add(match)
            session.flush()
            return match, change

        match, change = await self._run_transaction(_score)
        logger.debug("score_updated", match_id=match.id, scores=match.scores)
        await self.events.emit(EventType.SCORE_UPDATED, match_payload(match))
        if change is not None:
            logger.info("match_completed", match_id=match.id, winner_id=match.winner_id)
            await self.events.emit(EventType.MATCH_COMPLETED, match_payload(match))
            await self.rank_store.publish(change)
        return match

    def _complete_in(
        self, session: Session, match: LiveMatch, winner_id: str, now: datetime
    ) -> RankChange:
        match.status = LiveMatchStatus.COMPLETED.value
        match.winner_id = winner_id
        match.completed_at = now
        loser_id = match.opponent_of(winner_id)
        if match.challenge_id is not None:
            change = self.lifecycle.complete_in(session, match.challenge_id, winner_id, now)
        else:
            change = self.rank_store.apply_win_in(session, winner_id, loser_id, now)
        for member_id in (winner_id, loser_id):
            self.rank_store.award_points_in(session, member_id, self.engagement.play, now)
        self.rank_store.award_points_in(session, winner_id, self.engagement.win, now)
        return change

    async def get_live_match(self, match_id: str) -> LiveMatch:
        def _get(session: Session) -> LiveMatch:
            match = session.get(LiveMatch, match_id)
            if match is None:
                raise NotFoundError("live match", match_id)
            return match

        return await self._run_session(_get)

    async def active_matches(self) -> list[LiveMatch]:
        """Active matches, oldest first."""

        def _get(session: Session) -> list[LiveMatch]:
            statement = (
                select(LiveMatch)
                .where(LiveMatch.status == LiveMatchStatus.ACTIVE.value)
                .order_by(col(LiveMatch.created_at))
            )
            return list(session.exec(statement).all())

        return await self._run_session(_get)
