"""Canonical member ordering and the atomic applyWin slide."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, update
from sqlmodel import Session, col, select

from ladder_engine.core.clock import Clock, utc_now
from ladder_engine.core.config import PolicyConfig
from ladder_engine.core.errors import InvalidRankStateError, NotFoundError
from ladder_engine.models import Member
from ladder_engine.services.events import EventSink, EventType, RecordingEventSink
from ladder_engine.services.storage import AsyncRepository

from .ladder import RankChange, is_dense_summary, slide_window

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ladder_engine.core.config import StorageConfig

logger = structlog.get_logger()


class RankStore(AsyncRepository):
    """Owns ``Member.rank``; nothing else writes it.

    Every mutation keeps the ladder dense (ranks are exactly 1..N). The
    ``*_in`` methods run inside a caller's transaction so a status change and
    its rank mutation commit together.
    """

    def __init__(
        self,
        engine: Engine,
        policy: PolicyConfig | None = None,
        events: EventSink | None = None,
        storage: StorageConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(engine, storage)
        self.policy = policy or PolicyConfig()
        self.events = events or RecordingEventSink()
        self._clock = clock

    async def apply_win(self, winner_id: str, loser_id: str) -> RankChange:
        """Apply a match result in its own transaction and publish ``matchWon``.

        Raises:
            InvalidRankStateError: Unknown member, or the ladder would not be dense.
        """
        now = self._clock()
        change = await self._run_transaction(
            lambda session: self.apply_win_in(session, winner_id, loser_id, now)
        )
        await self.publish(change)
        return change

    def apply_win_in(
        self, session: Session, winner_id: str, loser_id: str, now: datetime
    ) -> RankChange:
        """Slide the winner into the loser's slot within ``session``.

        Members ranked ``loser_rank <= rank < winner_rank`` move down one. The
        rank column is unique, so the affected rows are parked at negative
        ranks, the winner moves into the freed slot, then the signs flip back.
        The loser always gets a fresh cooldown, even when no ranks change.

        Args:
            session: Open transaction owned by the caller.
            winner_id: Member who won.
            loser_id: Member who lost.
            now: Timestamp for the cooldown and ``updated_at``.

        Returns:
            The RankChange describing what moved.

        Raises:
            InvalidRankStateError: Unknown member, same member twice, or a
                non-dense ladder after the mutation. The caller's transaction
                must roll back.
        """
        if winner_id == loser_id:
            msg = f"winner and loser are the same member: {winner_id}"
            raise InvalidRankStateError(msg)
        winner = session.get(Member, winner_id)
        loser = session.get(Member, loser_id)
        if winner is None or loser is None:
            missing = winner_id if winner is None else loser_id
            msg = f"unknown member in match result: {missing}"
            logger.error("rank_state_invalid", reason=msg)
            raise InvalidRankStateError(msg)

        # Pending ORM changes must hit the table before the set-based UPDATEs.
        session.flush()
        winner_old, loser_old = winner.rank, loser.rank
        window = slide_window(winner_old, loser_old)
        shifted = 0
        if window:
            rank = col(Member.rank)
            session.execute(
                update(Member)
                .where(rank >= window.start, rank < window.stop)
                .values(rank=-(rank + 1), updated_at=now)
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(Member)
                .where(col(Member.id) == winner_id)
                .values(rank=loser_old, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            result = session.execute(
                update(Member)
                .where(rank < 0)
                .values(rank=-rank)
                .execution_options(synchronize_session=False)
            )
            shifted = result.rowcount
            if shifted != len(window):
                msg = f"expected to shift {len(window)} members, shifted {shifted}"
                logger.error("rank_state_invalid", reason=msg)
                raise InvalidRankStateError(msg)
            _refresh_members(session)

        self._check_dense(session)

        cooldown_until = now + timedelta(hours=self.policy.loss_cooldown_hours)
        loser.cooldown_until = cooldown_until
        loser.updated_at = now
        session.add(loser)

        change = RankChange(
            winner_id=winner_id,
            loser_id=loser_id,
            winner_old_rank=winner_old,
            loser_old_rank=loser_old,
            winner_new_rank=winner.rank,
            shifted=shifted,
            cooldown_until=cooldown_until,
        )
        logger.info(
            "rank_slide",
            winner_id=winner_id,
            loser_id=loser_id,
            from_rank=winner_old,
            to_rank=winner.rank,
            shifted=shifted,
        )
        return change

    async def publish(self, change: RankChange) -> None:
        """Emit the post-commit ``matchWon`` audit event."""
        await self.events.emit(EventType.MATCH_WON, change.to_payload())

    def award_points_in(
        self, session: Session, member_id: str, points: int, now: datetime
    ) -> None:
        """Add engagement points to a member inside ``session``."""
        if points == 0:
            return
        member = session.get(Member, member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        member.points += points
        member.updated_at = now
        session.add(member)

    async def add_member(
        self, display_name: str, rating: int = 0, member_id: str | None = None
    ) -> Member:
        """Append a new member at rank N+1.

        Raises:
            ValueError: Empty name or an id that is already taken.
        """
        if not display_name.strip():
            msg = "display_name must not be empty"
            raise ValueError(msg)
        now = self._clock()

        def _add(session: Session) -> Member:
            if member_id is not None and session.get(Member, member_id) is not None:
                msg = f"member already exists: {member_id}"
                raise ValueError(msg)
            bottom = session.exec(select(func.max(Member.rank))).one() or 0
            member = Member(
                display_name=display_name.strip(),
                rank=bottom + 1,
                rating=rating,
                created_at=now,
                updated_at=now,
            )
            if member_id is not None:
                member.id = member_id
            session.add(member)
            session.flush()
            self._check_dense(session)
            return member

        member = await self._run_transaction(_add)
        logger.info("member_joined", member_id=member.id, rank=member.rank)
        await self.events.emit(
            EventType.MEMBER_JOINED,
            {"member_id": member.id, "display_name": member.display_name, "rank": member.rank},
        )
        return member

    async def import_members(self, roster: Sequence[tuple[str, int]]) -> list[Member]:
        """Seed an empty ladder from ``(display_name, rating)`` pairs.

        Higher rating gets the better rank; ties keep roster order.

        Raises:
            InvalidRankStateError: If the ladder already has members.
        """
        ordered = sorted(roster, key=lambda entry: entry[1], reverse=True)
        now = self._clock()

        def _import(session: Session) -> list[Member]:
            existing = session.exec(select(func.count()).select_from(Member)).one()
            if existing:
                msg = f"cannot import into a ladder with {existing} members"
                raise InvalidRankStateError(msg)
            members = [
                Member(
                    display_name=name,
                    rank=position,
                    rating=rating,
                    created_at=now,
                    updated_at=now,
                )
                for position, (name, rating) in enumerate(ordered, start=1)
            ]
            session.add_all(members)
            session.flush()
            self._check_dense(session)
            return members

        members = await self._run_transaction(_import)
        logger.info("ladder_seeded", members=len(members))
        for member in members:
            await self.events.emit(
                EventType.MEMBER_JOINED,
                {"member_id": member.id, "display_name": member.display_name, "rank": member.rank},
            )
        return members

    async def standings(self, limit: int | None = None) -> list[Member]:
        """Members ordered by rank, best first."""

        def _get(session: Session) -> list[Member]:
            statement = select(Member).order_by(col(Member.rank))
            if limit is not None:
                statement = statement.limit(limit)
            return list(session.exec(statement).all())

        return await self._run_session(_get)

    async def get_member(self, member_id: str) -> Member:
        def _get(session: Session) -> Member:
            member = session.get(Member, member_id)
            if member is None:
                raise NotFoundError("member", member_id)
            return member

        return await self._run_session(_get)

    async def verify(self) -> int:
        """Check the ladder is dense and return its size.

        Raises:
            InvalidRankStateError: If ranks are not exactly 1..N.
        """
        return await self._run_session(self._check_dense)

    def _check_dense(self, session: Session) -> int:
        count, lowest, highest = session.exec(
            select(func.count(), func.min(Member.rank), func.max(Member.rank)).select_from(Member)
        ).one()
        if not is_dense_summary(count, lowest, highest):
            msg = f"ladder not dense: {count} members spanning ranks {lowest}..{highest}"
            logger.error("rank_state_invalid", reason=msg)
            raise InvalidRankStateError(msg)
        return count


def _refresh_members(session: Session) -> None:
    # Set-based UPDATEs bypass the identity map; reload any Member already loaded.
    for obj in list(session.identity_map.values()):
        if isinstance(obj, Member):
            session.refresh(obj)
