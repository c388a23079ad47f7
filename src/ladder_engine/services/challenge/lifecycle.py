"""Challenge state machine: the only writer of ``Challenge.status``."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import or_, update
from sqlmodel import Session, col, select

from ladder_engine.core.clock import Clock, as_utc, utc_now
from ladder_engine.core.config import DISCIPLINES, EngagementConfig, PolicyConfig
from ladder_engine.core.errors import (
    DuplicateChallengeError,
    InvalidTransitionError,
    NotEligibleError,
    NotFoundError,
)
from ladder_engine.models import (
    OPEN_STATUSES,
    SWEEPABLE_STATUSES,
    Challenge,
    ChallengeStatus,
    LiveMatch,
    Member,
    pair_key,
)
from ladder_engine.ranking import EligibilityPolicy
from ladder_engine.services.events import EventSink, EventType, RecordingEventSink
from ladder_engine.services.match.scoring import match_payload, open_live_match
from ladder_engine.services.storage import AsyncRepository

from .transitions import ChallengeAction, check_actor, next_status

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ladder_engine.core.config import StorageConfig
    from ladder_engine.ranking import RankChange, RankStore

logger = structlog.get_logger()

_OPEN_VALUES = [status.value for status in OPEN_STATUSES]
_SWEEPABLE_VALUES = [status.value for status in SWEEPABLE_STATUSES]
_DAY_REMINDER = timedelta(hours=24)
_HOUR_REMINDER = timedelta(hours=1)


def challenge_payload(challenge: Challenge) -> dict[str, Any]:
    return {
        "challenge_id": challenge.id,
        "challenger_id": challenge.challenger_id,
        "challenged_id": challenge.challenged_id,
        "status": challenge.status,
        "discipline": challenge.discipline,
        "games_to_win": challenge.games_to_win,
        "venue": challenge.venue,
        "proposed_time": challenge.proposed_time,
        "deadline": challenge.deadline,
        "winner_id": challenge.winner_id,
        "forfeit_reason": challenge.forfeit_reason,
    }


class ChallengeLifecycle(AsyncRepository):
    """Drive a challenge through the transition table.

    Every transition reads and writes the status inside one serialised
    transaction and guards the UPDATE with the status it read, so a losing
    racer sees ``InvalidTransitionError`` instead of a double transition.
    Terminal transitions apply the rank mutation in that same transaction.
    """

    def __init__(
        self,
        engine: Engine,
        rank_store: RankStore,
        policy: PolicyConfig | None = None,
        engagement: EngagementConfig | None = None,
        events: EventSink | None = None,
        storage: StorageConfig | None = None,
        clock: Clock = utc_now,
        eligibility: EligibilityPolicy | None = None,
    ) -> None:
        super().__init__(engine, storage)
        self.rank_store = rank_store
        self.policy = policy or PolicyConfig()
        self.engagement = engagement or EngagementConfig()
        self.events = events or RecordingEventSink()
        self._clock = clock
        self.eligibility = eligibility or EligibilityPolicy.from_config(self.policy, clock)

    async def create_challenge(
        self,
        challenger_id: str,
        challenged_id: str,
        discipline: str = "8-ball",
        games_to_win: int | None = None,
    ) -> Challenge:
        """Issue a challenge after checking eligibility on live ranks.

        Args:
            challenger_id: Member issuing the challenge.
            challenged_id: Member being challenged.
            discipline: One of ``DISCIPLINES``.
            games_to_win: Race length; defaults to the league setting.

        Returns:
            The new pending challenge.

        Raises:
            ValueError: Self-challenge, unknown discipline or ``games_to_win < 1``.
            NotFoundError: Either member does not exist.
            NotEligibleError: Cooldown active or target outside the window.
            DuplicateChallengeError: The pair already has an open challenge.
        """
        if challenger_id == challenged_id:
            msg = "a member cannot challenge themselves"
            raise ValueError(msg)
        if discipline not in DISCIPLINES:
            msg = f"unknown discipline '{discipline}', expected one of {', '.join(DISCIPLINES)}"
            raise ValueError(msg)
        if games_to_win is None:
            games_to_win = self.policy.default_games_to_win
        if games_to_win < 1:
            msg = f"games_to_win must be at least 1, got {games_to_win}"
            raise ValueError(msg)
        now = self._clock()

        def _create(session: Session) -> Challenge:
            challenger = _load_member(session, challenger_id)
            challenged = _load_member(session, challenged_id)
            verdict = self.eligibility.can_challenge(
                challenger.rank, challenged.rank, challenger.cooldown_until, now
            )
            if not verdict:
                raise NotEligibleError(verdict.reason or "not eligible")

            key = pair_key(challenger_id, challenged_id)
            existing = session.exec(
                select(Challenge).where(
                    Challenge.pair_key == key,
                    col(Challenge.status).in_(_OPEN_VALUES),
                )
            ).first()
            if existing is not None:
                raise DuplicateChallengeError(existing.id)

            challenge = Challenge(
                challenger_id=challenger_id,
                challenged_id=challenged_id,
                pair_key=key,
                discipline=discipline,
                games_to_win=games_to_win,
                deadline=now + timedelta(days=self.policy.response_deadline_days),
                created_at=now,
                updated_at=now,
            )
            session.add(challenge)
            self.rank_store.award_points_in(session, challenger_id, self.engagement.challenge, now)
            session.flush()
            return challenge

        challenge = await self._run_transaction(_create)
        logger.info(
            "challenge_created",
            challenge_id=challenge.id,
            challenger_id=challenger_id,
            challenged_id=challenged_id,
        )
        await self.events.emit(EventType.CHALLENGE_CREATED, challenge_payload(challenge))
        return challenge

    async def propose(
        self,
        challenge_id: str,
        member_id: str,
        venue: str,
        proposed_time: datetime | None = None,
    ) -> Challenge:
        """Challenged member answers with a venue and optional time."""
        return await self._negotiate(
            ChallengeAction.PROPOSE,
            EventType.CHALLENGE_PROPOSED,
            challenge_id,
            member_id,
            venue,
            proposed_time,
        )

    async def counter_propose(
        self,
        challenge_id: str,
        member_id: str,
        venue: str,
        proposed_time: datetime | None = None,
    ) -> Challenge:
        """Either party replaces the venue and time; status stays negotiating."""
        return await self._negotiate(
            ChallengeAction.COUNTER_PROPOSE,
            EventType.CHALLENGE_COUNTER_PROPOSED,
            challenge_id,
            member_id,
            venue,
            proposed_time,
        )

    async def _negotiate(
        self,
        action: ChallengeAction,
        event_type: EventType,
        challenge_id: str,
        member_id: str,
        venue: str,
        proposed_time: datetime | None,
    ) -> Challenge:
        if not venue or not venue.strip():
            msg = "venue must not be empty"
            raise ValueError(msg)
        if proposed_time is not None and proposed_time.tzinfo is None:
            msg = "proposed_time must be timezone-aware"
            raise ValueError(msg)
        now = self._clock()

        def _apply(session: Session) -> Challenge:
            return self._transition_in(
                session,
                challenge_id,
                action,
                member_id,
                now,
                venue=venue.strip(),
                proposed_time=proposed_time,
                last_proposer_id=member_id,
            )

        challenge = await self._run_transaction(_apply)
        logger.info(
            "challenge_negotiated",
            challenge_id=challenge_id,
            action=action.value,
            member_id=member_id,
        )
        await self.events.emit(event_type, challenge_payload(challenge))
        return challenge

    async def confirm(self, challenge_id: str, member_id: str) -> Challenge:
        """Challenger accepts the current proposal; the challenge becomes scheduled."""
        now = self._clock()

        def _apply(session: Session) -> Challenge:
            return self._transition_in(
                session, challenge_id, ChallengeAction.CONFIRM, member_id, now, confirmed_at=now
            )

        challenge = await self._run_transaction(_apply)
        logger.info("challenge_confirmed", challenge_id=challenge_id)
        await self.events.emit(EventType.CHALLENGE_CONFIRMED, challenge_payload(challenge))
        return challenge

    async def decline(self, challenge_id: str, member_id: str) -> Challenge:
        """Challenged member refuses; forfeits to the challenger."""
        now = self._clock()

        def _apply(session: Session) -> tuple[Challenge, RankChange]:
            return self._forfeit_in(
                session,
                challenge_id,
                ChallengeAction.DECLINE,
                member_id,
                now,
                winner_side="challenger",
                reason="declined",
            )

        challenge, change = await self._run_transaction(_apply)
        logger.info("challenge_declined", challenge_id=challenge_id)
        await self.events.emit(EventType.CHALLENGE_DECLINED, challenge_payload(challenge))
        await self.rank_store.publish(change)
        return challenge

    async def start_live_match(self, challenge_id: str, member_id: str) -> LiveMatch:
        """Open the LiveMatch for a scheduled challenge.

        Idempotent: on a challenge that is already live, returns its match.

        Raises:
            InvalidTransitionError: Not scheduled or live, or not a participant.
            InvalidMatchStateError: The pair already has another active match.
        """
        now = self._clock()

        def _start(session: Session) -> tuple[LiveMatch, bool]:
            challenge = _load_challenge(session, challenge_id)
            if challenge.state is ChallengeStatus.LIVE and challenge.live_match_id:
                check_actor(challenge, ChallengeAction.START_LIVE_MATCH, member_id)
                match = session.get(LiveMatch, challenge.live_match_id)
                if match is not None:
                    return match, False
            # Validate before inserting the match so a bad call leaves no row behind.
            _check_actionable(challenge, ChallengeAction.START_LIVE_MATCH, member_id, now)
            match = open_live_match(
                session,
                challenge.challenger_id,
                challenge.challenged_id,
                challenge.games_to_win,
                now,
                challenge_id=challenge.id,
            )
            self._transition_in(
                session,
                challenge_id,
                ChallengeAction.START_LIVE_MATCH,
                member_id,
                now,
                live_match_id=match.id,
            )
            return match, True

        match, created = await self._run_transaction(_start)
        if created:
            logger.info("challenge_live", challenge_id=challenge_id, match_id=match.id)
            await self.events.emit(EventType.MATCH_STARTED, match_payload(match))
        return match

    def complete_in(
        self, session: Session, challenge_id: str, winner_id: str, now: datetime
    ) -> RankChange:
        """Close a live challenge as completed and apply the result.

        Called by MatchScoring inside its scoring transaction.
        """
        challenge = self._transition_in(
            session, challenge_id, ChallengeAction.COMPLETE, None, now, winner_id=winner_id
        )
        loser_id = challenge.opponent_of(winner_id)
        logger.info("challenge_completed", challenge_id=challenge_id, winner_id=winner_id)
        return self.rank_store.apply_win_in(session, winner_id, loser_id, now)

    async def forfeit_expired(self, challenge_id: str, now: datetime | None = None) -> Challenge:
        """Resolve a challenge whose deadline has passed.

        Raises:
            InvalidTransitionError: Already resolved, live, or not yet expired.
        """
        now = as_utc(now) or self._clock()

        def _apply(session: Session) -> tuple[Challenge, RankChange]:
            return self._forfeit_in(
                session,
                challenge_id,
                ChallengeAction.DEADLINE_PASSED,
                None,
                now,
                winner_side=None,
                reason="deadline",
            )

        challenge, change = await self._run_transaction(_apply)
        logger.info(
            "challenge_forfeited",
            challenge_id=challenge_id,
            winner_id=challenge.winner_id,
            policy=self.policy.forfeit_policy,
        )
        await self.events.emit(EventType.CHALLENGE_FORFEITED, challenge_payload(challenge))
        await self.rank_store.publish(change)
        return challenge

    async def send_reminders(self, now: datetime | None = None) -> int:
        """Emit ``matchReminder`` for scheduled matches starting soon.

        A day reminder goes out inside the last 24 hours before
        ``proposed_time`` and an hour reminder inside the last hour. Each is
        sent at most once; a match first seen inside its final hour only gets
        the hour reminder.

        Returns:
            Number of reminders emitted.
        """
        now = as_utc(now) or self._clock()

        def _mark(session: Session) -> list[tuple[Challenge, str]]:
            statement = (
                select(Challenge)
                .where(
                    Challenge.status == ChallengeStatus.SCHEDULED.value,
                    col(Challenge.proposed_time) > now,
                    col(Challenge.proposed_time) <= now + _DAY_REMINDER,
                )
                .order_by(col(Challenge.proposed_time))
            )
            due = []
            for challenge in session.exec(statement).all():
                if challenge.proposed_time - now <= _HOUR_REMINDER:
                    if challenge.hour_reminder_sent:
                        continue
                    kind = "hour"
                    challenge.hour_reminder_sent = True
                elif not challenge.day_reminder_sent:
                    kind = "day"
                else:
                    continue
                challenge.day_reminder_sent = True
                challenge.updated_at = now
                session.add(challenge)
                due.append((challenge, kind))
            return due

        due = await self._run_transaction(_mark)
        for challenge, kind in due:
            logger.info("match_reminder", challenge_id=challenge.id, reminder=kind)
            await self.events.emit(
                EventType.MATCH_REMINDER, {**challenge_payload(challenge), "reminder": kind}
            )
        return len(due)

    def _forfeit_in(
        self,
        session: Session,
        challenge_id: str,
        action: ChallengeAction,
        member_id: str | None,
        now: datetime,
        winner_side: str | None,
        reason: str,
    ) -> tuple[Challenge, RankChange]:
        challenge = _load_challenge(session, challenge_id)
        next_status(challenge.state, action)
        if action is ChallengeAction.DEADLINE_PASSED and not challenge.deadline < now:
            detail = f"deadline {challenge.deadline.isoformat()} not reached"
            raise InvalidTransitionError(challenge.status, action.value, detail)
        if winner_side == "challenger":
            winner_id = challenge.challenger_id
        else:
            winner_id = self._forfeit_winner(challenge)
        challenge = self._transition_in(
            session,
            challenge_id,
            action,
            member_id,
            now,
            winner_id=winner_id,
            forfeit_reason=reason,
        )
        change = self.rank_store.apply_win_in(
            session, winner_id, challenge.opponent_of(winner_id), now
        )
        return challenge, change

    def _forfeit_winner(self, challenge: Challenge) -> str:
        """Pick the deadline-forfeit winner according to ``forfeit_policy``."""
        if self.policy.forfeit_policy == "non_responder_loses":
            state = challenge.state
            if state is ChallengeStatus.PENDING:
                return challenge.challenger_id
            if state is ChallengeStatus.NEGOTIATING and challenge.last_proposer_id:
                return challenge.last_proposer_id
        return challenge.challenger_id

    def _transition_in(
        self,
        session: Session,
        challenge_id: str,
        action: ChallengeAction,
        member_id: str | None,
        now: datetime,
        **changes: Any,
    ) -> Challenge:
        """Compare-and-swap one transition inside ``session``."""
        challenge = _load_challenge(session, challenge_id)
        current = challenge.state
        target = _check_actionable(challenge, action, member_id, now)
        if target in (ChallengeStatus.NEGOTIATING, ChallengeStatus.SCHEDULED):
            self._check_drift(session, challenge, action)

        session.flush()
        result = session.execute(
            update(Challenge)
            .where(col(Challenge.id) == challenge_id, col(Challenge.status) == current.value)
            .values(status=target.value, updated_at=now, **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionError(current.value, action.value, "status changed concurrently")
        session.refresh(challenge)
        logger.debug(
            "challenge_transition",
            challenge_id=challenge_id,
            action=action.value,
            from_status=current.value,
            to_status=target.value,
        )
        return challenge

    def _check_drift(self, session: Session, challenge: Challenge, action: ChallengeAction) -> None:
        challenger = _load_member(session, challenge.challenger_id)
        challenged = _load_member(session, challenge.challenged_id)
        if self.eligibility.within_window(challenger.rank, challenged.rank):
            return
        if action is ChallengeAction.CONFIRM and self.policy.recheck_eligibility_on_confirm:
            raise NotEligibleError(f"outside ±{self.eligibility.proximity_window} window")
        logger.warning(
            "eligibility_drift",
            challenge_id=challenge.id,
            action=action.value,
            challenger_rank=challenger.rank,
            challenged_rank=challenged.rank,
        )

    async def get_challenge(self, challenge_id: str) -> Challenge:
        return await self._run_session(lambda session: _load_challenge(session, challenge_id))

    async def open_challenges_for(self, member_id: str) -> list[Challenge]:
        """Non-terminal challenges the member is part of, newest first."""

        def _get(session: Session) -> list[Challenge]:
            statement = (
                select(Challenge)
                .where(
                    or_(Challenge.challenger_id == member_id, Challenge.challenged_id == member_id),
                    col(Challenge.status).in_(_OPEN_VALUES),
                )
                .order_by(col(Challenge.created_at).desc())
            )
            return list(session.exec(statement).all())

        return await self._run_session(_get)

    async def expired_challenge_ids(self, now: datetime) -> list[str]:
        """Ids of sweepable challenges whose deadline is before ``now``."""

        def _get(session: Session) -> list[str]:
            statement = (
                select(Challenge.id)
                .where(
                    col(Challenge.status).in_(_SWEEPABLE_VALUES),
                    col(Challenge.deadline) < now,
                )
                .order_by(col(Challenge.deadline))
            )
            return list(session.exec(statement).all())

        return await self._run_session(_get)


def _check_actionable(
    challenge: Challenge, action: ChallengeAction, member_id: str | None, now: datetime
) -> ChallengeStatus:
    """Validate an action against the table, the actor rules and the deadline.

    Once the response deadline has passed, only the sweeper may act on an
    unresolved challenge.
    """
    target = next_status(challenge.state, action)
    check_actor(challenge, action, member_id)
    if (
        member_id is not None
        and challenge.state in SWEEPABLE_STATUSES
        and challenge.deadline < now
    ):
        raise InvalidTransitionError(challenge.status, action.value, "response deadline has passed")
    return target


def _load_challenge(session: Session, challenge_id: str) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("challenge", challenge_id)
    return challenge


def _load_member(session: Session, member_id: str) -> Member:
    member = session.get(Member, member_id)
    if member is None:
        raise NotFoundError("member", member_id)
    return member
