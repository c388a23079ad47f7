"""Challenge transition table and actor rules."""

from __future__ import annotations

from enum import Enum

from ladder_engine.core.errors import InvalidTransitionError
from ladder_engine.models import Challenge, ChallengeStatus


class ChallengeAction(str, Enum):
    PROPOSE = "propose"
    COUNTER_PROPOSE = "counter_propose"
    CONFIRM = "confirm"
    START_LIVE_MATCH = "start_live_match"
    COMPLETE = "complete"
    DEADLINE_PASSED = "deadline_passed"
    DECLINE = "decline"


class Actor(str, Enum):
    CHALLENGER = "challenger"
    CHALLENGED = "challenged"
    PARTICIPANT = "participant"
    SYSTEM = "system"


TRANSITIONS: dict[tuple[ChallengeStatus, ChallengeAction], ChallengeStatus] = {
    (ChallengeStatus.PENDING, ChallengeAction.PROPOSE): ChallengeStatus.NEGOTIATING,
    (ChallengeStatus.NEGOTIATING, ChallengeAction.COUNTER_PROPOSE): ChallengeStatus.NEGOTIATING,
    (ChallengeStatus.NEGOTIATING, ChallengeAction.CONFIRM): ChallengeStatus.SCHEDULED,
    (ChallengeStatus.SCHEDULED, ChallengeAction.START_LIVE_MATCH): ChallengeStatus.LIVE,
    (ChallengeStatus.LIVE, ChallengeAction.COMPLETE): ChallengeStatus.COMPLETED,
    (ChallengeStatus.PENDING, ChallengeAction.DEADLINE_PASSED): ChallengeStatus.FORFEITED,
    (ChallengeStatus.NEGOTIATING, ChallengeAction.DEADLINE_PASSED): ChallengeStatus.FORFEITED,
    (ChallengeStatus.SCHEDULED, ChallengeAction.DEADLINE_PASSED): ChallengeStatus.FORFEITED,
    (ChallengeStatus.PENDING, ChallengeAction.DECLINE): ChallengeStatus.FORFEITED,
    (ChallengeStatus.NEGOTIATING, ChallengeAction.DECLINE): ChallengeStatus.FORFEITED,
}

ACTORS: dict[ChallengeAction, Actor] = {
    ChallengeAction.PROPOSE: Actor.CHALLENGED,
    ChallengeAction.COUNTER_PROPOSE: Actor.PARTICIPANT,
    ChallengeAction.CONFIRM: Actor.CHALLENGER,
    ChallengeAction.START_LIVE_MATCH: Actor.PARTICIPANT,
    ChallengeAction.COMPLETE: Actor.SYSTEM,
    ChallengeAction.DEADLINE_PASSED: Actor.SYSTEM,
    ChallengeAction.DECLINE: Actor.CHALLENGED,
}


def next_status(current: ChallengeStatus, action: ChallengeAction) -> ChallengeStatus:
    """Look up the target status for ``action`` from ``current``.

    Raises:
        InvalidTransitionError: If the table has no such edge.
    """
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(current.value, action.value)
    return target


def check_actor(challenge: Challenge, action: ChallengeAction, member_id: str | None) -> None:
    """Ensure ``member_id`` is allowed to perform ``action`` on ``challenge``.

    System actions take ``member_id=None``.

    Raises:
        InvalidTransitionError: If the caller is the wrong party.
    """
    actor = ACTORS[action]
    if actor is Actor.SYSTEM:
        if member_id is not None:
            raise InvalidTransitionError(
                challenge.status, action.value, "only the system may perform this action"
            )
        return
    if member_id not in challenge.participant_ids():
        raise InvalidTransitionError(
            challenge.status, action.value, f"{member_id} is not a participant"
        )
    if actor is Actor.CHALLENGER and member_id != challenge.challenger_id:
        raise InvalidTransitionError(
            challenge.status, action.value, "only the challenger may do this"
        )
    if actor is Actor.CHALLENGED and member_id != challenge.challenged_id:
        raise InvalidTransitionError(
            challenge.status, action.value, "only the challenged member may do this"
        )
