"""Tests for the challenge transition table."""

from datetime import UTC, datetime

import pytest

from ladder_engine.core.errors import InvalidTransitionError
from ladder_engine.models import Challenge, ChallengeStatus
from ladder_engine.services.challenge import TRANSITIONS, ChallengeAction, check_actor, next_status


def _challenge(status: ChallengeStatus = ChallengeStatus.PENDING) -> Challenge:
    return Challenge(
        challenger_id="alice",
        challenged_id="bob",
        pair_key="alice:bob",
        status=status.value,
        deadline=datetime(2026, 1, 15, tzinfo=UTC),
    )


class TestNextStatus:
    """Tests for next_status."""

    @pytest.mark.parametrize(
        ("current", "action", "expected"),
        [
            (ChallengeStatus.PENDING, ChallengeAction.PROPOSE, ChallengeStatus.NEGOTIATING),
            (
                ChallengeStatus.NEGOTIATING,
                ChallengeAction.COUNTER_PROPOSE,
                ChallengeStatus.NEGOTIATING,
            ),
            (ChallengeStatus.NEGOTIATING, ChallengeAction.CONFIRM, ChallengeStatus.SCHEDULED),
            (ChallengeStatus.SCHEDULED, ChallengeAction.START_LIVE_MATCH, ChallengeStatus.LIVE),
            (ChallengeStatus.LIVE, ChallengeAction.COMPLETE, ChallengeStatus.COMPLETED),
            (ChallengeStatus.SCHEDULED, ChallengeAction.DEADLINE_PASSED, ChallengeStatus.FORFEITED),
            (ChallengeStatus.PENDING, ChallengeAction.DECLINE, ChallengeStatus.FORFEITED),
        ],
    )
    def test_valid_edges(self, current, action, expected):
        """Table edges resolve to their target status."""
        assert next_status(current, action) is expected

    def test_confirm_from_pending_rejected(self):
        """Confirm needs a proposal first."""
        with pytest.raises(InvalidTransitionError, match="Cannot confirm a challenge in state"):
            next_status(ChallengeStatus.PENDING, ChallengeAction.CONFIRM)

    def test_live_is_not_swept(self):
        """Deadline forfeits skip live challenges."""
        with pytest.raises(InvalidTransitionError):
            next_status(ChallengeStatus.LIVE, ChallengeAction.DEADLINE_PASSED)

    @pytest.mark.parametrize("terminal", [ChallengeStatus.COMPLETED, ChallengeStatus.FORFEITED])
    @pytest.mark.parametrize("action", list(ChallengeAction))
    def test_terminal_states_are_frozen(self, terminal, action):
        """No action leaves a terminal state."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            next_status(terminal, action)
        assert exc_info.value.current_state == terminal.value
        assert exc_info.value.attempted_action == action.value

    def test_every_target_is_a_known_status(self):
        """The table never points outside ChallengeStatus."""
        assert all(isinstance(t, ChallengeStatus) for t in TRANSITIONS.values())


class TestCheckActor:
    """Tests for check_actor."""

    def test_only_challenged_may_propose(self):
        """The challenger cannot answer their own challenge."""
        challenge = _challenge()
        check_actor(challenge, ChallengeAction.PROPOSE, "bob")
        with pytest.raises(InvalidTransitionError, match="only the challenged member"):
            check_actor(challenge, ChallengeAction.PROPOSE, "alice")

    def test_only_challenger_may_confirm(self):
        """Confirmation belongs to the challenger."""
        challenge = _challenge(ChallengeStatus.NEGOTIATING)
        check_actor(challenge, ChallengeAction.CONFIRM, "alice")
        with pytest.raises(InvalidTransitionError, match="only the challenger"):
            check_actor(challenge, ChallengeAction.CONFIRM, "bob")

    def test_either_party_may_counter(self):
        """Counter-proposals come from either side."""
        challenge = _challenge(ChallengeStatus.NEGOTIATING)
        check_actor(challenge, ChallengeAction.COUNTER_PROPOSE, "alice")
        check_actor(challenge, ChallengeAction.COUNTER_PROPOSE, "bob")

    def test_outsider_rejected(self):
        """Non-participants are rejected for member actions."""
        challenge = _challenge(ChallengeStatus.SCHEDULED)
        with pytest.raises(InvalidTransitionError, match="not a participant"):
            check_actor(challenge, ChallengeAction.START_LIVE_MATCH, "eve")

    def test_members_cannot_run_system_actions(self):
        """Forfeits and completion are system-only."""
        with pytest.raises(InvalidTransitionError, match="only the system"):
            check_actor(_challenge(), ChallengeAction.DEADLINE_PASSED, "alice")
        check_actor(_challenge(), ChallengeAction.DEADLINE_PASSED, None)
