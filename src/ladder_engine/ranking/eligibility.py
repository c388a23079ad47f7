"""Who may challenge whom."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ladder_engine.core.clock import Clock, as_utc, utc_now

if TYPE_CHECKING:
    from ladder_engine.core.config import PolicyConfig


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.eligible


class EligibilityPolicy:
    """Proximity and cooldown rules for issuing a challenge.

    Rules, first match wins:
        1. Challenger cooldown still running: ineligible.
        2. Challenger at rank 1 and the top rank is exempt: eligible.
        3. Rank distance within the proximity window: eligible.
        4. Otherwise ineligible.
    """

    def __init__(
        self,
        proximity_window: int = 5,
        top_rank_exempt: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        self.proximity_window = proximity_window
        self.top_rank_exempt = top_rank_exempt
        self._clock = clock

    @classmethod
    def from_config(cls, policy: PolicyConfig, clock: Clock = utc_now) -> EligibilityPolicy:
        return cls(
            proximity_window=policy.proximity_window,
            top_rank_exempt=policy.top_rank_exempt,
            clock=clock,
        )

    def can_challenge(
        self,
        challenger_rank: int,
        target_rank: int,
        cooldown_until: datetime | None,
        now: datetime | None = None,
    ) -> Eligibility:
        """Decide whether a challenger may challenge a target.

        Args:
            challenger_rank: Current rank of the challenger.
            target_rank: Current rank of the target.
            cooldown_until: Challenger's cooldown end, if any.
            now: Evaluation time; defaults to the policy clock.

        Returns:
            Eligibility with the blocking reason when ineligible.
        """
        now = now or self._clock()
        cooldown = as_utc(cooldown_until)
        if cooldown is not None and cooldown > now:
            return Eligibility(False, "cooldown active")
        if self.within_window(challenger_rank, target_rank):
            return Eligibility(True)
        return Eligibility(False, f"outside ±{self.proximity_window} window")

    def within_window(self, challenger_rank: int, target_rank: int) -> bool:
        """Proximity rule alone, ignoring cooldown."""
        if challenger_rank == 1 and self.top_rank_exempt:
            return True
        return abs(challenger_rank - target_rank) <= self.proximity_window
