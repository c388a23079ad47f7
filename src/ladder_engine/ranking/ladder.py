"""Pure ladder arithmetic: the slide rule and the dense-ranking check.

These helpers operate on plain values so the rank rules can be tested without
a database; RankStore applies the same rule with set-based UPDATEs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class RankChange:
    """Outcome of one applyWin call.

    Attributes:
        winner_id: Member who won.
        loser_id: Member who lost.
        winner_old_rank: Winner's rank before the mutation.
        loser_old_rank: Loser's rank before the mutation.
        winner_new_rank: Winner's rank after the mutation.
        shifted: Number of members moved down one slot.
        cooldown_until: New cooldown end set on the loser.
    """

    winner_id: str
    loser_id: str
    winner_old_rank: int
    loser_old_rank: int
    winner_new_rank: int
    shifted: int
    cooldown_until: datetime

    @property
    def moved(self) -> bool:
        return self.winner_new_rank != self.winner_old_rank

    def to_payload(self) -> dict[str, Any]:
        return {
            "winner_id": self.winner_id,
            "loser_id": self.loser_id,
            "loser_old_rank": self.loser_old_rank,
            "winner_old_rank": self.winner_old_rank,
            "winner_new_rank": self.winner_new_rank,
            "shifted": self.shifted,
            "cooldown_until": self.cooldown_until.isoformat(),
        }


def slide_window(winner_rank: int, loser_rank: int) -> range:
    """Ranks that move down one slot when ``winner_rank`` beats ``loser_rank``.

    Empty when the winner already sits above the loser.
    """
    if winner_rank < loser_rank:
        return range(0)
    return range(loser_rank, winner_rank)


def apply_slide(order: Sequence[str], winner_id: str, loser_id: str) -> list[str]:
    """Return a new ladder (rank 1 first) after ``winner_id`` beats ``loser_id``.

    Args:
        order: Member ids ordered by rank, best first.
        winner_id: Winning member.
        loser_id: Losing member.

    Returns:
        The re-ordered ladder. Unchanged if the winner was already higher.

    Raises:
        ValueError: If either id is missing from ``order`` or they are equal.
    """
    if winner_id == loser_id:
        msg = "winner and loser must differ"
        raise ValueError(msg)
    ladder = list(order)
    winner_pos = ladder.index(winner_id)
    loser_pos = ladder.index(loser_id)
    if winner_pos < loser_pos:
        return ladder
    ladder.pop(winner_pos)
    ladder.insert(loser_pos, winner_id)
    return ladder


def is_dense(ranks: Iterable[int]) -> bool:
    """True when ``ranks`` is exactly {1..N} with no gaps or repeats."""
    ordered = sorted(ranks)
    return ordered == list(range(1, len(ordered) + 1))


def is_dense_summary(count: int, lowest: int | None, highest: int | None) -> bool:
    """Dense check from aggregates, valid only where ranks are already unique."""
    if count == 0:
        return lowest is None and highest is None
    return lowest == 1 and highest == count
