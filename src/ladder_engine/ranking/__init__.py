"""Ranking module for the ladder engine.

Provides the slide rule, the eligibility policy and the RankStore that owns
member ranks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ladder_engine.ranking.eligibility import Eligibility, EligibilityPolicy
from ladder_engine.ranking.ladder import (
    RankChange,
    apply_slide,
    is_dense,
    is_dense_summary,
    slide_window,
)
from ladder_engine.ranking.rank_store import RankStore

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ladder_engine.core.clock import Clock
    from ladder_engine.core.config import LadderConfig
    from ladder_engine.services.events import EventSink


def create_rank_store(
    engine: Engine, config: LadderConfig, events: EventSink, clock: Clock | None = None
) -> RankStore:
    """Create a RankStore wired to the league's policy and storage settings.

    Args:
        engine: Database engine.
        config: League configuration.
        events: Sink for post-commit events.
        clock: Optional time source override.

    Returns:
        Configured rank store.
    """
    kwargs = {"clock": clock} if clock is not None else {}
    return RankStore(
        engine,
        policy=config.policy,
        events=events,
        storage=config.storage,
        **kwargs,
    )


__all__ = [
    "Eligibility",
    "EligibilityPolicy",
    "RankChange",
    "RankStore",
    "apply_slide",
    "create_rank_store",
    "is_dense",
    "is_dense_summary",
    "slide_window",
]
