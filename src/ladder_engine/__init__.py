"""Ladder Engine.

Dense rank ladder, challenge lifecycle, live-match scoring and automatic
deadline forfeits for a challenge league.
"""

from ladder_engine.league import LadderLeague, open_league

__version__ = "0.1.0"
__all__ = [
    "LadderLeague",
    "__version__",
    "open_league",
]
