from .activity import Activity
from .challenge import (
    OPEN_STATUSES,
    SWEEPABLE_STATUSES,
    Challenge,
    ChallengeStatus,
)
from .live_match import LiveMatch, LiveMatchStatus
from .member import Member
from .types import UTCDateTime, pair_key

__all__ = [
    "OPEN_STATUSES",
    "SWEEPABLE_STATUSES",
    "Activity",
    "Challenge",
    "ChallengeStatus",
    "LiveMatch",
    "LiveMatchStatus",
    "Member",
    "UTCDateTime",
    "pair_key",
]
