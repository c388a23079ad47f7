import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from ladder_engine.core.clock import utc_now

from .types import UTCDateTime


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    FORFEITED = "forfeited"

    @property
    def is_terminal(self) -> bool:
        return self in (ChallengeStatus.COMPLETED, ChallengeStatus.FORFEITED)


OPEN_STATUSES = (
    ChallengeStatus.PENDING,
    ChallengeStatus.NEGOTIATING,
    ChallengeStatus.SCHEDULED,
    ChallengeStatus.LIVE,
)

# Statuses the housekeeping sweep may forfeit; live matches are left to finish.
SWEEPABLE_STATUSES = (
    ChallengeStatus.PENDING,
    ChallengeStatus.NEGOTIATING,
    ChallengeStatus.SCHEDULED,
)

_OPEN_SQL = "status IN ('pending', 'negotiating', 'scheduled', 'live')"


class Challenge(SQLModel, table=True):
    """A challenge between two members, from issue to resolution."""

    __tablename__ = "challenges"
    __table_args__ = (
        Index(
            "uq_challenges_open_pair",
            "pair_key",
            unique=True,
            sqlite_where=text(_OPEN_SQL),
            postgresql_where=text(_OPEN_SQL),
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    challenger_id: str = Field(foreign_key="members.id", index=True)
    challenged_id: str = Field(foreign_key="members.id", index=True)
    pair_key: str = Field(index=True)
    discipline: str = "8-ball"
    games_to_win: int = 7
    venue: str | None = None
    proposed_time: datetime | None = Field(default=None, sa_type=UTCDateTime)
    last_proposer_id: str | None = None
    status: str = Field(default=ChallengeStatus.PENDING.value, index=True)
    deadline: datetime = Field(sa_type=UTCDateTime, index=True)
    confirmed_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    live_match_id: str | None = None
    winner_id: str | None = None
    forfeit_reason: str | None = None
    day_reminder_sent: bool = False
    hour_reminder_sent: bool = False
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)

    @property
    def state(self) -> ChallengeStatus:
        return ChallengeStatus(self.status)

    def participant_ids(self) -> tuple[str, str]:
        return self.challenger_id, self.challenged_id

    def opponent_of(self, member_id: str) -> str:
        if member_id == self.challenger_id:
            return self.challenged_id
        return self.challenger_id
