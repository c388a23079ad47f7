import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Index, text
from sqlmodel import JSON, Field, SQLModel

from ladder_engine.core.clock import utc_now

from .types import UTCDateTime


class LiveMatchStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class LiveMatch(SQLModel, table=True):
    """A race-to-N match being scored frame by frame."""

    __tablename__ = "live_matches"
    __table_args__ = (
        Index(
            "uq_live_matches_active_pair",
            "pair_key",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    challenge_id: str | None = Field(default=None, foreign_key="challenges.id", index=True)
    player1_id: str = Field(foreign_key="members.id")
    player2_id: str = Field(foreign_key="members.id")
    pair_key: str = Field(index=True)
    games_to_win: int
    scores: dict[str, int] = Field(default_factory=dict, sa_column=Column(JSON))
    current_frame: int = 1
    status: str = Field(default=LiveMatchStatus.ACTIVE.value, index=True)
    winner_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    completed_at: datetime | None = Field(default=None, sa_type=UTCDateTime)

    @property
    def is_active(self) -> bool:
        return self.status == LiveMatchStatus.ACTIVE.value

    @property
    def loser_id(self) -> str | None:
        if self.winner_id is None:
            return None
        return self.opponent_of(self.winner_id)

    def opponent_of(self, player_id: str) -> str:
        if player_id == self.player1_id:
            return self.player2_id
        return self.player1_id
