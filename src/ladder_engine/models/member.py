import uuid
from datetime import datetime

from sqlalchemy import Column, Integer
from sqlmodel import Field, SQLModel

from ladder_engine.core.clock import utc_now

from .types import UTCDateTime


class Member(SQLModel, table=True):
    """A ladder member and their current slot."""

    __tablename__ = "members"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    display_name: str
    rank: int = Field(sa_column=Column(Integer, nullable=False, unique=True))
    rating: int = 0  # informational, never mutated here
    points: int = 0
    cooldown_until: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
