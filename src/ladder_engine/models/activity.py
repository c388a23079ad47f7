"""Audit trail of ladder events."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Column
from sqlmodel import JSON, Field, SQLModel

from ladder_engine.core.clock import utc_now

from .types import UTCDateTime


class Activity(SQLModel, table=True):
    """One emitted event, persisted for the activity feed and audits."""

    __tablename__ = "activities"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    member_id: str | None = Field(default=None, index=True)
    action_type: str = Field(index=True)
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
