"""Database persistence for activity records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlmodel import Session, col, select

from ladder_engine.models import Activity

from .repository import AsyncRepository

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ladder_engine.core.config import StorageConfig


class ActivityRepository(AsyncRepository):
    """Persist and query the activity feed."""

    def __init__(self, engine: Engine, storage: StorageConfig | None = None) -> None:
        super().__init__(engine, storage)

    async def record(
        self, action_type: str, payload: dict[str, Any], member_id: str | None = None
    ) -> Activity:
        """Append one activity row."""

        def _save(session: Session) -> Activity:
            activity = Activity(member_id=member_id, action_type=action_type, payload=payload)
            session.add(activity)
            return activity

        return await self._run_transaction(_save)

    async def recent(
        self, limit: int = 50, member_id: str | None = None, action_type: str | None = None
    ) -> list[Activity]:
        """Get the newest activities first."""

        def _get(session: Session) -> list[Activity]:
            statement = select(Activity)
            if member_id is not None:
                statement = statement.where(Activity.member_id == member_id)
            if action_type is not None:
                statement = statement.where(Activity.action_type == action_type)
            statement = statement.order_by(col(Activity.created_at).desc()).limit(limit)
            return list(session.exec(statement).all())

        return await self._run_session(_get)
