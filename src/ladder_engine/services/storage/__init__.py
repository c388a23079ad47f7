from .activity_repository import ActivityRepository
from .database import create_ladder_engine, init_schema, is_conflict, session_lock
from .repository import AsyncRepository

__all__ = [
    "ActivityRepository",
    "AsyncRepository",
    "create_ladder_engine",
    "init_schema",
    "is_conflict",
    "session_lock",
]
