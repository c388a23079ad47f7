"""Column types shared by the ladder tables."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from ladder_engine.core.clock import as_utc


class UTCDateTime(TypeDecorator):
    """DateTime that always stores UTC and always returns aware values.

    SQLite drops tzinfo on the way in, so values are normalised to UTC before
    binding and re-tagged on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            msg = "naive datetimes are not accepted; pass a UTC-aware value"
            raise ValueError(msg)
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        return as_utc(value)


def pair_key(member_a: str, member_b: str) -> str:
    """Normalised key for an unordered pair of member ids."""
    first, second = sorted((member_a, member_b))
    return f"{first}:{second}"
