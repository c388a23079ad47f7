"""Core configuration and utilities for the ladder engine."""

from ladder_engine.core.clock import Clock, as_utc, utc_now
from ladder_engine.core.config import (
    DISCIPLINES,
    EngagementConfig,
    EventsConfig,
    LadderConfig,
    PolicyConfig,
    StorageConfig,
    SweeperConfig,
    load_config,
)
from ladder_engine.core.errors import (
    ConfigurationError,
    DuplicateChallengeError,
    InvalidMatchStateError,
    InvalidRankStateError,
    InvalidTransitionError,
    LadderError,
    NotEligibleError,
    NotFoundError,
    RetryableError,
    StorageConflictError,
    UnsupportedDatabaseError,
)

__all__ = [
    "DISCIPLINES",
    "Clock",
    "ConfigurationError",
    "DuplicateChallengeError",
    "EngagementConfig",
    "EventsConfig",
    "InvalidMatchStateError",
    "InvalidRankStateError",
    "InvalidTransitionError",
    "LadderConfig",
    "LadderError",
    "NotEligibleError",
    "NotFoundError",
    "PolicyConfig",
    "RetryableError",
    "StorageConfig",
    "StorageConflictError",
    "SweeperConfig",
    "UnsupportedDatabaseError",
    "as_utc",
    "load_config",
    "utc_now",
]
