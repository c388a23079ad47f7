"""Configuration schemas and loading for the ladder engine."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DATABASE_URL_ENV = "LADDER_DATABASE_URL"

DISCIPLINES = ("8-ball", "9-ball", "10-ball")


class PolicyConfig(BaseModel):
    """League policy constants.

    Accepts both snake_case and camelCase keys so league files written as
    ``proximityWindow: 5`` load unchanged.

    Attributes:
        proximity_window: Max rank distance for a challenge.
        top_rank_exempt: Whether rank 1 may challenge anyone.
        response_deadline_days: Days before an open challenge is forfeited.
        loss_cooldown_hours: Hours a loser is barred from issuing challenges.
        forfeit_policy: Who wins a deadline forfeit:
            - "challenger_wins": the challenger, always.
            - "non_responder_loses": the side that still owed a response.
        recheck_eligibility_on_confirm: Reject confirm() when ranks drifted
            out of the proximity window since creation.
        default_games_to_win: Race length used when a challenge omits it.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    proximity_window: int = Field(default=5, ge=0)
    top_rank_exempt: bool = True
    response_deadline_days: float = Field(default=14, gt=0)
    loss_cooldown_hours: float = Field(default=24, ge=0)
    forfeit_policy: Literal["challenger_wins", "non_responder_loses"] = "challenger_wins"
    recheck_eligibility_on_confirm: bool = False
    default_games_to_win: int = Field(default=7, ge=1)


class EngagementConfig(BaseModel):
    """Engagement points awarded per action (0 disables)."""

    challenge: int = Field(default=2, ge=0)
    play: int = Field(default=1, ge=0)
    win: int = Field(default=3, ge=0)


class StorageConfig(BaseModel):
    """Database connection and transaction retry settings."""

    database_url: str = "sqlite:///ladder.db"
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_min_wait_seconds: float = Field(default=0.05, ge=0)
    retry_max_wait_seconds: float = Field(default=1.0, ge=0)


class SweeperConfig(BaseModel):
    """Housekeeping sweep cadence."""

    interval_seconds: float = Field(default=300.0, gt=0)


class EventsConfig(BaseModel):
    """Outbound event delivery."""

    log_events: bool = True
    persist_activities: bool = True
    webhook_url: str | None = None
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)


class LadderConfig(BaseModel):
    """Complete league configuration."""

    name: str = "ladder"
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    engagement: EngagementConfig = Field(default_factory=EngagementConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sweeper: SweeperConfig = Field(default_factory=SweeperConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)

    def get_database_url(self) -> str:
        """Get database URL from environment or config."""
        return os.environ.get(DATABASE_URL_ENV) or self.storage.database_url


def load_config(path: str | Path) -> LadderConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to YAML configuration file.

    Returns:
        Validated LadderConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open() as f:
        data = yaml.safe_load(f) or {}

    return LadderConfig.model_validate(data)
