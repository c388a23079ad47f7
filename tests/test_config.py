"""Tests for configuration loading and validation."""

import tempfile
from pathlib import Path

import pydantic
import pytest
import yaml

from ladder_engine.core.config import (
    DATABASE_URL_ENV,
    LadderConfig,
    PolicyConfig,
    load_config,
)
from ladder_engine.core.errors import ConfigurationError, UnsupportedDatabaseError


class TestPolicyConfig:
    """Tests for PolicyConfig."""

    def test_defaults(self):
        """Defaults match the standard league rules."""
        policy = PolicyConfig()
        assert policy.proximity_window == 5
        assert policy.top_rank_exempt is True
        assert policy.response_deadline_days == 14
        assert policy.loss_cooldown_hours == 24
        assert policy.forfeit_policy == "challenger_wins"
        assert policy.recheck_eligibility_on_confirm is False
        assert policy.default_games_to_win == 7

    def test_camel_case_aliases(self):
        """League files may use camelCase keys."""
        policy = PolicyConfig.model_validate(
            {"proximityWindow": 3, "topRankExempt": False, "lossCooldownHours": 48}
        )
        assert policy.proximity_window == 3
        assert policy.top_rank_exempt is False
        assert policy.loss_cooldown_hours == 48

    def test_unknown_forfeit_policy_rejected(self):
        """Only the two forfeit conventions are accepted."""
        with pytest.raises(pydantic.ValidationError):
            PolicyConfig(forfeit_policy="coin_flip")

    def test_deadline_must_be_positive(self):
        """A zero response window is invalid."""
        with pytest.raises(pydantic.ValidationError):
            PolicyConfig(response_deadline_days=0)


class TestLoadConfig:
    """Tests for loading config from YAML."""

    def test_load_valid_config(self):
        """Test loading a valid YAML config."""
        config_data = {
            "name": "capital-league",
            "policy": {"proximityWindow": 4, "responseDeadlineDays": 7},
            "engagement": {"challenge": 5},
            "storage": {"database_url": "sqlite:///league.db"},
            "sweeper": {"interval_seconds": 60},
        }

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config_data, f)
            config_path = Path(f.name)

        try:
            config = load_config(config_path)
            assert config.name == "capital-league"
            assert config.policy.proximity_window == 4
            assert config.policy.response_deadline_days == 7
            assert config.engagement.challenge == 5
            assert config.engagement.win == 3
            assert config.sweeper.interval_seconds == 60
        finally:
            config_path.unlink()

    def test_empty_file_gives_defaults(self, tmp_path):
        """An empty YAML file is a default league."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == LadderConfig()

    def test_missing_file(self):
        """Test error on missing config file."""
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/config.yaml")

    def test_invalid_values(self, tmp_path):
        """Invalid values surface as validation errors."""
        path = tmp_path / "bad.yaml"
        path.write_text("policy:\n  proximityWindow: -1\n")
        with pytest.raises(pydantic.ValidationError):
            load_config(path)


class TestDatabaseUrl:
    """Tests for database URL resolution."""

    def test_env_overrides_config(self, monkeypatch):
        """LADDER_DATABASE_URL wins over the file."""
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///override.db")
        assert LadderConfig().get_database_url() == "sqlite:///override.db"

    def test_config_used_without_env(self, monkeypatch):
        """Without the env var the configured URL is used."""
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        assert LadderConfig().get_database_url() == "sqlite:///ladder.db"


class TestConfigurationError:
    """Tests for configuration error formatting."""

    def test_message_with_suggestion(self):
        """Suggestions are appended to the message."""
        error = ConfigurationError("broken", "fix it")
        assert str(error) == "[Configuration Error] broken\n[Suggestion] fix it"

    def test_unsupported_database(self):
        """Unsupported backends suggest the supported URLs."""
        error = UnsupportedDatabaseError("mysql://db")
        assert "mysql://db" in str(error)
        assert "sqlite:///" in error.suggestion
