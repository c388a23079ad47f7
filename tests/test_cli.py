"""Tests for the ladder CLI."""

import pytest
import yaml
from typer.testing import CliRunner

from ladder_engine import __version__
from ladder_engine.cli import app
from ladder_engine.core.config import DATABASE_URL_ENV

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    path = tmp_path / "league.yaml"
    path.write_text(
        yaml.dump(
            {
                "name": "cli-league",
                "storage": {"database_url": f"sqlite:///{tmp_path / 'cli.db'}"},
                "events": {"log_events": False},
            }
        )
    )
    return path


def _invoke(*args):
    return runner.invoke(app, list(args))


def _member_ids(config_file):
    """Join three members and return their ids in rank order."""
    ids = []
    for name in ("Ann", "Ben", "Cal"):
        result = _invoke("join", name, "-c", str(config_file))
        assert result.exit_code == 0, result.output
        ids.append(result.output.strip().split("(")[-1].rstrip(")"))
    return ids


class TestBasics:
    """Tests for version, info and validate."""

    def test_version(self):
        """--version prints the package version."""
        result = _invoke("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_info(self):
        """info lists example commands."""
        result = _invoke("info")
        assert result.exit_code == 0
        assert "ladder sweep" in result.output

    def test_validate(self, config_file):
        """validate summarises a good config."""
        result = _invoke("validate", str(config_file))
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "cli-league" in result.output

    def test_validate_missing_file(self, tmp_path):
        """validate fails on a missing file."""
        result = _invoke("validate", str(tmp_path / "nope.yaml"))
        assert result.exit_code == 1


class TestLadderCommands:
    """Tests for member and ladder commands."""

    def test_init_db(self, config_file):
        """init-db creates the schema."""
        result = _invoke("init-db", "-c", str(config_file))
        assert result.exit_code == 0
        assert "Schema ready" in result.output

    def test_join_and_standings(self, config_file):
        """Joined members appear in rank order."""
        _member_ids(config_file)

        result = _invoke("standings", "-c", str(config_file))
        assert result.exit_code == 0
        assert result.output.index("Ann") < result.output.index("Cal")

    def test_seed_from_roster(self, config_file, tmp_path):
        """seed imports a roster ordered by rating."""
        roster = tmp_path / "roster.yaml"
        roster.write_text(yaml.dump([{"name": "Low", "rating": 1}, {"name": "High", "rating": 9}]))

        result = _invoke("seed", str(roster), "-c", str(config_file))
        assert result.exit_code == 0
        assert "Seeded 2 members" in result.output

        standings = _invoke("standings", "-c", str(config_file))
        assert standings.output.index("High") < standings.output.index("Low")

    def test_challenge_and_decline(self, config_file):
        """A declined challenge moves the challenger up."""
        ann, ben, cal = _member_ids(config_file)

        created = _invoke("challenge", cal, ann, "-c", str(config_file))
        assert created.exit_code == 0, created.output
        challenge_id = created.output.split("Challenge created")[1].split()[0]

        declined = _invoke("decline", ann, challenge_id, "-c", str(config_file))
        assert declined.exit_code == 0, declined.output

        standings = _invoke("standings", "-c", str(config_file))
        assert standings.output.index("Cal") < standings.output.index("Ann")

    def test_rejected_action_exits_nonzero(self, config_file):
        """Rejected ladder actions print the reason and exit 1."""
        ann, _, _ = _member_ids(config_file)

        result = _invoke("challenge", ann, ann, "-c", str(config_file))
        assert result.exit_code == 1
        assert "Rejected" in result.output

    def test_direct_match(self, config_file):
        """A direct match can be scored to completion."""
        ann, ben, _ = _member_ids(config_file)
        created = _invoke("match", ben, ann, "--games", "1", "-c", str(config_file))
        assert created.exit_code == 0, created.output
        match_id = created.output.split("Live match")[1].split()[0]

        scored = _invoke("point", match_id, ben, "-c", str(config_file))
        assert scored.exit_code == 0, scored.output
        assert "Match won by" in scored.output

    def test_sweep(self, config_file):
        """sweep reports how many challenges were forfeited."""
        _member_ids(config_file)
        result = _invoke("sweep", "-c", str(config_file))
        assert result.exit_code == 0
        assert "Forfeited 0" in result.output

    def test_point_reports_frame_just_played(self, config_file):
        """The first point is reported as frame 1, not the next frame."""
        ann, ben, _ = _member_ids(config_file)
        created = _invoke("match", ben, ann, "--games", "3", "-c", str(config_file))
        match_id = created.output.split("Live match")[1].split()[0]

        first = _invoke("point", match_id, ben, "-c", str(config_file))
        assert first.exit_code == 0, first.output
        assert "After frame 1" in first.output
        assert "Match won" not in first.output

        second = _invoke("point", match_id, ann, "-c", str(config_file))
        assert "After frame 2" in second.output
