"""
Integration tests for the CLI commands.
"""

import json

import pytest
from typer.testing import CliRunner

from web_replay_agent import __version__
from web_replay_agent.main import app


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


class TestCLIRecord:
    """Test the 'record' CLI command."""

    def test_record_help(self, runner):
        result = runner.invoke(app, ["record", "--help"])
        assert result.exit_code == 0
        assert "Record interactions on URL" in result.stdout

    def test_record_options(self, runner):
        result = runner.invoke(app, ["record", "--help"])
        for option in ("--base-domain", "--allow", "--strategy", "--duration", "--output"):
            assert option in result.stdout

    def test_record_rejects_unknown_strategy(self, runner, tmp_path):
        result = runner.invoke(app, [
            "record", "https://app.example.com", "--strategy", "magic", "-o", str(tmp_path / "a.json"),
        ])
        assert result.exit_code == 2
        assert "unknown selector strategy" in result.stdout


class TestCLIReplay:
    """Test the 'replay' CLI command."""

    def test_replay_help(self, runner):
        result = runner.invoke(app, ["replay", "--help"])
        assert result.exit_code == 0
        assert "Replay a recorded action file" in result.stdout
        assert "--retry-attempts" in result.stdout

    def test_replay_missing_file(self, runner, tmp_path):
        result = runner.invoke(app, ["replay", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "File not found" in result.stdout

    def test_replay_invalid_file(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text(json.dumps({"actions": "nope"}))

        result = runner.invoke(app, ["replay", str(path)])

        assert result.exit_code == 1
        assert "Error" in result.stdout


class TestCLIVersion:
    """Test version output."""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout
