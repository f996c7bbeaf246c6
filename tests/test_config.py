"""Tests for environment configuration."""
import subprocess
from unittest.mock import MagicMock, patch

from gh_monitor import config
from gh_monitor.domain.models import Period


def test_connection_string_defaults(monkeypatch):
    for name in ("POSTGRES_HOST", "POSTGRES_PORT", "POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD"):
        monkeypatch.delenv(name, raising=False)

    assert config.get_connection_string() == (
        "host=localhost port=5432 dbname=gh_monitor user=postgres password=postgres"
    )


def test_connection_string_from_env(monkeypatch):
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.setenv("POSTGRES_DB", "dash")

    assert "host=db" in config.get_connection_string()
    assert "dbname=dash" in config.get_connection_string()


def test_env_token_wins(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "env-token")

    with patch.object(config, "token_from_gh_cli") as cli:
        assert config.resolve_github_token() == "env-token"
    cli.assert_not_called()


def test_falls_back_to_gh_cli(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    completed = MagicMock(returncode=0, stdout="cli-token\n")

    with patch.object(config.subprocess, "run", return_value=completed):
        assert config.resolve_github_token() == "cli-token"


def test_missing_gh_cli_gives_none():
    with patch.object(config.subprocess, "run", side_effect=FileNotFoundError("gh")):
        assert config.token_from_gh_cli() is None

    with patch.object(config.subprocess, "run", side_effect=subprocess.TimeoutExpired("gh", 10)):
        assert config.token_from_gh_cli() is None


def test_logged_out_gh_cli_gives_none():
    with patch.object(config.subprocess, "run", return_value=MagicMock(returncode=1, stdout="")):
        assert config.token_from_gh_cli() is None


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "t")
    monkeypatch.setenv("STAR_HISTORY_PAGE_CAP", "5")
    monkeypatch.setenv("ADVISORY_TIMEOUT_SECONDS", "1.5")
    monkeypatch.setenv("MONITOR_PERIOD", "weekly")

    settings = config.MonitorSettings.from_env()

    assert settings.github_token == "t"
    assert settings.star_page_cap == 5
    assert settings.advisory_timeout == 1.5
    assert settings.period is Period.WEEKLY


def test_settings_defaults(monkeypatch):
    for name in ("STAR_HISTORY_PAGE_CAP", "ADVISORY_TIMEOUT_SECONDS", "MONITOR_PERIOD"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GITHUB_TOKEN", "t")

    settings = config.MonitorSettings.from_env()

    assert settings.star_page_cap == 15
    assert settings.period is Period.MONTHLY
