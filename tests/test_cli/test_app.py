"""Tests for the Typer CLI."""

import logging

import pytest
from typer.testing import CliRunner

from medquiz.cli.app import app, configure_logging, save_result
from medquiz.config.settings import Settings, get_settings
from medquiz.models.quiz import QuizResult
from medquiz.storage.store import ResultStore

runner = CliRunner()


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at a temporary database."""
    database_url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("DATABASE_URL", database_url)
    get_settings.cache_clear()
    yield database_url
    get_settings.cache_clear()


class TestInfo:
    """Test the info command."""

    def test_info(self):
        """Test that info describes the pipeline."""
        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "MedQuiz" in result.output
        assert "Answer Grader" in result.output


class TestLeaderboard:
    """Test the leaderboard command."""

    def test_empty(self, cli_env):
        """Test the message when nobody has played."""
        result = runner.invoke(app, ["leaderboard"])

        assert result.exit_code == 0
        assert "No results yet" in result.output

    def test_lists_users(self, cli_env, sample_result: QuizResult):
        """Test that saved users appear."""
        store = ResultStore(cli_env)
        profile = store.get_or_create_profile("user-1")
        store.update_user_stats("user-1", sample_result.score)

        result = runner.invoke(app, ["leaderboard", "--limit", "5"])

        assert result.exit_code == 0
        assert profile.username in result.output

    def test_missing_api_key(self, monkeypatch, tmp_path):
        """Test that missing configuration exits with an error."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        get_settings.cache_clear()
        try:
            result = runner.invoke(app, ["leaderboard"])
        finally:
            get_settings.cache_clear()

        assert result.exit_code == 1
        assert "GEMINI_API_KEY" in result.output


class TestProfile:
    """Test the profile command."""

    def test_unknown_user(self, cli_env):
        """Test that an unknown user exits with an error."""
        result = runner.invoke(app, ["profile", "--user", "ghost"])
        assert result.exit_code == 1

    def test_shows_recent_quizzes(self, cli_env, sample_result: QuizResult):
        """Test that stats and recent quizzes are shown."""
        store = ResultStore(cli_env)
        store.get_or_create_profile("user-1")
        store.save_quiz_result("user-1", sample_result)
        store.update_user_stats("user-1", sample_result.score)

        result = runner.invoke(app, ["profile", "--user", "user-1"])

        assert result.exit_code == 0
        assert "Cardiology" in result.output
        assert "10/45" in result.output


class TestQuiz:
    """Test the quiz command up to the first network call."""

    def test_blank_topic(self, cli_env):
        """Test that a whitespace-only topic exits with a readable error."""
        result = runner.invoke(app, ["quiz", "--topic", "   "])

        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)
        assert "Topic cannot be empty" in result.output


class TestSaveResult:
    """Test saving a finished quiz from the CLI."""

    async def test_saves_for_user(self, tmp_path, sample_result: QuizResult):
        """Test that the result lands in the configured store."""
        database_url = f"sqlite:///{tmp_path / 'saved.db'}"
        settings = Settings(GEMINI_API_KEY="k", DATABASE_URL=database_url, STORAGE_RETRY_DELAY=0)

        assert await save_result(settings, "user-1", sample_result)
        assert ResultStore(database_url).get_profile("user-1").quiz_count == 1

    async def test_unusable_database_url(self, sample_result: QuizResult):
        """Test that a store that cannot be opened reports a failed save."""
        settings = Settings(GEMINI_API_KEY="k", DATABASE_URL="nosuchdialect://nowhere")

        assert await save_result(settings, "user-1", sample_result) is False


class TestConfigureLogging:
    """Test CLI logging setup."""

    def test_http_client_loggers_stay_quiet(self):
        """Test that request URL logging is held at WARNING even at DEBUG."""
        try:
            configure_logging("DEBUG")

            assert logging.getLogger().level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
            assert logging.getLogger("httpcore").level == logging.WARNING
        finally:
            configure_logging("WARNING")
