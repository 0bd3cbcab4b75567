"""Tests for the command-line interface."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from ingestflow.cli import main
from ingestflow.errors import ConfigError
from ingestflow.scheduling.schemas import RunSummary, UnitRunResult


class FakeServices:
    """Stands in for Services with a canned scheduler and credential manager."""

    def __init__(self, summary: RunSummary | None = None, manager=None):
        self.scheduler = MagicMock()
        self.scheduler.trigger = AsyncMock(return_value=summary)
        self._manager = manager

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    def credentials(self, integration):
        if self._manager is None:
            raise ConfigError(f"Unknown integration: {integration}")
        return self._manager


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("ingestflow.cli.setup_logging"):
        yield


@pytest.fixture
def runner():
    return CliRunner()


def _summary(*results: UnitRunResult) -> RunSummary:
    return RunSummary(scope="project", target_id="p1", ran=True, units=list(results))


class TestTriggers:
    """Tests for run-project and run-unit."""

    def test_run_project_prints_summary(self, runner):
        """Should print the run summary as JSON and exit 0."""
        services = FakeServices(_summary(UnitRunResult(unit_id="A", job_ids=["job_1"], packets_found=1)))

        with patch("ingestflow.services.Services", return_value=services):
            result = runner.invoke(main, ["run-project", "p1"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["jobs_created"] == 1
        services.scheduler.trigger.assert_awaited_once_with("p1", "project")

    def test_run_unit_scope(self, runner):
        """Should trigger the unit scope."""
        services = FakeServices(RunSummary(scope="unit", target_id="u1", reason="paused"))

        with patch("ingestflow.services.Services", return_value=services):
            result = runner.invoke(main, ["run-unit", "u1"])

        assert result.exit_code == 0
        services.scheduler.trigger.assert_awaited_once_with("u1", "unit")

    def test_all_units_failed_exits_nonzero(self, runner):
        """Should exit 1 when units failed and no job was created."""
        services = FakeServices(_summary(UnitRunResult(unit_id="A", error="AuthError: not authorized")))

        with patch("ingestflow.services.Services", return_value=services):
            result = runner.invoke(main, ["run-project", "p1"])

        assert result.exit_code == 1

    def test_partial_failure_exits_zero(self, runner):
        """Should exit 0 when some unit still created jobs."""
        services = FakeServices(
            _summary(
                UnitRunResult(unit_id="A", error="UpstreamError: 503"),
                UnitRunResult(unit_id="B", job_ids=["job_2"]),
            )
        )

        with patch("ingestflow.services.Services", return_value=services):
            result = runner.invoke(main, ["run-project", "p1"])

        assert result.exit_code == 0


class TestAuthCommands:
    """Tests for the credential commands."""

    def test_auth_url(self, runner):
        """Should print the authorization URL."""
        manager = MagicMock()
        manager.begin_authorization = AsyncMock(return_value="https://www.reddit.com/api/v1/authorize?state=x")

        with patch("ingestflow.services.Services", return_value=FakeServices(manager=manager)):
            result = runner.invoke(main, ["auth-url"])

        assert result.exit_code == 0
        assert "state=x" in result.output

    def test_unknown_integration(self, runner):
        """Should report errors and exit 1."""
        with patch("ingestflow.services.Services", return_value=FakeServices()):
            result = runner.invoke(main, ["auth-status", "--integration", "myspace"])

        assert result.exit_code == 1
        assert "Unknown integration: myspace" in result.output

    def test_auth_status_unauthorized(self, runner):
        """Should say when nothing is stored."""
        manager = MagicMock()
        manager.account_details = AsyncMock(return_value=None)

        with patch("ingestflow.services.Services", return_value=FakeServices(manager=manager)):
            result = runner.invoke(main, ["auth-status"])

        assert result.output.strip() == "reddit: not authorized"

    def test_auth_revoke(self, runner):
        """Should report whether a credential was removed."""
        manager = MagicMock()
        manager.revoke = AsyncMock(return_value=True)

        with patch("ingestflow.services.Services", return_value=FakeServices(manager=manager)):
            result = runner.invoke(main, ["auth-revoke"])

        assert "credential removed" in result.output

    def test_refresh_failure_exits_nonzero(self, runner):
        """Should exit 1 when the refresh fails."""
        manager = MagicMock()
        manager.refresh = AsyncMock(return_value=False)

        with patch("ingestflow.services.Services", return_value=FakeServices(manager=manager)):
            result = runner.invoke(main, ["refresh-token"])

        assert result.exit_code == 1
        assert "re-authorize" in result.output


class TestCleanupJobs:
    """Tests for cleanup-jobs."""

    def test_cleanup_uses_options(self, runner):
        """Should fail stuck jobs and delete old ones with the given limits."""
        repo = MagicMock()
        repo.fail_stuck = AsyncMock(return_value=2)
        repo.delete_old = AsyncMock(return_value=5)
        database = MagicMock()
        database.__aenter__ = AsyncMock(return_value=database)
        database.__aexit__ = AsyncMock(return_value=None)

        with patch("ingestflow.storage.database.Database", return_value=database), \
                patch("ingestflow.jobs.repository.PostgresJobRepository", return_value=repo):
            result = runner.invoke(main, ["cleanup-jobs", "--stuck-hours", "3", "--days", "7"])

        assert result.exit_code == 0
        repo.fail_stuck.assert_awaited_once_with(timedelta(hours=3))
        repo.delete_old.assert_awaited_once_with(7)
        assert "Failed 2 jobs stuck for more than 3 hours" in result.output
        assert "Deleted 5 jobs finished more than 7 days ago" in result.output
