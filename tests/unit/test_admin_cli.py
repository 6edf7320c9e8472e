"""
Unit tests for the gw-admin command line.

Upstream calls are replaced by patching the client factory and the status
functions imported into gw_admin.cli.
"""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, Mock, patch

import pytest
from click.testing import CliRunner

from gw_admin.cli import cli, format_duration, time_ago
from gw_common.exceptions import UpstreamError
from gw_common.models import Job, JobStatusView, RunSummary, SwarmStatusView


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def client():
    client = Mock()
    with patch("gw_admin.cli.get_client", return_value=client):
        yield client


class TestFormatting:
    """Test suite for table formatting helpers."""

    def test_format_duration(self):
        assert format_duration(None) == "-"
        assert format_duration(45) == "45s"
        assert format_duration(192) == "3m 12s"
        assert format_duration(7500) == "2h 5m"

    def test_time_ago(self):
        now = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

        def ago(**delta):
            return (now - timedelta(**delta)).isoformat()

        assert time_ago(ago(seconds=30), now) == "just now"
        assert time_ago(ago(minutes=5), now) == "5m ago"
        assert time_ago(ago(hours=3), now) == "3h ago"
        assert time_ago(ago(days=2), now) == "2d ago"
        assert time_ago(ago(days=65), now) == "2mo ago"
        assert time_ago(None, now) == "N/A"

    def test_time_ago_zulu(self):
        now = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        assert time_ago("2024-03-01T11:00:00Z", now) == "1h ago"


class TestStatusCommands:
    """Test suite for jobs/swarm status."""

    def test_jobs_status_table(self, runner, client):
        view = JobStatusView(
            jobs=[
                Job(
                    job_id="abc",
                    branch="job/abc",
                    status="in_progress",
                    started_at=None,
                    duration_minutes=4,
                    current_step="Run agent",
                    steps_completed=2,
                    steps_total=5,
                    run_id=77,
                )
            ],
            running=1,
            queued=0,
        )
        with patch("gw_admin.cli.get_job_status", new=AsyncMock(return_value=view)):
            result = runner.invoke(cli, ["jobs", "status"])

        assert result.exit_code == 0
        assert "Running: 1  Queued: 0" in result.output
        assert "abc" in result.output
        assert "2/5 Run agent" in result.output

    def test_jobs_status_json(self, runner, client):
        view = JobStatusView(jobs=[], running=0, queued=0)
        with patch(
            "gw_admin.cli.get_job_status", new=AsyncMock(return_value=view)
        ) as status:
            result = runner.invoke(cli, ["jobs", "status", "--job-id", "abc", "--json"])

        assert json.loads(result.output) == {"jobs": [], "running": 0, "queued": 0}
        status.assert_awaited_once_with(client, "abc")

    def test_jobs_status_failure(self, runner, client):
        with patch(
            "gw_admin.cli.get_job_status",
            new=AsyncMock(side_effect=UpstreamError("github", 401, "Bad credentials")),
        ):
            result = runner.invoke(cli, ["jobs", "status"])

        assert result.exit_code == 1
        assert "Bad credentials" in result.output

    def test_swarm_status(self, runner, client):
        view = SwarmStatusView(
            runs=[
                RunSummary(
                    run_id=77,
                    branch="main",
                    status="completed",
                    conclusion="failure",
                    workflow_name="CI",
                    started_at=None,
                    updated_at=None,
                    duration_seconds=None,
                    html_url=None,
                )
            ],
            has_more=True,
            running=0,
            queued=0,
        )
        with patch(
            "gw_admin.cli.get_swarm_status", new=AsyncMock(return_value=view)
        ) as status:
            result = runner.invoke(cli, ["swarm", "status", "--page", "2"])

        assert result.exit_code == 0
        assert "77" in result.output
        assert "failure" in result.output
        assert "--page 3" in result.output
        status.assert_awaited_once_with(client, page=2)


class TestRunCommands:
    """Test suite for run control and dispatch."""

    def test_cancel(self, runner, client):
        result = runner.invoke(cli, ["runs", "cancel", "12"])

        assert result.exit_code == 0
        client.cancel.assert_called_once_with(12)

    def test_rerun_failed_only(self, runner, client):
        result = runner.invoke(cli, ["runs", "rerun", "12", "--failed-only"])

        assert result.exit_code == 0
        client.rerun.assert_called_once_with(12, failed_only=True)

    def test_cancel_failure(self, runner, client):
        client.cancel.side_effect = UpstreamError("github", 409, "Cannot cancel")

        result = runner.invoke(cli, ["runs", "cancel", "12"])

        assert result.exit_code == 1

    def test_dispatch_with_inputs(self, runner, client):
        result = runner.invoke(
            cli,
            ["workflow", "dispatch", "deploy.yml", "--ref", "dev", "--input", "env=prod"],
        )

        assert result.exit_code == 0
        client.dispatch.assert_called_once_with(
            "deploy.yml", ref="dev", inputs={"env": "prod"}
        )

    def test_dispatch_rejects_bad_input(self, runner, client):
        result = runner.invoke(cli, ["workflow", "dispatch", "deploy.yml", "--input", "oops"])

        assert result.exit_code == 1
        client.dispatch.assert_not_called()

    def test_job_create(self, runner, client):
        with patch(
            "gw_admin.cli.create_job",
            return_value={"job_id": "abc", "branch": "job/abc"},
        ) as create:
            result = runner.invoke(cli, ["job", "create", "Refresh the docs"])

        assert result.exit_code == 0
        assert "job/abc" in result.output
        create.assert_called_once_with(client, "Refresh the docs")


class TestScheduleAndKeyCommands:
    def test_schedule_validate(self, runner, tmp_path):
        path = tmp_path / "CRONS.json"
        path.write_text(
            json.dumps(
                [
                    {"name": "good", "schedule": "0 9 * * *", "job": "x"},
                    {"name": "bad", "schedule": "whenever", "job": "x"},
                ]
            )
        )

        result = runner.invoke(cli, ["schedule", "validate", str(path)])

        assert result.exit_code == 1
        assert "✓ good" in result.output
        assert "✗ bad" in result.output

    def test_schedule_validate_all_good(self, runner, tmp_path):
        path = tmp_path / "CRONS.json"
        path.write_text(
            json.dumps([{"name": "cmd", "schedule": "* * * * *", "type": "command", "command": "ls"}])
        )

        result = runner.invoke(cli, ["schedule", "validate", str(path)])

        assert result.exit_code == 0

    def test_key_generate(self, runner):
        result = runner.invoke(cli, ["key", "generate"])

        assert result.exit_code == 0
        assert result.output.strip().startswith("gw_")

    def test_history_requires_database(self, runner, monkeypatch):
        monkeypatch.delenv("GW_DB_PATH", raising=False)

        result = runner.invoke(cli, ["history", "show", "100"])

        assert result.exit_code == 1
        assert "GW_DB_PATH" in result.output

    def test_history_show_and_clear(self, runner, monkeypatch, tmp_path):
        monkeypatch.setenv("GW_DB_PATH", str(tmp_path / "gw.db"))

        result = runner.invoke(cli, ["history", "show", "100", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == []

        result = runner.invoke(cli, ["history", "clear", "100"])
        assert result.exit_code == 0
