"""
End-to-end tests for the gateway server.

Starts the real application under uvicorn with a temporary project root and
database, then exercises the routes that need no upstream credentials:
1. API key enforcement on first-party routes
2. Schedule and trigger definitions served from disk
3. Webhook authentication for both inbound surfaces
4. The gw-admin schedule validator against the same files
"""

import json
import os
import socket
import subprocess
import sys
import tempfile
import time
from pathlib import Path

import pytest
import requests

API_KEY = "gw_e2e_test_key"
TELEGRAM_SECRET = "tg-e2e-secret"
GITHUB_SECRET = "gh-e2e-secret"


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def wait_for_server_ready(port, max_wait=10):
    """
    Wait for server to be ready by checking if it responds to requests.

    Any response (even 401) means the server is listening.
    """
    wait_interval = 0.2
    for _ in range(int(max_wait / wait_interval)):
        try:
            requests.get(f"http://localhost:{port}/ping", timeout=1)
            return
        except requests.exceptions.ConnectionError:
            pass  # Server not ready yet
        time.sleep(wait_interval)
    raise RuntimeError(f"Server on port {port} did not become ready within {max_wait} seconds")


@pytest.fixture
def project_root():
    """Create a project root with schedule and trigger definitions."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        os_dir = root / "operating_system"
        os_dir.mkdir()
        (os_dir / "CRONS.json").write_text(
            json.dumps(
                [
                    {"name": "new-year", "schedule": "0 0 1 1 *", "job": "Say hi"},
                    {
                        "name": "paused",
                        "schedule": "* * * * *",
                        "type": "command",
                        "command": "echo paused",
                        "enabled": False,
                    },
                ]
            )
        )
        (os_dir / "TRIGGERS.json").write_text(
            json.dumps([{"name": "on-pr", "watch_path": "/github/webhook", "actions": []}])
        )
        yield root


@pytest.fixture
def server(project_root):
    """Start the gateway server and tear it down after the test."""
    port = free_port()

    env = os.environ.copy()
    env.update(
        {
            "API_KEY": API_KEY,
            "TELEGRAM_WEBHOOK_SECRET": TELEGRAM_SECRET,
            "GH_WEBHOOK_SECRET": GITHUB_SECRET,
            "GW_PROJECT_ROOT": str(project_root),
            "GW_DB_PATH": str(project_root / "gateway.db"),
        }
    )
    for name in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "GH_TOKEN"):
        env.pop(name, None)

    proc = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "gw_server.app:app", "--port", str(port)],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )

    try:
        wait_for_server_ready(port)
        yield f"http://localhost:{port}"
    finally:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=2)


class TestGatewayServer:
    """Test suite against a running server."""

    def test_ping_requires_api_key(self, server):
        response = requests.get(f"{server}/ping", timeout=5)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_unknown_path_requires_api_key(self, server):
        response = requests.get(f"{server}/nope", timeout=5)

        assert response.status_code == 401

    def test_ping(self, server):
        response = requests.get(
            f"{server}/ping", headers={"x-api-key": API_KEY}, timeout=5
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Pong!"}

    def test_swarm_config(self, server):
        response = requests.get(
            f"{server}/swarm/config", headers={"x-api-key": API_KEY}, timeout=5
        )

        data = response.json()
        assert [c["name"] for c in data["crons"]] == ["new-year", "paused"]
        assert data["crons"][1]["enabled"] is False
        assert data["triggers"][0]["name"] == "on-pr"

    def test_create_job_requires_job_field(self, server):
        response = requests.post(
            f"{server}/webhook", json={}, headers={"x-api-key": API_KEY}, timeout=5
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Missing job field"}

    def test_telegram_wrong_secret_is_acknowledged(self, server):
        response = requests.post(
            f"{server}/telegram/webhook",
            json={"message": {"chat": {"id": 1}, "text": "hi"}},
            headers={"x-telegram-bot-api-secret-token": "wrong"},
            timeout=5,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_github_wrong_secret_is_rejected(self, server):
        response = requests.post(
            f"{server}/github/webhook",
            json={},
            headers={
                "x-github-webhook-secret-token": "wrong",
                "x-github-event": "pull_request",
            },
            timeout=5,
        )

        assert response.status_code == 401

    def test_github_non_job_branch_is_skipped(self, server):
        response = requests.post(
            f"{server}/github/webhook",
            json={"pull_request": {"head": {"ref": "feature/x"}}},
            headers={
                "x-github-webhook-secret-token": GITHUB_SECRET,
                "x-github-event": "pull_request",
            },
            timeout=5,
        )

        assert response.json() == {
            "ok": True,
            "skipped": True,
            "reason": "not a job branch",
        }


def test_admin_validates_schedule(project_root):
    """Test that gw-admin reads the same schedule file the server uses."""
    env = os.environ.copy()
    env["GW_PROJECT_ROOT"] = str(project_root)
    env.pop("GW_CRONS_FILE", None)

    result = subprocess.run(
        [sys.executable, "-m", "gw_admin.cli", "schedule", "validate"],
        capture_output=True,
        text=True,
        env=env,
    )

    assert result.returncode == 0, result.stderr
    assert "new-year" in result.stdout
    assert "disabled" in result.stdout
