"""
GitHub Actions client for the job gateway.

Typed access to the workflow-run endpoints the gateway needs: listing runs,
per-run step detail, cancel, rerun and workflow dispatch, plus the small set
of git/contents calls used to create a job branch.

The client never retries. Callers decide retry policy, and only idempotent
reads may be repeated (see gw_server.status.retry_read).
"""

import base64
import logging
from typing import Any

import requests

from gw_common.exceptions import (
    ConfigurationError,
    TransientUpstreamError,
    UpstreamError,
)
from gw_common.models import RunPage, RunStepProgress, WorkflowRun

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
DEFAULT_TIMEOUT = 15.0


class WorkflowClient:
    """
    Client for one repository's GitHub Actions API.

    Credentials are checked when a call is made, not at construction, so a
    gateway with no GitHub settings still starts and serves its other routes.
    """

    def __init__(
        self,
        token: str | None,
        owner: str | None,
        repo: str | None,
        session: requests.Session | None = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.token = token
        self.owner = owner
        self.repo = repo
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Any, session: requests.Session | None = None):
        """Build a client from a GatewayConfig (or anything with gh_* attributes)."""
        return cls(
            token=config.gh_token,
            owner=config.gh_owner,
            repo=config.gh_repo,
            session=session,
        )

    def _repo_path(self) -> str:
        if not self.owner or not self.repo:
            raise ConfigurationError("GH_OWNER and GH_REPO must be set")
        return f"/repos/{self.owner}/{self.repo}"

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        ok_statuses: tuple[int, ...] = (),
    ) -> Any:
        """
        Issue one authenticated request.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            params: Optional query parameters
            json: Optional JSON body
            ok_statuses: Documented success codes for endpoints that answer
                with an empty body (202 cancel, 201 rerun, 204 dispatch)

        Returns:
            Decoded JSON body, or an empty dict when the body is empty

        Raises:
            ConfigurationError: If no token is configured
            TransientUpstreamError: On timeout or connection failure
            UpstreamError: On any other non-success response
        """
        if not self.token:
            raise ConfigurationError("GH_TOKEN must be set")

        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        try:
            response = self.session.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientUpstreamError("github", str(e)) from e

        if response.status_code in ok_statuses:
            return {}
        if not 200 <= response.status_code < 300:
            raise UpstreamError("github", response.status_code, response.text)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("github", response.status_code, response.text) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_runs(
        self,
        status: str | None = None,
        workflow: str | None = None,
        page: int = 1,
        per_page: int = 100,
    ) -> RunPage:
        """
        List workflow runs, optionally filtered by status and workflow file.

        Args:
            status: "queued", "in_progress", "completed" or None for all
            workflow: Workflow file name (e.g. "run-job.yml") to scope to
            page: 1-based page number
            per_page: Page size

        Returns:
            RunPage with the runs on this page and the upstream total count
        """
        params = {"per_page": str(per_page), "page": str(page)}
        if status:
            params["status"] = status

        base = self._repo_path()
        path = (
            f"{base}/actions/workflows/{workflow}/runs"
            if workflow
            else f"{base}/actions/runs"
        )
        data = self._request("GET", path, params=params)
        return RunPage(
            runs=[WorkflowRun.from_api(run) for run in data.get("workflow_runs") or []],
            total_count=data.get("total_count") or 0,
        )

    def list_run_jobs(self, run_id: int) -> list[dict[str, Any]]:
        """Return the jobs (each with its steps) of a workflow run."""
        data = self._request("GET", f"{self._repo_path()}/actions/runs/{run_id}/jobs")
        return data.get("jobs") or []

    def list_run_steps(self, run_id: int) -> list[dict[str, Any]]:
        """Return the steps of the first job of a workflow run."""
        jobs = self.list_run_jobs(run_id)
        if not jobs:
            return []
        return jobs[0].get("steps") or []

    def get_run_progress(self, run_id: int) -> RunStepProgress:
        return RunStepProgress.from_steps(self.list_run_steps(run_id))

    def get_branch_sha(self, branch: str = "main") -> str:
        data = self._request("GET", f"{self._repo_path()}/git/ref/heads/{branch}")
        return data["object"]["sha"]

    # ------------------------------------------------------------------
    # Mutations (never retried)
    # ------------------------------------------------------------------

    def cancel(self, run_id: int) -> dict[str, bool]:
        """Cancel a workflow run. GitHub answers 202 Accepted."""
        self._request(
            "POST",
            f"{self._repo_path()}/actions/runs/{run_id}/cancel",
            ok_statuses=(202,),
        )
        logger.info(f"Cancelled workflow run {run_id}")
        return {"success": True}

    def rerun(self, run_id: int, failed_only: bool = False) -> dict[str, bool]:
        """Re-run a workflow run, either all jobs or only the failed ones."""
        action = "rerun-failed-jobs" if failed_only else "rerun"
        self._request(
            "POST",
            f"{self._repo_path()}/actions/runs/{run_id}/{action}",
            ok_statuses=(201,),
        )
        logger.info(f"Requested {action} for workflow run {run_id}")
        return {"success": True}

    def dispatch(
        self, workflow: str, ref: str = "main", inputs: dict[str, Any] | None = None
    ) -> dict[str, bool]:
        """Trigger a workflow via workflow_dispatch. GitHub answers 204."""
        self._request(
            "POST",
            f"{self._repo_path()}/actions/workflows/{workflow}/dispatches",
            json={"ref": ref, "inputs": inputs or {}},
            ok_statuses=(204,),
        )
        logger.info(f"Dispatched workflow {workflow} on {ref}")
        return {"success": True}

    def create_branch(self, branch: str, sha: str) -> dict[str, Any]:
        return self._request(
            "POST",
            f"{self._repo_path()}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )

    def put_file(
        self, path: str, content: str, branch: str, message: str
    ) -> dict[str, Any]:
        """Create a file on a branch through the contents API."""
        return self._request(
            "PUT",
            f"{self._repo_path()}/contents/{path}",
            json={
                "message": message,
                "content": base64.b64encode(content.encode()).decode(),
                "branch": branch,
            },
        )
