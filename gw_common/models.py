"""
Data models for the job gateway.

These models represent the domain objects used throughout the application:
upstream workflow runs, the job views derived from them, conversation history,
and the declarative schedule/trigger definitions. None of them are persisted
by the gateway except chat messages (see gw_common.repository).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

JOB_BRANCH_PREFIX = "job/"


def extract_job_id(branch: str | None) -> str | None:
    """
    Extract a job ID from a branch name.

    Args:
        branch: Branch name such as "job/abc123"

    Returns:
        The part after the "job/" prefix, or None if the branch is not a job branch

    Example:
        >>> extract_job_id("job/abc123")
        'abc123'
        >>> extract_job_id("main") is None
        True
    """
    if not branch or not branch.startswith(JOB_BRANCH_PREFIX):
        return None
    return branch[len(JOB_BRANCH_PREFIX) :]


def job_branch(job_id: str) -> str:
    """Return the branch name that carries the given job."""
    return f"{JOB_BRANCH_PREFIX}{job_id}"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by the GitHub API."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class WorkflowRun:
    """
    Represents one workflow run as reported by the upstream CI system.

    Runs progress through states: queued -> in_progress -> completed
    Completed runs carry a conclusion (success, failure, cancelled, skipped).
    """

    run_id: int
    branch: str | None
    status: str  # "queued", "in_progress" or "completed"
    conclusion: str | None = None
    workflow_name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    html_url: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "WorkflowRun":
        """Create a run from a GitHub `workflow_runs` entry."""
        return cls(
            run_id=data["id"],
            branch=data.get("head_branch"),
            status=data.get("status", ""),
            conclusion=data.get("conclusion"),
            workflow_name=data.get("name"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            html_url=data.get("html_url"),
        )

    @property
    def job_id(self) -> str | None:
        return extract_job_id(self.branch)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "branch": self.branch,
            "status": self.status,
            "conclusion": self.conclusion,
            "workflow_name": self.workflow_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "html_url": self.html_url,
        }


@dataclass
class RunPage:
    """One page of workflow runs plus the upstream total for the query."""

    runs: list[WorkflowRun] = field(default_factory=list)
    total_count: int = 0


@dataclass
class RunStepProgress:
    """Step progress of a run, taken from the first job of the run."""

    current_step: str | None = None
    steps_completed: int = 0
    steps_total: int = 0

    @classmethod
    def from_steps(cls, steps: list[dict[str, Any]]) -> "RunStepProgress":
        current = next(
            (s.get("name") for s in steps if s.get("status") == "in_progress"), None
        )
        return cls(
            current_step=current,
            steps_completed=sum(1 for s in steps if s.get("status") == "completed"),
            steps_total=len(steps),
        )


@dataclass
class Job:
    """
    A unit of autonomous work tracked via a `job/<id>` branch.

    Derived entirely from an upstream workflow run plus its step detail;
    never stored by the gateway.
    """

    job_id: str
    branch: str
    status: str
    started_at: str | None
    duration_minutes: int
    run_id: int
    current_step: str | None = None
    steps_completed: int = 0
    steps_total: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert job to dictionary format (for API responses)."""
        return {
            "job_id": self.job_id,
            "branch": self.branch,
            "status": self.status,
            "started_at": self.started_at,
            "duration_minutes": self.duration_minutes,
            "current_step": self.current_step,
            "steps_completed": self.steps_completed,
            "steps_total": self.steps_total,
            "run_id": self.run_id,
        }


@dataclass
class JobStatusView:
    """Job-scoped status: active jobs plus counts derived from them."""

    jobs: list[Job] = field(default_factory=list)
    running: int = 0
    queued: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "queued": self.queued,
            "running": self.running,
        }


@dataclass
class RunSummary:
    """One row of the swarm-wide view."""

    run_id: int
    branch: str | None
    status: str
    conclusion: str | None
    workflow_name: str | None
    started_at: str | None
    updated_at: str | None
    duration_seconds: int | None  # None for completed runs
    html_url: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "branch": self.branch,
            "status": self.status,
            "conclusion": self.conclusion,
            "workflow_name": self.workflow_name,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "duration_seconds": self.duration_seconds,
            "html_url": self.html_url,
        }


@dataclass
class SwarmStatusView:
    """Swarm-wide status: one page of runs plus global running/queued counts."""

    runs: list[RunSummary] = field(default_factory=list)
    has_more: bool = False
    running: int = 0
    queued: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs": [run.to_dict() for run in self.runs],
            "hasMore": self.has_more,
            "counts": {"running": self.running, "queued": self.queued},
        }


@dataclass
class ChatMessage:
    """
    One entry of a conversation history.

    Content is plain text for ordinary turns, or a list of content blocks
    when the entry records a tool request or tool result.
    """

    role: str  # "user" or "assistant"
    content: str | list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(role=data["role"], content=data["content"])


@dataclass
class ScheduleEntry:
    """
    A recurring action loaded from the schedule file.

    `type` is "agent" (create a job from `job`) or "command" (run `command`
    in the project root). The `enabled` flag is only read at load time.
    """

    name: str
    schedule: str  # cron expression
    type: str = "agent"
    job: str | None = None
    command: str | None = None
    enabled: bool = True

    @property
    def payload(self) -> str | None:
        return self.command if self.type == "command" else self.job

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleEntry":
        return cls(
            name=data.get("name", ""),
            schedule=data.get("schedule", ""),
            type=data.get("type") or "agent",
            job=data.get("job"),
            command=data.get("command"),
            enabled=data.get("enabled") is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "schedule": self.schedule,
            "type": self.type,
            "enabled": self.enabled,
        }
        if self.job is not None:
            result["job"] = self.job
        if self.command is not None:
            result["command"] = self.command
        return result


@dataclass
class TriggerEntry:
    """A webhook-path trigger definition, exposed read-only with the schedule."""

    name: str
    watch_path: str
    actions: list[dict[str, Any]] = field(default_factory=list)
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerEntry":
        return cls(
            name=data.get("name", ""),
            watch_path=data.get("watch_path", ""),
            actions=list(data.get("actions") or []),
            enabled=data.get("enabled") is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "watch_path": self.watch_path,
            "actions": self.actions,
            "enabled": self.enabled,
        }


@dataclass
class Notification:
    """An outbound chat message. Has no identity beyond the send itself."""

    chat_id: str
    text: str
