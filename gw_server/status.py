"""
Job status aggregation.

Merges concurrent GitHub Actions queries into the two views the gateway
serves:

- the job-scoped view (active runs of the job workflow on `job/*` branches,
  with per-run step progress), used by the chat tool and GET /jobs/status
- the swarm-wide view (one page of all runs plus global running/queued
  counts), used by operators

The job view is scoped to a single workflow file while the swarm view is not
scoped at all; the two serve different callers.

The workflow client is blocking, so each query runs in a worker thread and
independent queries are gathered concurrently.
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from gw_common.exceptions import TransientUpstreamError
from gw_common.models import (
    Job,
    JobStatusView,
    RunStepProgress,
    RunSummary,
    SwarmStatusView,
    WorkflowRun,
    job_branch,
    parse_timestamp,
)
from gw_upstream.github import WorkflowClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

JOB_WORKFLOW = "run-job.yml"
SWARM_PAGE_SIZE = 25
READ_ATTEMPTS = 3
READ_RETRY_DELAY = 1.0


async def retry_read(
    call: Callable[[], T],
    attempts: int = READ_ATTEMPTS,
    delay: float = READ_RETRY_DELAY,
) -> T:
    """
    Run an idempotent blocking read, retrying transient failures.

    Only TransientUpstreamError (timeouts, dropped connections) is retried,
    with a fixed delay between attempts. Never use this for cancel, rerun,
    dispatch or job creation.

    Args:
        call: Zero-argument callable performing the read
        attempts: Maximum number of attempts
        delay: Seconds to wait between attempts

    Returns:
        Whatever the call returns

    Raises:
        TransientUpstreamError: If every attempt failed transiently
        UpstreamError/ConfigurationError: Immediately, without retry
    """
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.to_thread(call)
        except TransientUpstreamError as e:
            if attempt == attempts:
                raise
            logger.warning(
                f"Upstream read attempt {attempt}/{attempts} failed: {e}; "
                f"retrying in {delay}s"
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


def _elapsed_seconds(created_at: str | None, now: datetime) -> int:
    started = parse_timestamp(created_at)
    if started is None:
        return 0
    return round((now - started).total_seconds())


async def _fetch_progress(client: WorkflowClient, run: WorkflowRun) -> RunStepProgress:
    """Best-effort step progress for one run; any failure degrades to empty."""
    try:
        return await asyncio.to_thread(client.get_run_progress, run.run_id)
    except Exception as e:
        # The jobs endpoint fails for runs that have not started yet
        logger.debug(f"Step detail unavailable for run {run.run_id}: {e}")
        return RunStepProgress()


async def get_job_status(
    client: WorkflowClient, job_id: str | None = None, now: datetime | None = None
) -> JobStatusView:
    """
    Build the job-scoped status view.

    Args:
        client: Workflow client for the job repository
        job_id: If given, only the run on branch `job/<job_id>` is reported
        now: Reference time for durations (defaults to the current time)

    Returns:
        JobStatusView whose running/queued counts are derived from the
        filtered job list, never from upstream totals
    """
    now = now or datetime.now(UTC)

    in_progress, queued = await asyncio.gather(
        retry_read(
            functools.partial(client.list_runs, "in_progress", workflow=JOB_WORKFLOW)
        ),
        retry_read(functools.partial(client.list_runs, "queued", workflow=JOB_WORKFLOW)),
    )

    runs = [run for run in in_progress.runs + queued.runs if run.job_id is not None]
    if job_id:
        wanted = job_branch(job_id)
        runs = [run for run in runs if run.branch == wanted]

    progress = await asyncio.gather(*(_fetch_progress(client, run) for run in runs))

    jobs = [
        Job(
            job_id=run.job_id or "",
            branch=run.branch or "",
            status=run.status,
            started_at=run.created_at,
            duration_minutes=round(_elapsed_seconds(run.created_at, now) / 60),
            run_id=run.run_id,
            current_step=steps.current_step,
            steps_completed=steps.steps_completed,
            steps_total=steps.steps_total,
        )
        for run, steps in zip(runs, progress)
    ]

    return JobStatusView(
        jobs=jobs,
        running=sum(1 for job in jobs if job.status == "in_progress"),
        queued=sum(1 for job in jobs if job.status == "queued"),
    )


async def get_swarm_status(
    client: WorkflowClient, page: int = 1, now: datetime | None = None
) -> SwarmStatusView:
    """
    Build the swarm-wide status view for one page of runs.

    The running and queued counts come from two minimal (one item) queries
    whose only purpose is to read the upstream total. Durations are computed
    only for runs that have not completed.
    """
    now = now or datetime.now(UTC)
    page = max(1, page)

    running, queued, all_runs = await asyncio.gather(
        retry_read(functools.partial(client.list_runs, "in_progress", per_page=1)),
        retry_read(functools.partial(client.list_runs, "queued", per_page=1)),
        retry_read(
            functools.partial(
                client.list_runs, None, page=page, per_page=SWARM_PAGE_SIZE
            )
        ),
    )

    return SwarmStatusView(
        runs=[_summarize_run(run, now) for run in all_runs.runs],
        has_more=page * SWARM_PAGE_SIZE < all_runs.total_count,
        running=running.total_count,
        queued=queued.total_count,
    )


def _summarize_run(run: WorkflowRun, now: datetime) -> RunSummary:
    duration = None
    if run.status != "completed":
        duration = _elapsed_seconds(run.created_at, now)
    return RunSummary(
        run_id=run.run_id,
        branch=run.branch,
        status=run.status,
        conclusion=run.conclusion,
        workflow_name=run.workflow_name,
        started_at=run.created_at,
        updated_at=run.updated_at,
        duration_seconds=duration,
        html_url=run.html_url,
    )
