"""
Job creation.

A job is started by pushing a `job/<uuid>` branch that carries the job
description; the upstream workflow runner reacts to the new branch.
"""

import logging
import uuid

from gw_common.models import job_branch

from .github import WorkflowClient

logger = logging.getLogger(__name__)

BASE_BRANCH = "main"


def create_job(client: WorkflowClient, description: str) -> dict[str, str]:
    """
    Create a job branch containing the job description.

    Args:
        client: Workflow client for the target repository
        description: Natural-language description of the work

    Returns:
        Dictionary with job_id and branch

    Raises:
        ConfigurationError: If GitHub credentials are missing
        UpstreamError: If any GitHub call fails (nothing is retried)
    """
    job_id = str(uuid.uuid4())
    branch = job_branch(job_id)

    sha = client.get_branch_sha(BASE_BRANCH)
    client.create_branch(branch, sha)
    client.put_file(
        path=f"logs/{job_id}/job.md",
        content=description,
        branch=branch,
        message=f"job: {job_id}",
    )

    logger.info(f"Created job {job_id} on branch {branch}")
    return {"job_id": job_id, "branch": branch}
