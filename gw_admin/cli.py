"""
Admin CLI for operating the job gateway.

Talks to the CI provider directly with the same credentials the server uses
(GH_TOKEN, GH_OWNER, GH_REPO), so it works without a running server.
"""

import asyncio
import json
import sys
from datetime import UTC, datetime

import click

from gw_common.exceptions import GatewayError
from gw_persistence.sqlite_store import SQLiteConversationStore
from gw_scheduler.loader import load_schedule, validate_cron
from gw_server.auth import generate_api_key
from gw_server.config import GatewayConfig
from gw_server.status import get_job_status, get_swarm_status
from gw_upstream.github import WorkflowClient
from gw_upstream.jobs import create_job


def get_config() -> GatewayConfig:
    """Get the configuration from environment variables."""
    return GatewayConfig.from_env()


def get_client() -> WorkflowClient:
    """Get a workflow client for the configured repository."""
    return WorkflowClient.from_config(get_config())


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


def fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def format_duration(seconds: int | None) -> str:
    """Format a duration in seconds as e.g. "45s", "3m 12s" or "2h 5m"."""
    if seconds is None:
        return "-"
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m"


def time_ago(timestamp: str | None, now: datetime | None = None) -> str:
    """Format an ISO timestamp relative to now, e.g. "5m ago"."""
    if not timestamp:
        return "N/A"
    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return timestamp

    now = now or datetime.now(UTC)
    seconds = int((now - then).total_seconds())
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 30:
        return f"{days}d ago"
    return f"{days // 30}mo ago"


@click.group()
def cli():
    """Gateway Admin - Inspect and control jobs, runs and schedules."""
    pass


@cli.group()
def jobs():
    """Inspect active jobs."""
    pass


@cli.group()
def swarm():
    """Inspect all workflow runs."""
    pass


@cli.group()
def runs():
    """Control workflow runs."""
    pass


@cli.group()
def workflow():
    """Trigger workflows."""
    pass


@cli.group()
def schedule():
    """Check schedule definitions."""
    pass


@cli.group()
def job():
    """Create jobs."""
    pass


@cli.group()
def key():
    """Manage the gateway API key."""
    pass


@cli.group()
def history():
    """Manage stored conversation history (requires GW_DB_PATH)."""
    pass


# ============================================================================
# Status Commands
# ============================================================================


@jobs.command("status")
@click.option("--job-id", help="Only show this job")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def jobs_status(job_id: str | None, json_output: bool):
    """Show running and queued jobs."""
    try:
        view = run_async(get_job_status(get_client(), job_id))
    except GatewayError as e:
        fail(str(e))

    if json_output:
        click.echo(json.dumps(view.to_dict(), indent=2))
        return

    click.echo(f"Running: {view.running}  Queued: {view.queued}")
    if not view.jobs:
        click.echo("No active jobs.")
        return

    click.echo(f"\n{'Job ID':<38} {'Status':<12} {'Duration':<10} {'Step':<30}")
    click.echo("-" * 92)
    for j in view.jobs:
        progress = f"{j.steps_completed}/{j.steps_total}"
        step = f"{progress} {j.current_step or ''}".strip()
        duration = f"{j.duration_minutes}m"
        click.echo(f"{j.job_id:<38} {j.status:<12} {duration:<10} {step:<30}")
    click.echo()


@swarm.command("status")
@click.option("--page", default=1, show_default=True, help="Page number")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def swarm_status(page: int, json_output: bool):
    """Show one page of workflow runs."""
    try:
        view = run_async(get_swarm_status(get_client(), page=max(page, 1)))
    except GatewayError as e:
        fail(str(e))

    if json_output:
        click.echo(json.dumps(view.to_dict(), indent=2))
        return

    click.echo(f"Running: {view.running}  Queued: {view.queued}")
    if not view.runs:
        click.echo("No workflow runs found.")
        return

    click.echo(
        f"\n{'Run ID':<12} {'Workflow':<20} {'Branch':<30} {'Status':<12} "
        f"{'Duration':<10} {'Started':<10}"
    )
    click.echo("-" * 100)
    for r in view.runs:
        status = r.conclusion or r.status
        click.echo(
            f"{r.run_id:<12} {(r.workflow_name or '')[:20]:<20} "
            f"{(r.branch or '')[:30]:<30} {status:<12} "
            f"{format_duration(r.duration_seconds):<10} {time_ago(r.started_at):<10}"
        )
    if view.has_more:
        click.echo(f"\nMore runs available: --page {page + 1}")
    click.echo()


# ============================================================================
# Run Commands
# ============================================================================


@runs.command("cancel")
@click.argument("run_id", type=int)
def runs_cancel(run_id: int):
    """Cancel a workflow run."""
    try:
        get_client().cancel(run_id)
    except GatewayError as e:
        fail(str(e))
    click.echo(f"✓ Run cancelled: {run_id}")


@runs.command("rerun")
@click.argument("run_id", type=int)
@click.option("--failed-only", is_flag=True, help="Only re-run failed jobs")
def runs_rerun(run_id: int, failed_only: bool):
    """Re-run a workflow run."""
    try:
        get_client().rerun(run_id, failed_only=failed_only)
    except GatewayError as e:
        fail(str(e))
    scope = "failed jobs of run" if failed_only else "run"
    click.echo(f"✓ Re-running {scope}: {run_id}")


@workflow.command("dispatch")
@click.argument("workflow_id")
@click.option("--ref", default="main", show_default=True, help="Git ref to run on")
@click.option(
    "--input",
    "inputs",
    multiple=True,
    metavar="KEY=VALUE",
    help="Workflow input (repeatable)",
)
def workflow_dispatch(workflow_id: str, ref: str, inputs: tuple[str, ...]):
    """Trigger a workflow by file name or ID."""
    parsed: dict[str, str] = {}
    for item in inputs:
        name, sep, value = item.partition("=")
        if not sep or not name:
            fail(f"Invalid input (expected KEY=VALUE): {item}")
        parsed[name] = value

    try:
        get_client().dispatch(workflow_id, ref=ref, inputs=parsed)
    except GatewayError as e:
        fail(str(e))
    click.echo(f"✓ Workflow dispatched: {workflow_id} on {ref}")


# ============================================================================
# Job and Schedule Commands
# ============================================================================


@job.command("create")
@click.argument("description")
def job_create(description: str):
    """Create a job from a task description."""
    if not description.strip():
        fail("Description must not be empty")
    try:
        result = create_job(get_client(), description)
    except GatewayError as e:
        fail(str(e))

    click.echo("✓ Job created successfully")
    click.echo(f"  Job ID: {result['job_id']}")
    click.echo(f"  Branch: {result['branch']}")


@schedule.command("validate")
@click.argument("file", required=False, type=click.Path(dir_okay=False))
def schedule_validate(file: str | None):
    """Check every entry of a schedule file (default: GW_CRONS_FILE)."""
    path = file or get_config().crons_file
    try:
        entries = load_schedule(path)
    except GatewayError as e:
        fail(str(e))

    if not entries:
        click.echo(f"No schedule entries in {path}")
        return

    invalid = 0
    for entry in entries:
        if not validate_cron(entry.schedule):
            invalid += 1
            click.echo(f"✗ {entry.name}: invalid schedule {entry.schedule!r}")
        elif not entry.payload:
            invalid += 1
            missing = "command" if entry.type == "command" else "job"
            click.echo(f"✗ {entry.name}: no {missing} configured")
        else:
            state = "enabled" if entry.enabled else "disabled"
            click.echo(f"✓ {entry.name}: {entry.schedule} ({entry.type}, {state})")

    if invalid:
        fail(f"{invalid} of {len(entries)} entries are invalid")


# ============================================================================
# API Key and History Commands
# ============================================================================


@key.command("generate")
def key_generate():
    """Generate a random value for the API_KEY environment variable."""
    click.echo(generate_api_key())


def get_store() -> SQLiteConversationStore:
    db_path = get_config().db_path
    if not db_path:
        fail("GW_DB_PATH is not set; history is only kept in memory")
    return SQLiteConversationStore(db_path)


@history.command("show")
@click.argument("chat_id")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def history_show(chat_id: str, json_output: bool):
    """Show the stored conversation for a chat."""

    async def show():
        store = get_store()
        await store.initialize()
        try:
            return await store.get(chat_id)
        finally:
            await store.close()

    messages = run_async(show())

    if json_output:
        click.echo(json.dumps([m.to_dict() for m in messages], indent=2))
        return
    if not messages:
        click.echo(f"No history for chat {chat_id}.")
        return
    for m in messages:
        content = m.content if isinstance(m.content, str) else json.dumps(m.content)
        click.echo(f"[{m.role}] {content}")


@history.command("clear")
@click.argument("chat_id")
def history_clear(chat_id: str):
    """Delete the stored conversation for a chat."""

    async def clear():
        store = get_store()
        await store.initialize()
        try:
            await store.clear(chat_id)
        finally:
            await store.close()

    run_async(clear())
    click.echo(f"✓ History cleared for chat {chat_id}")


if __name__ == "__main__":
    cli()
