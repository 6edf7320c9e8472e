"""
Cron scheduler for recurring gateway actions.

Each enabled schedule entry with a valid cron expression gets its own
asyncio timer task. When a timer fires, the entry runs in a separate task:

- "command" entries run a shell command in the project root and log its output
- "agent" entries create a job from the configured description

Firings are not serialized. If a firing is still running when the next tick
arrives, both run concurrently; an entry that needs mutual exclusion must
add its own lock. Failures are logged per entry and never stop future
firings or other entries.

The `enabled` flag is only read by start(); changing a definition file has
no effect on a running scheduler.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from croniter import croniter

from gw_common.models import ScheduleEntry

from .loader import validate_cron

logger = logging.getLogger(__name__)

CreateJob = Callable[[str], Awaitable[dict[str, Any]]]


def local_now() -> datetime:
    return datetime.now().astimezone()


class CronScheduler:
    """
    Scheduler that fires schedule entries on their cron expressions.

    The scheduler only owns its timers; job creation is injected so the
    server and the standalone entry point can share the same code path.
    """

    def __init__(
        self,
        entries: list[ScheduleEntry],
        create_job: CreateJob,
        project_root: str | Path = ".",
        clock: Callable[[], datetime] = local_now,
    ):
        """
        Initialize the scheduler.

        Args:
            entries: Schedule entries as loaded from the definition file
            create_job: Async callable creating a job from a description
            project_root: Working directory for command entries
            clock: Returns the current (timezone-aware) time
        """
        self.entries = entries
        self.create_job = create_job
        self.project_root = Path(project_root)
        self.clock = clock

        self.registered: list[ScheduleEntry] = []
        self._timers: list[asyncio.Task] = []
        self._firings: set[asyncio.Task] = set()
        self._running = False

    async def start(self) -> list[ScheduleEntry]:
        """
        Register a timer for every enabled entry with a valid expression.

        Returns:
            The entries that were registered
        """
        if self._running:
            logger.warning("Scheduler already running")
            return self.registered

        self._running = True
        for entry in self.entries:
            if not entry.enabled:
                continue
            if not validate_cron(entry.schedule):
                logger.error(f'Invalid schedule for "{entry.name}": {entry.schedule}')
                continue
            self._timers.append(
                asyncio.create_task(self._timer(entry), name=f"cron:{entry.name}")
            )
            self.registered.append(entry)

        if not self.registered:
            logger.info("No active cron jobs")
        for entry in self.registered:
            logger.info(f"  {entry.name}: {entry.schedule} ({entry.type})")

        return self.registered

    async def stop(self) -> None:
        """Cancel all timers and any firing still in progress."""
        if not self._running:
            return

        self._running = False
        tasks = self._timers + list(self._firings)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._timers.clear()
        self._firings.clear()
        self.registered.clear()
        logger.info("Scheduler stopped")

    async def _timer(self, entry: ScheduleEntry) -> None:
        schedule = croniter(entry.schedule, self.clock())
        while True:
            fire_at = schedule.get_next(datetime)
            delay = (fire_at - self.clock()).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            self.fire(entry)

    def fire(self, entry: ScheduleEntry) -> asyncio.Task:
        """Start one firing of an entry without waiting for it."""
        task = asyncio.create_task(self.run_entry(entry))
        self._firings.add(task)
        task.add_done_callback(self._firings.discard)
        return task

    async def run_entry(self, entry: ScheduleEntry) -> None:
        """Execute an entry once, logging the outcome. Never raises."""
        try:
            if not entry.payload:
                missing = "command" if entry.type == "command" else "job"
                raise ValueError(f"no {missing} configured")

            if entry.type == "command":
                output = await self._run_command(entry.payload)
                logger.info(f"[CRON] {entry.name}: {output or 'ran'}")
            else:
                result = await self.create_job(entry.payload)
                logger.info(f"[CRON] {entry.name}: job {result.get('job_id')}")
            logger.info(f"[CRON] {entry.name}: completed!")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[CRON] {entry.name}: error - {e}")

    async def _run_command(self, command: str) -> str:
        """
        Run a shell command in the project root.

        Returns:
            Trimmed stdout, or stderr if stdout is empty

        Raises:
            RuntimeError: If the command exits with a non-zero status
        """
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=self.project_root,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        out = stdout.decode(errors="replace").strip()
        err = stderr.decode(errors="replace").strip()

        if process.returncode != 0:
            raise RuntimeError(
                f"command exited with {process.returncode}: {err or out}"
            )
        return out or err
