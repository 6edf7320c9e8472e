"""
Standalone entrypoint for running the cron scheduler independently.

This allows schedule entries to fire from a separate process from the
gateway server, e.g. on a host that does not receive webhooks.

Usage:
    python -m gw_scheduler [OPTIONS]
    gw-scheduler [OPTIONS]  (after pip install)

Environment Variables:
    GW_PROJECT_ROOT: Working directory for command entries (default: cwd)
    GW_CRONS_FILE: Schedule file (default: <root>/operating_system/CRONS.json)
    GH_TOKEN, GH_OWNER, GH_REPO: Needed by "agent" entries to create jobs
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any

from gw_server.config import GatewayConfig
from gw_upstream.github import WorkflowClient
from gw_upstream.jobs import create_job

from .loader import load_schedule
from .scheduler import CronScheduler

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Gateway scheduler - fire schedule entries on cron expressions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  GW_PROJECT_ROOT   Working directory for command entries (default: cwd)
  GW_CRONS_FILE     Schedule file (default: <root>/operating_system/CRONS.json)
  GH_TOKEN          GitHub token used by "agent" entries
  GH_OWNER/GH_REPO  Repository that receives job branches

Note: Command-line arguments override environment variables.

Examples:
  # Run with default settings
  gw-scheduler

  # Use a custom schedule file
  gw-scheduler --crons-file /etc/gateway/CRONS.json

  # Enable debug logging
  gw-scheduler --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--crons-file",
        type=str,
        default=None,
        help="Path to the schedule file (default: GW_CRONS_FILE env)",
    )

    parser.add_argument(
        "--project-root",
        type=str,
        default=None,
        help="Working directory for command entries (default: GW_PROJECT_ROOT env or cwd)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args()


def build_config(args: argparse.Namespace) -> GatewayConfig:
    """Apply command-line overrides on top of the environment configuration."""
    env = dict(os.environ)
    if args.project_root:
        env["GW_PROJECT_ROOT"] = args.project_root
    if args.crons_file:
        env["GW_CRONS_FILE"] = args.crons_file
    return GatewayConfig.from_env(env)


async def run_scheduler(args: argparse.Namespace) -> None:
    """
    Load the schedule and run it until SIGINT or SIGTERM.

    Args:
        args: Parsed command-line arguments
    """
    config = build_config(args)

    logger.info("--- Cron Jobs ---")
    logger.info(f"  Schedule file: {config.crons_file}")
    logger.info(f"  Project root: {config.project_root}")

    entries = load_schedule(config.crons_file)
    client = WorkflowClient.from_config(config)

    async def create(description: str) -> dict[str, str]:
        return await asyncio.to_thread(create_job, client, description)

    scheduler = CronScheduler(
        entries, create_job=create, project_root=config.project_root
    )

    shutdown_event = asyncio.Event()

    def signal_handler(sig: Any, _frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await scheduler.start()
        await shutdown_event.wait()
    finally:
        logger.info("Stopping scheduler...")
        await scheduler.stop()


def main() -> int:
    """
    Main entrypoint for the scheduler.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(run_scheduler(args))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
