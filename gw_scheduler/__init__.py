"""
Gateway scheduler module.

This module loads the declarative schedule and trigger definitions and runs
the cron scheduler. The scheduler is started by the gateway server, and can
also run as a separate process (python -m gw_scheduler).
"""

from .loader import load_schedule, load_triggers, validate_cron
from .scheduler import CronScheduler

__all__ = ["CronScheduler", "load_schedule", "load_triggers", "validate_cron"]
