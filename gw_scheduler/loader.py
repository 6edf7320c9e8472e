"""
Loading of declarative schedule and trigger definitions.

Both files are JSON arrays of records, read once at load time. There is no
schema versioning; unknown keys are ignored.
"""

import json
import logging
from pathlib import Path
from typing import Any

from croniter import croniter

from gw_common.exceptions import ConfigurationError
from gw_common.models import ScheduleEntry, TriggerEntry

logger = logging.getLogger(__name__)


def validate_cron(expression: str) -> bool:
    """Return True if `expression` is a cron expression croniter accepts."""
    if not expression or not isinstance(expression, str):
        return False
    return croniter.is_valid(expression)


def _load_records(path: str | Path) -> list[dict[str, Any]]:
    path = Path(path)
    if not path.exists():
        logger.info(f"No {path.name} found at {path}")
        return []

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must contain a JSON array")
    return [record for record in data if isinstance(record, dict)]


def load_schedule(path: str | Path) -> list[ScheduleEntry]:
    """
    Load schedule entries from a JSON file.

    Args:
        path: Path to the schedule file (e.g. operating_system/CRONS.json)

    Returns:
        All entries in file order, including disabled ones; a missing file
        yields an empty list

    Raises:
        ConfigurationError: If the file is not a JSON array
    """
    return [ScheduleEntry.from_dict(record) for record in _load_records(path)]


def load_triggers(path: str | Path) -> list[TriggerEntry]:
    """Load trigger definitions from a JSON file (same rules as load_schedule)."""
    return [TriggerEntry.from_dict(record) for record in _load_records(path)]
