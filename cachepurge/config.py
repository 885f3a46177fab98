"""Configuration and constants for the cache purge service.

Values come from the environment (optionally a ``.env`` file at the project
root). ``Settings.from_env()`` takes a snapshot that the service is built from,
so a running process never sees its schedule change underneath it.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple

from dotenv import load_dotenv

__all__ = [
    "CRON_HOOK",
    "LOG_SEPARATOR",
    "ADMIN_NOTICE_OPTION",
    "DEFAULT_PURGE_HOURS",
    "DEFAULT_LOG_FILE",
    "DEFAULT_DB_PATH",
    "DEFAULT_CLI_CANDIDATES",
    "DEFAULT_SUCCESS_MARKERS",
    "OVERDUE_THRESHOLD_HOURS",
    "CLI_CONTEXT_ENV_VARS",
    "Settings",
    "parse_hours",
    "in_cli_context",
]

_PROJECT_ROOT = Path(__file__).parent.parent

load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

# Base hook name; each configured hour gets its own "<hook>_<hour>" event
CRON_HOOK = "daily_cache_purge_event"

# Marks the end of every entry in the purge log
LOG_SEPARATOR = "-" * 80

# Option name for the one-way "notice dismissed" flag
ADMIN_NOTICE_OPTION = "cache_purge_admin_notice_dismissed"

# 10:00 UTC = 05:00 EST / 03:00 MST
# 11:00 UTC = 06:00 EST / 04:00 MST
# 12:00 UTC = 07:00 EST / 05:00 MST
DEFAULT_PURGE_HOURS: Tuple[int, ...] = (10, 11, 12)

DEFAULT_LOG_FILE = "~/htdocs/cache-purge-log.txt"
DEFAULT_DB_PATH = str(_PROJECT_ROOT / "data" / "cachepurge.db")

# Searched in order when no explicit CLI path is configured
DEFAULT_CLI_CANDIDATES: Tuple[str, ...] = (
    "/usr/local/bin/wp",
    "/usr/bin/wp",
    "/opt/wp-cli/wp",
)
DEFAULT_CLI_NAME = "wp"
DEFAULT_CLI_TIMEOUT = 120.0

# Case-insensitive substrings in CLI output that count as a successful purge
DEFAULT_SUCCESS_MARKERS: Tuple[str, ...] = ("success", "purged")

# A purge older than this triggers the overdue fallback
OVERDUE_THRESHOLD_HOURS = 25.0

# Minimum seconds between two overdue checks in one process
OVERDUE_CHECK_INTERVAL = 60.0

# Minimum seconds between two cron polls in one process
CRON_POLL_INTERVAL = 30.0

# Any of these set to a truthy value means we are running inside the purge CLI
CLI_CONTEXT_ENV_VARS: Tuple[str, ...] = ("PURGE_CLI_CONTEXT", "WP_CLI")


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    """Read a number from the environment, keeping ``default`` if it is malformed."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Cache Purge] Invalid {name}={raw!r}, using {default:g}")
        return default


def _split_csv(raw: str) -> list[str]:
    """Split a comma-separated string, trim whitespace, drop empties"""
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_hours(raw: Optional[str]) -> Tuple[int, ...]:
    """Parse a ``PURGE_HOURS`` value like ``"10, 11,12"``.

    Values that are not integers are reported and dropped here; range checking
    is left to the scheduler so out-of-range hours are reported where they are
    used.
    """
    if raw is None or not raw.strip():
        return DEFAULT_PURGE_HOURS

    hours = []
    for part in _split_csv(raw):
        try:
            hours.append(int(part))
        except ValueError:
            logger.warning(f"[Cache Purge] Invalid hour in purge schedule: {part!r}")
            continue
    return tuple(hours)


def in_cli_context() -> bool:
    """Return True when this process is an instance of the purge CLI."""
    return any(_env_bool(name) for name in CLI_CONTEXT_ENV_VARS)


@dataclass(frozen=True)
class Settings:
    """Snapshot of all purge settings."""

    hours: Tuple[int, ...] = DEFAULT_PURGE_HOURS
    log_file: str = DEFAULT_LOG_FILE
    db_path: str = DEFAULT_DB_PATH
    site_root: str = str(_PROJECT_ROOT)
    site_timezone: str = "UTC"

    cli_path: Optional[str] = None
    cli_name: str = DEFAULT_CLI_NAME
    cli_candidates: Tuple[str, ...] = DEFAULT_CLI_CANDIDATES
    cli_timeout: float = DEFAULT_CLI_TIMEOUT
    success_markers: Tuple[str, ...] = DEFAULT_SUCCESS_MARKERS

    overdue_threshold_hours: float = OVERDUE_THRESHOLD_HOURS
    overdue_check_interval: float = OVERDUE_CHECK_INTERVAL
    cron_poll_interval: float = CRON_POLL_INTERVAL

    edge_purge_url: Optional[str] = None
    edge_purge_token: Optional[str] = field(default=None, repr=False)

    @property
    def schedule(self) -> FrozenSet[int]:
        """Configured hours with duplicates collapsed."""
        return frozenset(self.hours)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        markers = os.getenv("PURGE_SUCCESS_MARKERS")
        return cls(
            hours=parse_hours(os.getenv("PURGE_HOURS")),
            log_file=os.getenv("PURGE_LOG_FILE", DEFAULT_LOG_FILE),
            db_path=os.getenv("PURGE_DB_PATH", DEFAULT_DB_PATH),
            site_root=os.getenv("PURGE_SITE_ROOT", str(_PROJECT_ROOT)),
            site_timezone=os.getenv("PURGE_SITE_TIMEZONE", "UTC"),
            cli_path=os.getenv("PURGE_CLI_PATH") or None,
            cli_name=os.getenv("PURGE_CLI_NAME", DEFAULT_CLI_NAME),
            cli_timeout=_env_float("PURGE_CLI_TIMEOUT", DEFAULT_CLI_TIMEOUT),
            success_markers=(
                tuple(m.lower() for m in _split_csv(markers))
                if markers
                else DEFAULT_SUCCESS_MARKERS
            ),
            overdue_threshold_hours=_env_float("OVERDUE_THRESHOLD_HOURS", OVERDUE_THRESHOLD_HOURS),
            overdue_check_interval=_env_float("OVERDUE_CHECK_INTERVAL", OVERDUE_CHECK_INTERVAL),
            cron_poll_interval=_env_float("CRON_POLL_INTERVAL", CRON_POLL_INTERVAL),
            edge_purge_url=os.getenv("EDGE_PURGE_URL") or None,
            edge_purge_token=os.getenv("EDGE_PURGE_TOKEN") or None,
        )
