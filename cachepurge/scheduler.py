"""Registers one daily purge event per configured UTC hour."""

import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Dict, Iterable, Optional

from cachepurge.config import CRON_HOOK
from cachepurge.cron import DAILY, CronBackend
from cachepurge.recorder import ExecutionRecorder

__all__ = ["Scheduler", "next_occurrence"]

logger = logging.getLogger(__name__)


def next_occurrence(hour: int, now: datetime) -> datetime:
    """Next ``hour``:00:00 UTC strictly after ``now``."""
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target


def _valid_hour(hour) -> bool:
    return isinstance(hour, int) and not isinstance(hour, bool) and 0 <= hour <= 23


class Scheduler:
    """Maps each hour to its own recurring event ``<hook>_<hour>``.

    Hours are independent jobs rather than one job firing several times, so
    adding or removing an hour never disturbs the others.
    """

    def __init__(self, backend: CronBackend, recorder: ExecutionRecorder, hook: str = CRON_HOOK):
        self.backend = backend
        self.recorder = recorder
        self.hook = hook

    def hook_for(self, hour: int) -> str:
        return f"{self.hook}_{hour}"

    @staticmethod
    def tag_for(hour: int) -> str:
        return f"wp-cron-{hour}h-utc"

    def register(self, hours: Iterable, now: Optional[datetime] = None) -> Dict[int, datetime]:
        """Schedule every valid hour that is not already scheduled.

        Safe to call on every startup: existing events keep their next fire
        time. Invalid hours are reported and skipped.

        Returns:
            Next fire time for each valid hour
        """
        now = now or datetime.now(timezone.utc)

        # Events from before hours were split into separate hooks
        if self.backend.query(self.hook) is not None:
            self.backend.unregister(self.hook)

        scheduled: Dict[int, datetime] = {}
        for hour in hours:
            if not _valid_hour(hour):
                logger.warning(f"[Cache Purge] Invalid hour in purge schedule: {hour!r}")
                continue
            if hour in scheduled:
                continue

            hook = self.hook_for(hour)
            next_fire = self.backend.query(hook)
            if next_fire is None:
                target = next_occurrence(hour, now)
                self.backend.register(hook, target, DAILY)
                # A concurrent worker may have won the insert; trust what is stored
                next_fire = self.backend.query(hook)
                if next_fire is None:
                    logger.warning(f"[Cache Purge] Could not schedule cron event for hour {hour} UTC")
                    continue
                logger.info(
                    f"[Cache Purge] Cron event scheduled for hour {hour} UTC: "
                    f"{next_fire:%Y-%m-%d %H:%M:%S} UTC"
                )

            self.backend.bind(hook, partial(self.recorder.run, self.tag_for(hour)))
            scheduled[hour] = next_fire

        return scheduled
