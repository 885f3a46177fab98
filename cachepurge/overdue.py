"""Self-healing check for missed purges.

The scheduler can stop firing without anyone noticing (workers restarted,
nobody polling cron). The purge log is the ground truth: if it shows no
success within the threshold, purge now.
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from cachepurge.config import OVERDUE_CHECK_INTERVAL, OVERDUE_THRESHOLD_HOURS, in_cli_context
from cachepurge.log_store import LogStore
from cachepurge.models import PurgeAttempt
from cachepurge.recorder import ExecutionRecorder

__all__ = ["OverdueMonitor", "Throttle", "OVERDUE_TAG"]

logger = logging.getLogger(__name__)

OVERDUE_TAG = "overdue-fallback"


class Throttle:
    """Lets a call through at most once per ``interval`` seconds."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.clock = clock
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def ready(self) -> bool:
        if self.interval <= 0:
            return True
        with self._lock:
            now = self.clock()
            if self._last is not None and now - self._last < self.interval:
                return False
            self._last = now
            return True


class OverdueMonitor:
    """Purges when the last successful purge is too old."""

    def __init__(
        self,
        store: LogStore,
        recorder: ExecutionRecorder,
        threshold_hours: float = OVERDUE_THRESHOLD_HOURS,
        check_interval: float = OVERDUE_CHECK_INTERVAL,
        cli_context: Callable[[], bool] = in_cli_context,
    ):
        self.store = store
        self.recorder = recorder
        self.threshold = timedelta(hours=threshold_hours)
        self.throttle = Throttle(check_interval)
        self.cli_context = cli_context

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """True if there is no success on record or it is older than the threshold."""
        now = now or datetime.now(timezone.utc)
        last_success = self.store.last_success_timestamp()
        if last_success is None:
            return True
        return now - last_success > self.threshold

    def check(self, now: Optional[datetime] = None) -> Optional[PurgeAttempt]:
        """Run the overdue fallback if needed.

        Cheap enough to call on every request: skipped inside the purge CLI,
        throttled, and reads only the end of the log.

        Returns:
            The purge attempt if one was triggered, else None
        """
        if self.cli_context():
            return None
        if not self.throttle.ready():
            return None
        if not self.is_overdue(now):
            return None

        logger.warning("[Cache Purge] Overdue purge detected, triggering now")
        return self.recorder.run(OVERDUE_TAG)
