"""Operator notice showing the schedule and the last purge."""

import logging
from typing import Iterable, Optional

from cachepurge.config import ADMIN_NOTICE_OPTION
from cachepurge.log_store import LogStore
from cachepurge.models import Status, Summary
from cachepurge.options import OptionStore

__all__ = ["NoticeSummarizer", "format_schedule"]

logger = logging.getLogger(__name__)


def format_schedule(hours: Iterable[int]) -> str:
    """``[10, 11]`` -> ``"10:00 UTC, 11:00 UTC"``"""
    valid = sorted({h for h in hours if isinstance(h, int) and 0 <= h <= 23})
    return ", ".join(f"{hour:02d}:00 UTC" for hour in valid)


class NoticeSummarizer:
    """Builds the notice from the last log entry.

    Once dismissed the notice stays hidden for good; there is no expiry.
    """

    def __init__(self, store: LogStore, options: OptionStore, hours: Iterable[int]):
        self.store = store
        self.options = options
        self.hours = tuple(hours)

    @property
    def dismissed(self) -> bool:
        return bool(self.options.get(ADMIN_NOTICE_OPTION, False))

    def dismiss(self) -> bool:
        logger.info("[Cache Purge] Admin notice dismissed")
        return self.options.set(ADMIN_NOTICE_OPTION, True)

    def render(self) -> Optional[Summary]:
        """Return the notice contents, or None once dismissed."""
        if self.dismissed:
            return None
        return self.summarize()

    def summarize(self) -> Summary:
        """Schedule plus last entry, regardless of dismissal."""
        summary = Summary(
            schedule_text=format_schedule(self.hours),
            log_file=str(self.store.path),
        )

        entry = self.store.last_entry()
        if entry is None:
            return summary

        summary.utc_time = entry.utc_timestamp
        summary.local_time = entry.local_timestamp
        summary.timezone = entry.local_timezone_label
        summary.status = entry.status.value.lower()
        if entry.status is Status.FAILURE and entry.error:
            summary.error = entry.error
        return summary
