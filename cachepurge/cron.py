"""Persistent daily events, polled rather than timed.

Events live in SQLite so they survive restarts and are shared between worker
processes. Nothing fires on its own: ``run_due`` must be called regularly,
either from request handling or from a system cron entry running
``cachepurge run-cron``. Events therefore fire at the first poll after their
time, not exactly on it.
"""

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from cachepurge.options import get_connection

__all__ = ["CronBackend", "DAILY"]

logger = logging.getLogger(__name__)

DAILY = 24 * 3600


def _to_epoch(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class CronBackend:
    """Stores recurring events and runs the ones that are due."""

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = db_path
        self._callbacks: Dict[str, Callable[[], Any]] = {}
        self._callbacks_lock = threading.Lock()
        self._ensure_table_exists()

    def _ensure_table_exists(self) -> None:
        try:
            with get_connection(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS cron_events (
                        hook TEXT PRIMARY KEY,
                        next_fire INTEGER NOT NULL,
                        interval INTEGER NOT NULL,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
        except Exception as e:
            logger.error(f"Failed to create cron_events table: {e}")

    def register(self, hook: str, first_fire: datetime, interval: int = DAILY) -> bool:
        """Schedule ``hook`` unless it is already scheduled.

        Returns True if a new event was created.
        """
        try:
            with get_connection(self.db_path) as conn:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO cron_events (hook, next_fire, interval) VALUES (?, ?, ?)",
                    (hook, _to_epoch(first_fire), int(interval)),
                )
                conn.commit()
                return cursor.rowcount == 1
        except Exception as e:
            logger.error(f"Failed to schedule {hook}: {e}")
            return False

    def unregister(self, hook: str) -> bool:
        try:
            with get_connection(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM cron_events WHERE hook = ?", (hook,))
                conn.commit()
                return cursor.rowcount > 0
        except Exception as e:
            logger.error(f"Failed to unschedule {hook}: {e}")
            return False

    def query(self, hook: str) -> Optional[datetime]:
        """Return the next fire time of ``hook``, or None if not scheduled."""
        try:
            with get_connection(self.db_path) as conn:
                row = conn.execute(
                    "SELECT next_fire FROM cron_events WHERE hook = ?", (hook,)
                ).fetchone()
        except Exception as e:
            logger.error(f"Failed to query {hook}: {e}")
            return None
        return _from_epoch(row["next_fire"]) if row else None

    def scheduled(self) -> Dict[str, datetime]:
        """All scheduled hooks and their next fire time."""
        try:
            with get_connection(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT hook, next_fire FROM cron_events ORDER BY next_fire"
                ).fetchall()
        except Exception as e:
            logger.error(f"Failed to list cron events: {e}")
            return {}
        return {row["hook"]: _from_epoch(row["next_fire"]) for row in rows}

    def bind(self, hook: str, callback: Callable[[], Any]) -> None:
        """Attach the callback run when ``hook`` fires in this process."""
        with self._callbacks_lock:
            self._callbacks[hook] = callback

    def _claim(self, conn, hook: str, next_fire: int, interval: int, now: int) -> bool:
        """Move a due event to its next slot; only one poller wins the claim."""
        missed = (now - next_fire) // interval + 1
        new_next = next_fire + missed * interval
        cursor = conn.execute(
            "UPDATE cron_events SET next_fire = ? WHERE hook = ? AND next_fire = ?",
            (new_next, hook, next_fire),
        )
        conn.commit()
        return cursor.rowcount == 1

    def run_due(self, now: Optional[datetime] = None) -> List[str]:
        """Fire every due event once and return the hooks that ran.

        Events missed several times (process down for days) fire once and are
        moved to their next future slot. Callback errors are logged and do not
        stop other events.
        """
        now_ts = _to_epoch(now or datetime.now(timezone.utc))
        claimed: List[str] = []

        try:
            with get_connection(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT hook, next_fire, interval FROM cron_events WHERE next_fire <= ?",
                    (now_ts,),
                ).fetchall()
                for row in rows:
                    if self._claim(conn, row["hook"], row["next_fire"], row["interval"], now_ts):
                        claimed.append(row["hook"])
        except Exception as e:
            logger.error(f"Failed to poll cron events: {e}")
            return []

        for hook in claimed:
            with self._callbacks_lock:
                callback = self._callbacks.get(hook)
            if callback is None:
                logger.warning(f"Cron event {hook} fired with no callback bound")
                continue
            try:
                callback()
            except Exception as e:
                logger.error(f"Cron callback for {hook} failed: {e}")

        return claimed
