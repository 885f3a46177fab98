"""Process-wide persisted settings (SQLite ``options`` table).

Holds small pieces of state that must survive restarts and be shared by all
worker processes, such as the "notice dismissed" flag.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional, Union

__all__ = ["OptionStore", "get_connection"]

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(db_path: Union[Path, str]) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=10)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


class OptionStore:
    """Key/value store with JSON-encoded values."""

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = db_path
        self._ensure_table_exists()

    def _ensure_table_exists(self) -> None:
        try:
            with get_connection(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS options (
                        name TEXT PRIMARY KEY,
                        value TEXT,
                        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
        except Exception as e:
            logger.error(f"Failed to create options table: {e}")

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        try:
            with get_connection(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM options WHERE name = ?", (name,)
                ).fetchone()
        except Exception as e:
            logger.error(f"Failed to read option {name}: {e}")
            return default

        if row is None or row["value"] is None:
            return default
        try:
            return json.loads(row["value"])
        except (json.JSONDecodeError, TypeError, ValueError):
            return row["value"]

    def set(self, name: str, value: Any) -> bool:
        try:
            with get_connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO options (name, value) VALUES (?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (name, json.dumps(value)),
                )
                conn.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to write option {name}: {e}")
            return False

