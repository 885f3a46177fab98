"""Append-only purge log.

The log is a plain UTF-8 text file meant to be read by people. It is also the
only record of when the cache was last purged successfully, so everything
that needs that answer (overdue detection, the operator notice) reads it back
through this module.

Entry format::

    [UTC: 2026-10-19 10:00:02 | WP: 2026-10-19 06:00:02 (America/New_York)] STATUS: SUCCESS | TRIGGERED_BY: wp-cron-10h-utc | EXECUTION_TIME: 0.41s
    OUTPUT: Success: Edge cache purged.
    --------------------------------------------------------------------------------
"""

import fcntl
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cachepurge.config import LOG_SEPARATOR
from cachepurge.logging_config import log_purge_event
from cachepurge.models import LogEntry, Status

__all__ = ["LogStore", "resolve_log_path", "format_entry", "parse_entry", "UTC_FORMAT"]

logger = logging.getLogger(__name__)

UTC_FORMAT = "%Y-%m-%d %H:%M:%S"

_DIR_MODE = 0o755
_FILE_MODE = 0o644

# Tolerant: later fields are optional so hand-edited or truncated headers still parse
_HEADER_PATTERN = re.compile(
    r"\[UTC:\s*(?P<utc>.*?)\s*\|\s*WP:\s*(?P<local>.*?)\s*\((?P<tz>.*?)\)\]"
    r"\s*STATUS:\s*(?P<status>\w+)"
    r"(?:\s*\|\s*TRIGGERED_BY:\s*(?P<triggered_by>.*?))?"
    r"(?:\s*\|\s*EXECUTION_TIME:\s*(?P<execution_time>[\d.]+)s)?"
    r"\s*$"
)

_OUTPUT_PREFIX = "OUTPUT:"
_ERROR_PREFIX = "ERROR:"


def resolve_log_path(path: str) -> Path:
    """Expand a leading ``~`` to the current user's home directory."""
    return Path(os.path.expanduser(path))


def _fold(text: Optional[str]) -> str:
    """Trim text and fold it onto one line."""
    if not text:
        return ""
    lines = [line.strip() for line in str(text).strip().splitlines()]
    return " / ".join(line for line in lines if line)


def _is_separator(line: str) -> bool:
    return line.startswith("----")


def format_entry(entry: LogEntry) -> str:
    """Render an entry exactly as it is written to the log file.

    Output and error are lossy: each is trimmed, blank lines are dropped and
    the remaining lines are joined with ``" / "``, so a multi-line CLI output
    reads back as a single line.
    """
    text = (
        f"[UTC: {entry.utc_timestamp} | WP: {entry.local_timestamp} "
        f"({entry.local_timezone_label})] STATUS: {entry.status.value} | "
        f"TRIGGERED_BY: {entry.triggered_by} | "
        f"EXECUTION_TIME: {entry.execution_time_seconds:.2f}s\n"
    )

    output = _fold(entry.output)
    if output:
        text += f"{_OUTPUT_PREFIX} {output}\n"

    error = _fold(entry.error)
    if error:
        text += f"{_ERROR_PREFIX} {error}\n"

    return text + LOG_SEPARATOR + "\n"


def parse_entry(lines: List[str]) -> Optional[LogEntry]:
    """Parse the lines of one entry (separator excluded).

    Returns None if no header line is found.
    """
    header = None
    output = None
    error = None

    for line in lines:
        match = _HEADER_PATTERN.search(line)
        if match:
            header = match
            continue
        if line.startswith(_OUTPUT_PREFIX):
            output = line[len(_OUTPUT_PREFIX):].strip()
        elif line.startswith(_ERROR_PREFIX):
            error = line[len(_ERROR_PREFIX):].strip()

    if header is None:
        return None

    try:
        status = Status(header.group("status").upper())
    except ValueError:
        return None

    try:
        execution_time = float(header.group("execution_time") or 0.0)
    except ValueError:
        execution_time = 0.0

    return LogEntry(
        utc_timestamp=header.group("utc"),
        local_timestamp=header.group("local"),
        local_timezone_label=header.group("tz"),
        status=status,
        triggered_by=(header.group("triggered_by") or "").strip(),
        execution_time_seconds=execution_time,
        output=output or None,
        error=error or None,
    )


def _stat_key(st: os.stat_result) -> Tuple[int, int]:
    return st.st_size, st.st_mtime_ns


def _parse_utc(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value.strip(), UTC_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class LogStore:
    """Reads and appends entries of the purge log file."""

    def __init__(self, path: str, site_timezone: str = "UTC", chunk_size: int = 8192):
        self.raw_path = path
        self.chunk_size = chunk_size
        self.tz, self.tz_label = self._load_timezone(site_timezone)

        # Cached last success, valid only while the file is unchanged
        self._last_success: Optional[datetime] = None
        self._cached_stat: Optional[Tuple[int, int]] = None

    @staticmethod
    def _load_timezone(name: str):
        try:
            return ZoneInfo(name), name
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"[Cache Purge] Unknown timezone '{name}', using UTC")
            return timezone.utc, "UTC"

    @property
    def path(self) -> Path:
        return resolve_log_path(self.raw_path)

    def make_entry(
        self,
        status: Status,
        triggered_by: str,
        execution_time: float,
        output: str = "",
        error: str = "",
        now: Optional[datetime] = None,
    ) -> LogEntry:
        """Build an entry stamped with UTC and site-local time."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        return LogEntry(
            utc_timestamp=now.astimezone(timezone.utc).strftime(UTC_FORMAT),
            local_timestamp=now.astimezone(self.tz).strftime(UTC_FORMAT),
            local_timezone_label=self.tz_label,
            status=status,
            triggered_by=triggered_by,
            execution_time_seconds=execution_time,
            output=_fold(output) or None,
            error=_fold(error) or None,
        )

    # ---------- WRITE ----------

    def _diagnose(self, message: str) -> None:
        log_purge_event(
            "log_write_failed",
            {"message": f"[Cache Purge] {message}", "log_file": str(self.path)},
            level=logging.ERROR,
        )

    def _ensure_writable(self) -> bool:
        """Create the log directory and file if needed and check permissions."""
        log_file = self.path
        log_dir = log_file.parent

        if not log_dir.exists():
            try:
                log_dir.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
            except OSError as e:
                self._diagnose(f"Failed to create log directory: {log_dir} - {e}")
                return False

        if not os.access(log_dir, os.W_OK | os.X_OK):
            self._diagnose(f"Log directory is not writable: {log_dir} - Permission denied")
            return False

        if not log_file.exists():
            try:
                log_file.touch(mode=_FILE_MODE)
                os.chmod(log_file, _FILE_MODE)
            except OSError as e:
                self._diagnose(f"Failed to create log file: {log_file} - {e}")
                return False

        if not os.access(log_file, os.W_OK):
            self._diagnose(f"Log file is not writable: {log_file} - Permission denied")
            return False

        return True

    def append(self, entry: LogEntry) -> bool:
        """Append an entry under an exclusive lock.

        Never raises; returns False and reports a diagnostic if the entry
        could not be written.
        """
        if not self._ensure_writable():
            return False

        text = format_entry(entry)
        log_file = self.path
        try:
            with open(log_file, "a", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    before = _stat_key(os.fstat(f.fileno()))
                    f.write(text)
                    f.flush()
                    after = _stat_key(os.fstat(f.fileno()))
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            self._diagnose(f"Failed to write to log file: {log_file} - {e}")
            return False

        self._after_append(entry, before, after)
        log_purge_event(
            "log_written",
            {
                "message": (
                    f"[Cache Purge] Event logged: Status={entry.status.value}, "
                    f"ExecutionTime={entry.execution_time_seconds:.2f}s, "
                    f"TriggeredBy={entry.triggered_by}"
                ),
                "status": entry.status.value,
                "triggered_by": entry.triggered_by,
            },
        )
        return True

    def _after_append(
        self, entry: LogEntry, before: Tuple[int, int], after: Tuple[int, int]
    ) -> None:
        """Keep the cached last success current with our own write.

        ``before``/``after`` are taken under the lock, so they bracket exactly
        our entry and nothing another process wrote.
        """
        if entry.status is Status.SUCCESS:
            self._last_success = _parse_utc(entry.utc_timestamp)
            self._cached_stat = after
        elif self._cached_stat == before:
            self._cached_stat = after
        else:
            self._cached_stat = None

    # ---------- READ ----------

    def _stat(self) -> Optional[Tuple[int, int]]:
        try:
            return _stat_key(self.path.stat())
        except OSError:
            return None

    def _iter_lines_reversed(self) -> Iterator[str]:
        """Yield non-empty lines from the end of the file backwards.

        Reads in fixed-size blocks so a check near the end of a large log
        never loads the whole file.
        """
        try:
            f = open(self.path, "rb")
        except OSError:
            return

        with f:
            f.seek(0, os.SEEK_END)
            position = f.tell()
            remainder = b""
            while position > 0:
                read_size = min(self.chunk_size, position)
                position -= read_size
                f.seek(position)
                block = f.read(read_size) + remainder
                lines = block.split(b"\n")
                remainder = lines.pop(0)
                for raw in reversed(lines):
                    line = raw.decode("utf-8", errors="replace").rstrip("\r")
                    if line.strip():
                        yield line
            if remainder.strip():
                yield remainder.decode("utf-8", errors="replace").rstrip("\r")

    def _iter_entry_blocks(self) -> Iterator[List[str]]:
        """Yield the lines of each entry, newest entry first."""
        block: List[str] = []
        for line in self._iter_lines_reversed():
            if _is_separator(line):
                if block:
                    yield list(reversed(block))
                    block = []
                continue
            block.append(line)
        if block:
            yield list(reversed(block))

    def last_entry(self) -> Optional[LogEntry]:
        """Return the most recent entry, or None if there is none to parse."""
        for block in self._iter_entry_blocks():
            return parse_entry(block)
        return None

    def tail(self, limit: int = 10) -> List[LogEntry]:
        """Return up to ``limit`` most recent entries, oldest first."""
        entries: List[LogEntry] = []
        if limit <= 0:
            return entries
        for block in self._iter_entry_blocks():
            entry = parse_entry(block)
            if entry is not None:
                entries.append(entry)
            if len(entries) >= limit:
                break
        entries.reverse()
        return entries

    def last_success_timestamp(self) -> Optional[datetime]:
        """Return the UTC time of the most recent SUCCESS entry."""
        stat = self._stat()
        if stat is None:
            self._last_success, self._cached_stat = None, None
            return None
        if self._cached_stat == stat:
            return self._last_success

        found = None
        for line in self._iter_lines_reversed():
            match = _HEADER_PATTERN.search(line)
            if match and match.group("status").upper() == Status.SUCCESS.value:
                found = _parse_utc(match.group("utc"))
                if found is not None:
                    break

        self._last_success, self._cached_stat = found, stat
        return found
