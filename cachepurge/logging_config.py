"""Diagnostic logging for the purge service.

Diagnostics are separate from the purge log itself: they go to the console
and to a daily JSONL file, and are where problems with the purge log (missing
directory, permissions) are reported.

Usage:
    from cachepurge.logging_config import setup_logging, log_purge_event

    setup_logging(level=logging.DEBUG)
    log_purge_event("purge_result", {"message": "...", "strategy": "cli-subprocess"})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "ROOT_LOGGER",
    "LOG_DIR",
    "setup_logging",
    "get_logger",
    "log_purge_event",
]

ROOT_LOGGER = "cachepurge"

LOG_DIR = Path(__file__).parent.parent / "logs"

# Attributes every LogRecord has; anything else was passed via ``extra``
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class DiagnosticsFileHandler(logging.Handler):
    """Appends one JSON object per record to ``<prefix>_<UTC date>.jsonl``."""

    def __init__(self, log_dir: Path, prefix: str = ROOT_LOGGER):
        super().__init__()
        log_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir = log_dir
        self.prefix = prefix

    def path_for(self, moment: datetime) -> Path:
        return self.log_dir / f"{self.prefix}_{moment:%Y%m%d}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            payload = {
                "timestamp": created.isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            payload.update(
                (key, value) for key, value in vars(record).items() if key not in _RESERVED
            )
            if record.exc_info:
                payload["exception"] = logging.Formatter().formatException(record.exc_info)

            line = json.dumps(payload, ensure_ascii=False, default=str)
            with open(self.path_for(created), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class LevelColorFormatter(logging.Formatter):
    """Colors the level name when writing to a terminal."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool):
        super().__init__("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
        self.use_color = use_color

    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        color = self.COLORS.get(record.levelno) if self.use_color else None
        if not color:
            return text
        return text.replace(f"[{record.levelname}]", f"[{color}{record.levelname}{self.RESET}]", 1)


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``cachepurge`` logger tree.

    Calling it again replaces the handlers from the previous call.

    Args:
        level: Minimum level for the console (default: INFO)
        log_to_file: Also write JSONL diagnostics, at every enabled level
        log_to_console: Write human-readable lines to stderr
        log_dir: Directory for JSONL files (default: project logs/)
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_to_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(LevelColorFormatter(use_color=sys.stderr.isatty()))
        logger.addHandler(console)

    if log_to_file:
        logger.addHandler(DiagnosticsFileHandler(log_dir or LOG_DIR))

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger under the ``cachepurge`` namespace (``"scheduler"`` -> ``cachepurge.scheduler``)."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_purge_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = ROOT_LOGGER,
) -> None:
    """Emit a structured diagnostic event.

    ``data["message"]`` becomes the log line; every other key is written as a
    field of the JSONL record.

    Args:
        event_type: e.g. 'log_written', 'log_write_failed', 'purge_result'
        data: Event fields
        level: Log level
        logger_name: Logger to use
    """
    fields = {key: value for key, value in data.items() if key != "message"}
    fields["event_type"] = event_type
    get_logger(logger_name).log(level, data.get("message", event_type), extra=fields)
