"""Data models for purge attempts and log entries."""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

__all__ = ["Strategy", "Status", "PurgeResult", "PurgeAttempt", "LogEntry", "Summary"]


class Strategy(str, Enum):
    """Which purge mechanism produced a result."""

    CACHE_OBJECT_FLUSH = "cache-object-flush"
    EDGE_FUNCTION_FLUSH = "edge-function-flush"
    CLI_SUBPROCESS = "cli-subprocess"
    OBJECT_CACHE_FLUSH = "object-cache-flush"
    NONE = "none"


class Status(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class PurgeResult:
    """Outcome of a single strategy, or of the whole chain."""

    success: bool
    output: str = ""
    error: str = ""
    strategy: Strategy = Strategy.NONE

    @classmethod
    def ok(cls, output: str, strategy: Strategy) -> "PurgeResult":
        return cls(success=True, output=output, strategy=strategy)

    @classmethod
    def fail(
        cls, error: str, strategy: Strategy = Strategy.NONE, output: str = ""
    ) -> "PurgeResult":
        return cls(success=False, output=output, error=error, strategy=strategy)


@dataclass
class PurgeAttempt:
    """One recorded purge run, owned by the recorder while it executes."""

    triggered_by: str
    started_at: datetime
    strategy_used: Strategy = Strategy.NONE
    outcome: Optional[Status] = None
    detail: str = ""
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is Status.SUCCESS


@dataclass(frozen=True)
class LogEntry:
    """A single entry of the purge log.

    Timestamps are kept as the strings written to the file so that parsing an
    entry back yields exactly what was appended.
    """

    utc_timestamp: str
    local_timestamp: str
    local_timezone_label: str
    status: Status
    triggered_by: str
    execution_time_seconds: float
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Summary:
    """Status summary rendered for the operator notice."""

    schedule_text: str
    log_file: str
    utc_time: Optional[str] = None
    local_time: Optional[str] = None
    timezone: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_last_purge(self) -> bool:
        return self.status is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
