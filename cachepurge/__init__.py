"""Scheduled page and edge cache purging with an overdue fallback."""

__version__ = "1.3.0"

# Re-export main components for convenient imports
from cachepurge.chain import PurgeStrategyChain, ReentrancyGuard
from cachepurge.config import Settings
from cachepurge.cron import CronBackend
from cachepurge.log_store import LogStore
from cachepurge.models import LogEntry, PurgeAttempt, PurgeResult, Status, Strategy, Summary
from cachepurge.notice import NoticeSummarizer
from cachepurge.options import OptionStore
from cachepurge.overdue import OverdueMonitor
from cachepurge.recorder import ExecutionRecorder
from cachepurge.scheduler import Scheduler
from cachepurge.service import PurgeService

__all__ = [
    # Version
    "__version__",
    # Config
    "Settings",
    # Models
    "LogEntry",
    "PurgeAttempt",
    "PurgeResult",
    "Status",
    "Strategy",
    "Summary",
    # Components
    "LogStore",
    "PurgeStrategyChain",
    "ReentrancyGuard",
    "ExecutionRecorder",
    "CronBackend",
    "Scheduler",
    "OverdueMonitor",
    "NoticeSummarizer",
    "OptionStore",
    "PurgeService",
]
