"""Runs one purge and writes its outcome to the purge log."""

import logging
import time
from datetime import datetime, timezone

from cachepurge.chain import PurgeStrategyChain
from cachepurge.log_store import LogStore
from cachepurge.logging_config import log_purge_event
from cachepurge.models import PurgeAttempt, Status

__all__ = ["ExecutionRecorder"]

logger = logging.getLogger(__name__)


class ExecutionRecorder:
    """Times a purge attempt and appends exactly one log entry for it."""

    def __init__(self, chain: PurgeStrategyChain, store: LogStore):
        self.chain = chain
        self.store = store

    def run(self, triggered_by: str = "wp-cron") -> PurgeAttempt:
        """Purge now.

        Args:
            triggered_by: Tag naming what started this run, written to the log

        Returns:
            The finished attempt. Failures are reported here, never raised.
        """
        attempt = PurgeAttempt(triggered_by=triggered_by, started_at=datetime.now(timezone.utc))
        logger.info(f"[Cache Purge] Starting purge, triggered by: {triggered_by}")

        start = time.perf_counter()
        result = self.chain.attempt_purge()
        attempt.duration = time.perf_counter() - start

        attempt.strategy_used = result.strategy
        if result.success:
            attempt.outcome = Status.SUCCESS
            attempt.detail = result.output
            logger.info(
                f"[Cache Purge] SUCCESS: Cache purged in {attempt.duration:.2f} seconds"
            )
        else:
            attempt.outcome = Status.FAILURE
            attempt.detail = result.error
            logger.error(f"[Cache Purge] FAILURE: {result.error}")

        entry = self.store.make_entry(
            status=attempt.outcome,
            triggered_by=triggered_by,
            execution_time=attempt.duration,
            output=result.output,
            error="" if result.success else result.error,
        )
        self.store.append(entry)

        log_purge_event(
            "purge_result",
            {
                "message": f"[Cache Purge] Purge finished: {attempt.outcome.value}",
                "triggered_by": triggered_by,
                "strategy": attempt.strategy_used.value,
                "duration_seconds": round(attempt.duration, 3),
            },
            level=logging.DEBUG,
        )
        return attempt
