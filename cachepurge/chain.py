"""Ordered purge strategies with a reentrancy guard.

Order:
1. Page cache object flush. Its result is final either way.
2. Edge cache function. Failures fall through.
3. Inside the purge CLI: object cache flush, or a recursion failure. The
   subprocess branch is never taken there, since the CLI would load this
   application again and purge again.
4. CLI subprocess.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from cachepurge.config import in_cli_context
from cachepurge.models import PurgeResult
from cachepurge.strategies import (
    CacheObjectFlush,
    CliSubprocessPurge,
    EdgeFunctionFlush,
    ObjectCacheFlush,
)

__all__ = ["ReentrancyGuard", "PurgeStrategyChain", "IN_PROGRESS_ERROR", "RECURSION_ERROR"]

logger = logging.getLogger(__name__)

IN_PROGRESS_ERROR = "Purge already in progress (prevented recursion)"
RECURSION_ERROR = "Running in CLI context, cannot call CLI recursively"


class ReentrancyGuard:
    """Per-process flag that is set while a purge runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Try to take the guard; yields whether it was taken.

        Never blocks. Released on exit, whatever happens inside.
        """
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()


class PurgeStrategyChain:
    """Tries the configured strategies in priority order."""

    def __init__(
        self,
        cache_object: Optional[CacheObjectFlush] = None,
        edge_function: Optional[EdgeFunctionFlush] = None,
        cli: Optional[CliSubprocessPurge] = None,
        object_cache: Optional[ObjectCacheFlush] = None,
        cli_context: Callable[[], bool] = in_cli_context,
    ):
        self.cache_object = cache_object
        self.edge_function = edge_function
        self.cli = cli
        self.object_cache = object_cache
        self.cli_context = cli_context
        self.guard = ReentrancyGuard()

    def attempt_purge(self) -> PurgeResult:
        """Purge using the first strategy that works. Never raises."""
        with self.guard.hold() as acquired:
            if not acquired:
                logger.warning(f"[Cache Purge] {IN_PROGRESS_ERROR}")
                return PurgeResult.fail(IN_PROGRESS_ERROR)
            try:
                return self._run()
            except Exception as e:
                logger.exception("[Cache Purge] Unexpected error in purge chain")
                return PurgeResult.fail(f"Unexpected purge error: {e}")

    def _run(self) -> PurgeResult:
        if self.cache_object is not None and self.cache_object.available():
            return self.cache_object.attempt()

        if self.edge_function is not None and self.edge_function.available():
            result = self.edge_function.attempt()
            if result.success:
                return result
            logger.warning(f"[Cache Purge] {result.error}; falling back")

        if self.cli_context():
            if self.object_cache is not None and self.object_cache.available():
                return self.object_cache.attempt()
            return PurgeResult.fail(RECURSION_ERROR)

        if self.cli is None:
            return PurgeResult.fail("CLI not found")
        return self.cli.attempt()
