"""Wires the purge components together for a host process.

Usage (host application)::

    service = PurgeService.build(settings, page_cache=cache)
    service.start()             # once at startup: register daily events
    service.on_request()        # on every request: poll cron, check overdue
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from cachepurge.chain import PurgeStrategyChain
from cachepurge.config import Settings, in_cli_context
from cachepurge.cron import CronBackend
from cachepurge.log_store import LogStore
from cachepurge.models import PurgeAttempt
from cachepurge.notice import NoticeSummarizer
from cachepurge.options import OptionStore
from cachepurge.overdue import OverdueMonitor, Throttle
from cachepurge.recorder import ExecutionRecorder
from cachepurge.scheduler import Scheduler
from cachepurge.strategies import (
    CacheObjectFlush,
    CliSubprocessPurge,
    EdgeFunctionFlush,
    ObjectCacheFlush,
    make_http_edge_purge,
)

__all__ = ["PurgeService"]

logger = logging.getLogger(__name__)


@dataclass
class PurgeService:
    settings: Settings
    store: LogStore
    chain: PurgeStrategyChain
    recorder: ExecutionRecorder
    options: OptionStore
    cron: CronBackend
    scheduler: Scheduler
    overdue: OverdueMonitor
    notice: NoticeSummarizer
    cron_throttle: Throttle

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        page_cache: Any = None,
        edge_purge: Optional[Callable[[], Any]] = None,
        object_cache_flush: Optional[Callable[[], Any]] = None,
        cli_context: Callable[[], bool] = in_cli_context,
    ) -> "PurgeService":
        """Build the service from settings and the host's cache handles.

        Args:
            settings: Defaults to ``Settings.from_env()``
            page_cache: In-process page cache (anything with flush()/clear())
            edge_purge: Edge cache ``purge_all()``; defaults to an HTTP purge
                when ``EDGE_PURGE_URL`` is configured
            object_cache_flush: Local object cache flush, used inside the CLI
            cli_context: Reports whether this process is the purge CLI
        """
        settings = settings or Settings.from_env()

        if edge_purge is None and settings.edge_purge_url:
            edge_purge = make_http_edge_purge(settings.edge_purge_url, settings.edge_purge_token)

        store = LogStore(settings.log_file, settings.site_timezone)
        chain = PurgeStrategyChain(
            cache_object=CacheObjectFlush(page_cache) if page_cache is not None else None,
            edge_function=EdgeFunctionFlush(edge_purge) if edge_purge is not None else None,
            cli=CliSubprocessPurge(
                site_root=settings.site_root,
                configured_path=settings.cli_path,
                candidates=settings.cli_candidates,
                name=settings.cli_name,
                timeout=settings.cli_timeout,
                success_markers=settings.success_markers,
            ),
            object_cache=(
                ObjectCacheFlush(object_cache_flush) if object_cache_flush is not None else None
            ),
            cli_context=cli_context,
        )
        recorder = ExecutionRecorder(chain, store)
        options = OptionStore(settings.db_path)
        cron = CronBackend(settings.db_path)

        return cls(
            settings=settings,
            store=store,
            chain=chain,
            recorder=recorder,
            options=options,
            cron=cron,
            scheduler=Scheduler(cron, recorder),
            overdue=OverdueMonitor(
                store,
                recorder,
                threshold_hours=settings.overdue_threshold_hours,
                check_interval=settings.overdue_check_interval,
                cli_context=cli_context,
            ),
            notice=NoticeSummarizer(store, options, settings.schedule),
            cron_throttle=Throttle(settings.cron_poll_interval),
        )

    def start(self) -> Dict[int, datetime]:
        """Register the daily events for every configured hour."""
        return self.scheduler.register(self.settings.hours)

    def run(self, triggered_by: str) -> PurgeAttempt:
        return self.recorder.run(triggered_by)

    def poll_cron(self, now: Optional[datetime] = None) -> list[str]:
        """Fire due events, at most once per poll interval."""
        if not self.cron_throttle.ready():
            return []
        return self.cron.run_due(now)

    def on_request(self) -> None:
        """Request hook: poll cron, then check for an overdue purge.

        Never raises into the host's request handling.
        """
        try:
            self.poll_cron()
        except Exception as e:
            logger.error(f"[Cache Purge] Cron poll failed: {e}")
        try:
            self.overdue.check()
        except Exception as e:
            logger.error(f"[Cache Purge] Overdue check failed: {e}")
