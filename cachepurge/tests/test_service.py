"""End-to-end tests for the wired purge service."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from cachepurge.config import CRON_HOOK
from cachepurge.models import Status, Strategy
from cachepurge.service import PurgeService


class TestStartup:
    def test_start_registers_every_hour(self, settings, page_cache):
        service = PurgeService.build(settings, page_cache=page_cache)

        scheduled = service.start()

        assert sorted(scheduled) == [10, 11, 12]
        assert sorted(service.cron.scheduled()) == [
            f"{CRON_HOOK}_10", f"{CRON_HOOK}_11", f"{CRON_HOOK}_12",
        ]

    def test_restart_keeps_schedule(self, settings, page_cache):
        first = PurgeService.build(settings, page_cache=page_cache).start()
        second = PurgeService.build(settings, page_cache=page_cache).start()

        assert first == second


class TestScenarios:
    """Whole-system behaviour from the operator's point of view."""

    def test_fresh_install_purges_on_first_request(self, settings, page_cache):
        """No log yet counts as overdue; the next request purges once."""
        service = PurgeService.build(settings, page_cache=page_cache)
        service.start()

        service.on_request()
        service.on_request()

        entries = service.store.tail(10)
        assert len(entries) == 1
        assert entries[0].triggered_by == "overdue-fallback"
        assert entries[0].status is Status.SUCCESS
        assert page_cache.clears == 1
        assert service.notice.render().status == "success"

    def test_scheduled_hours_each_purge(self, settings, page_cache):
        service = PurgeService.build(settings, page_cache=page_cache)
        service.start()

        service.poll_cron(datetime.now(timezone.utc) + timedelta(days=1, minutes=1))

        tags = sorted(e.triggered_by for e in service.store.tail(10))
        assert tags == ["wp-cron-10h-utc", "wp-cron-11h-utc", "wp-cron-12h-utc"]
        assert page_cache.clears == 3

    def test_nothing_available_records_failure(self, settings):
        service = PurgeService.build(settings, cli_context=lambda: False)

        attempt = service.run("manual-cli")

        assert not attempt.succeeded
        entry = service.store.last_entry()
        assert entry.status is Status.FAILURE
        assert entry.error == "CLI not found"

        assert not service.chain.guard.active
        assert service.run("manual-cli").detail == "CLI not found"

    def test_failures_keep_retrying_until_success(self, settings, make_page_cache):
        """A failed overdue purge leaves the system overdue."""
        broken = make_page_cache(result=False)
        service = PurgeService.build(settings, page_cache=broken)

        service.on_request()
        service.on_request()

        assert broken.clears == 2
        assert all(e.status is Status.FAILURE for e in service.store.tail(10))

    def test_cli_context_never_spawns_cli(self, settings):
        flush = MagicMock()
        service = PurgeService.build(
            settings, object_cache_flush=flush, cli_context=lambda: True
        )
        service.chain.cli.runner = MagicMock()

        service.on_request()
        attempt = service.run("manual-cli")

        service.chain.cli.runner.assert_not_called()
        assert attempt.strategy_used is Strategy.OBJECT_CACHE_FLUSH
        # Overdue check is skipped inside the CLI, so only the manual run logged
        assert len(service.store.tail(10)) == 1

    def test_edge_url_enables_http_purge(self, settings):
        settings = replace(settings, edge_purge_url="https://edge.example/purge")
        service = PurgeService.build(settings, cli_context=lambda: False)

        with patch("cachepurge.strategies.requests.post") as post:
            attempt = service.run("manual-cli")

        assert attempt.strategy_used is Strategy.EDGE_FUNCTION_FLUSH
        post.assert_called_once()

    def test_on_request_never_raises(self, settings, page_cache):
        service = PurgeService.build(settings, page_cache=page_cache)
        service.cron.run_due = MagicMock(side_effect=RuntimeError("db locked"))
        service.overdue.check = MagicMock(side_effect=RuntimeError("disk full"))

        service.on_request()

        service.overdue.check.assert_called_once()
