"""Tests for per-hour daily purge events."""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from cachepurge.config import CRON_HOOK
from cachepurge.cron import CronBackend
from cachepurge.recorder import ExecutionRecorder
from cachepurge.scheduler import Scheduler, next_occurrence

MORNING = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def backend(settings):
    return CronBackend(settings.db_path)


@pytest.fixture
def recorder():
    return MagicMock(spec=ExecutionRecorder)


@pytest.fixture
def scheduler(backend, recorder):
    return Scheduler(backend, recorder)


class TestNextOccurrence:
    def test_later_today(self):
        assert next_occurrence(10, MORNING) == datetime(2026, 10, 19, 10, tzinfo=timezone.utc)

    def test_already_passed(self):
        assert next_occurrence(9, MORNING) == datetime(2026, 10, 20, 9, tzinfo=timezone.utc)

    def test_exactly_now_is_tomorrow(self):
        """Strictly after now, so a trigger never lands in the present."""
        now = datetime(2026, 10, 19, 10, tzinfo=timezone.utc)
        assert next_occurrence(10, now) == now + timedelta(days=1)

    def test_converts_other_timezones(self):
        eastern = timezone(timedelta(hours=-4))
        now = datetime(2026, 10, 19, 5, 30, tzinfo=eastern)  # 09:30 UTC
        assert next_occurrence(10, now) == datetime(2026, 10, 19, 10, tzinfo=timezone.utc)


class TestRegister:
    """Test registering the schedule."""

    def test_one_event_per_hour(self, scheduler, backend):
        scheduled = scheduler.register([10, 11, 12], now=MORNING)

        assert sorted(scheduled) == [10, 11, 12]
        assert backend.scheduled() == {
            f"{CRON_HOOK}_10": datetime(2026, 10, 19, 10, tzinfo=timezone.utc),
            f"{CRON_HOOK}_11": datetime(2026, 10, 19, 11, tzinfo=timezone.utc),
            f"{CRON_HOOK}_12": datetime(2026, 10, 19, 12, tzinfo=timezone.utc),
        }

    def test_idempotent(self, scheduler, backend):
        """Re-registering keeps existing next fire times."""
        first = scheduler.register([10, 11, 12], now=MORNING)
        second = scheduler.register([10, 11, 12], now=MORNING + timedelta(hours=3))

        assert first == second
        assert len(backend.scheduled()) == 3

    def test_invalid_hours_skipped(self, scheduler, backend):
        scheduled = scheduler.register([10, 24, -1, "11", True, 10], now=MORNING)

        assert list(scheduled) == [10]
        assert list(backend.scheduled()) == [f"{CRON_HOOK}_10"]

    def test_failed_registration_left_out(self, scheduler, backend, monkeypatch, caplog):
        """An hour the backend could not store is reported, not returned."""
        real_register = backend.register
        monkeypatch.setattr(
            backend,
            "register",
            lambda hook, *args: False if hook.endswith("_11") else real_register(hook, *args),
        )

        with caplog.at_level(logging.WARNING, logger="cachepurge.scheduler"):
            scheduled = scheduler.register([10, 11], now=MORNING)

        assert list(scheduled) == [10]
        assert "Could not schedule cron event for hour 11 UTC" in caplog.text

    def test_empty_schedule(self, scheduler, backend):
        assert scheduler.register([], now=MORNING) == {}
        assert backend.scheduled() == {}

    def test_legacy_hook_removed(self, scheduler, backend):
        backend.register(CRON_HOOK, MORNING)

        scheduler.register([10], now=MORNING)

        assert backend.query(CRON_HOOK) is None

    def test_tags(self, scheduler):
        assert scheduler.tag_for(10) == "wp-cron-10h-utc"
        assert scheduler.hook_for(7) == f"{CRON_HOOK}_7"


class TestFiring:
    """Test that due events run the recorder with their hour's tag."""

    def test_fires_with_hour_tag(self, scheduler, backend, recorder):
        scheduler.register([10, 11], now=MORNING)

        fired = backend.run_due(datetime(2026, 10, 19, 10, 0, 30, tzinfo=timezone.utc))

        assert fired == [f"{CRON_HOOK}_10"]
        recorder.run.assert_called_once_with("wp-cron-10h-utc")
        assert backend.query(f"{CRON_HOOK}_10") == datetime(2026, 10, 20, 10, tzinfo=timezone.utc)

    def test_restarted_process_rebinds(self, scheduler, settings, recorder):
        """A new process registering again picks up the stored events."""
        scheduler.register([12], now=MORNING)

        other_recorder = MagicMock(spec=ExecutionRecorder)
        other_backend = CronBackend(settings.db_path)
        Scheduler(other_backend, other_recorder).register([12], now=MORNING)
        other_backend.run_due(datetime(2026, 10, 19, 12, 5, tzinfo=timezone.utc))

        other_recorder.run.assert_called_once_with("wp-cron-12h-utc")
        recorder.run.assert_not_called()
