"""Shared fixtures for the cachepurge test suite."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from cachepurge.config import CLI_CONTEXT_ENV_VARS, Settings
from cachepurge.log_store import LogStore
from cachepurge.models import Status


class FakePageCache:
    """Stand-in for a page cache handle; counts clears."""

    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.clears = 0

    def clear(self):
        self.clears += 1
        if self.error is not None:
            raise self.error
        return self.result


class BlockingPageCache(FakePageCache):
    """Holds the purge open until released, to test concurrent calls."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def clear(self):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().clear()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary log file and database, no real CLI."""
    return Settings(
        hours=(10, 11, 12),
        log_file=str(tmp_path / "logs" / "cache-purge-log.txt"),
        db_path=str(tmp_path / "data" / "cachepurge.db"),
        site_root=str(tmp_path / "site"),
        site_timezone="America/New_York",
        cli_path=None,
        cli_name="cachepurge-test-cli-that-does-not-exist",
        cli_candidates=(),
        overdue_check_interval=0,
        cron_poll_interval=0,
    )


@pytest.fixture
def store(settings):
    return LogStore(settings.log_file, settings.site_timezone)


@pytest.fixture
def page_cache():
    return FakePageCache()


@pytest.fixture
def make_page_cache():
    """Factory for page caches that fail or raise on clear."""
    return FakePageCache


@pytest.fixture
def blocking_cache():
    cache = BlockingPageCache()
    yield cache
    cache.release.set()


@pytest.fixture
def write_entry(store):
    """Append an entry stamped ``age`` before now."""

    def _write(status=Status.SUCCESS, age=timedelta(0), triggered_by="wp-cron-10h-utc",
               output="", error=""):
        now = datetime.now(timezone.utc) - age
        entry = store.make_entry(status, triggered_by, 0.5, output=output, error=error, now=now)
        assert store.append(entry)
        return entry

    return _write


@pytest.fixture(autouse=True)
def outside_cli_context(monkeypatch):
    """Tests run as the host process unless they opt into the CLI context."""
    for name in CLI_CONTEXT_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
