"""Shared test fixtures for the web test suite."""

import base64

import pytest

from cachepurge.config import CLI_CONTEXT_ENV_VARS, Settings
from web.app import create_app


@pytest.fixture
def settings(tmp_path):
    """Settings with temporary storage, no throttling and no purge CLI."""
    return Settings(
        hours=(10, 11, 12),
        log_file=str(tmp_path / "cache-purge-log.txt"),
        db_path=str(tmp_path / "cachepurge.db"),
        site_root=str(tmp_path / "site"),
        cli_name="cachepurge-test-cli-that-does-not-exist",
        cli_candidates=(),
        overdue_check_interval=0,
        cron_poll_interval=0,
    )


@pytest.fixture(autouse=True)
def outside_cli_context(monkeypatch):
    for name in CLI_CONTEXT_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def app(settings):
    app = create_app(settings, cache_config={"CACHE_TYPE": "SimpleCache"})
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["cachepurge"]


@pytest.fixture
def admin_auth(monkeypatch):
    """Configure operator credentials and return a matching auth header."""
    monkeypatch.setenv("ADMIN_USER", "operator")
    monkeypatch.setenv("ADMIN_PASS", "s3cret")
    token = base64.b64encode(b"operator:s3cret").decode("ascii")
    return {"Authorization": f"Basic {token}"}
