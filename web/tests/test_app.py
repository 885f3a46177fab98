"""Tests for the Flask host app: request hooks, page cache and admin routes."""

import base64
from datetime import datetime, timedelta, timezone

from cachepurge.config import CRON_HOOK
from cachepurge.models import Status
from cachepurge.service import PurgeService
from web.app import cache, create_app, host_page_cache


class TestRequestHooks:
    """Test that ordinary requests drive the purge service."""

    def test_startup_registers_schedule(self, service):
        assert sorted(service.cron.scheduled()) == [
            f"{CRON_HOOK}_10", f"{CRON_HOOK}_11", f"{CRON_HOOK}_12",
        ]

    def test_first_request_runs_overdue_purge(self, client, service):
        response = client.get("/")

        assert response.status_code == 200
        entry = service.store.last_entry()
        assert entry.status is Status.SUCCESS
        assert entry.triggered_by == "overdue-fallback"
        assert entry.output == "Page cache flushed (PageCache)"

    def test_only_one_overdue_purge(self, client, service):
        client.get("/")
        client.get("/")

        assert len(service.store.tail(10)) == 1

    def test_admin_paths_skip_hooks(self, client, service, admin_auth):
        client.get("/admin/purge-notice", headers=admin_auth)
        assert service.store.last_entry() is None

    def test_hook_errors_do_not_break_pages(self, client, service, monkeypatch):
        def broken(now=None):
            raise RuntimeError("disk full")

        monkeypatch.setattr(service.overdue, "check", broken)

        assert client.get("/").status_code == 200


class TestCronOutsideWeb:
    """Events claimed by another process (``cachepurge run-cron``)."""

    def test_shared_cache_cleared_by_other_process(self, settings, tmp_path):
        cache_config = {"CACHE_TYPE": "FileSystemCache", "CACHE_DIR": str(tmp_path / "pages")}
        app = create_app(settings, cache_config=cache_config)
        host = app.extensions["cachepurge"]
        with app.app_context():
            cache.set("marker", "cached")

        other = PurgeService.build(settings, page_cache=host_page_cache(cache_config))
        other.start()
        tomorrow = datetime.now(timezone.utc) + timedelta(days=1, minutes=1)

        assert len(other.cron.run_due(tomorrow)) == 3
        assert host.poll_cron(tomorrow) == []
        with app.app_context():
            assert cache.get("marker") is None
        entries = host.store.tail(10)
        assert [e.status for e in entries] == [Status.SUCCESS] * 3
        assert all(e.output == "Page cache flushed (PageCache)" for e in entries)

    def test_process_local_cache_unreachable(self):
        assert host_page_cache({"CACHE_TYPE": "SimpleCache"}) is None
        assert host_page_cache({"CACHE_TYPE": "NullCache"}) is None


class TestPageCache:
    def test_purge_clears_cached_pages(self, app, client, admin_auth):
        client.get("/")
        with app.app_context():
            cache.set("marker", "cached")

        response = client.post("/admin/purge", headers=admin_auth)

        assert response.status_code == 200
        assert response.get_json()["strategy"] == "cache-object-flush"
        with app.app_context():
            assert cache.get("marker") is None


class TestAdminAuth:
    """Test operator access to admin routes."""

    def test_disabled_without_credentials(self, client, monkeypatch):
        monkeypatch.delenv("ADMIN_USER", raising=False)
        monkeypatch.delenv("ADMIN_PASS", raising=False)

        assert client.get("/admin/purge-notice").status_code == 403
        assert client.post("/admin/purge-notice/dismiss").status_code == 403

    def test_missing_header(self, client, admin_auth):
        response = client.get("/admin/purge-notice")

        assert response.status_code == 401
        assert "Basic" in response.headers["WWW-Authenticate"]

    def test_wrong_password(self, client, admin_auth):
        token = base64.b64encode(b"operator:wrong").decode("ascii")
        response = client.get(
            "/admin/purge-notice", headers={"Authorization": f"Basic {token}"}
        )
        assert response.status_code == 401

    def test_malformed_header(self, client, admin_auth):
        response = client.get(
            "/admin/purge-notice", headers={"Authorization": "Basic not-base64!"}
        )
        assert response.status_code == 401


class TestPurgeNotice:
    """Test the operator notice and its dismissal."""

    def test_json_summary(self, client, service, admin_auth):
        client.get("/")

        response = client.get("/admin/purge-notice?format=json", headers=admin_auth)

        assert response.status_code == 200
        data = response.get_json()
        assert data["schedule_text"] == "10:00 UTC, 11:00 UTC, 12:00 UTC"
        assert data["status"] == "success"
        assert data["error"] is None

    def test_html_notice(self, client, admin_auth):
        client.get("/")

        response = client.get("/admin/purge-notice", headers=admin_auth)

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert "10:00 UTC, 11:00 UTC, 12:00 UTC" in body
        assert "SUCCESS" in body

    def test_failure_shows_error(self, client, service, admin_auth):
        service.store.append(
            service.store.make_entry(Status.FAILURE, "manual-cli", 0.1, error="CLI not found")
        )

        data = client.get("/admin/purge-notice?format=json", headers=admin_auth).get_json()

        assert data["status"] == "failure"
        assert data["error"] == "CLI not found"

    def test_dismiss_hides_notice(self, client, admin_auth):
        response = client.post("/admin/purge-notice/dismiss", headers=admin_auth)

        assert response.get_json() == {"dismissed": True}
        assert client.get("/admin/purge-notice", headers=admin_auth).status_code == 204

    def test_dismissal_survives_restart(self, settings, client, admin_auth):
        client.post("/admin/purge-notice/dismiss", headers=admin_auth)

        fresh = create_app(settings, cache_config={"CACHE_TYPE": "SimpleCache"}).test_client()
        assert fresh.get("/admin/purge-notice", headers=admin_auth).status_code == 204


class TestManualPurge:
    def test_failure_returns_500(self, settings, admin_auth, monkeypatch):
        app = create_app(settings, cache_config={"CACHE_TYPE": "SimpleCache"})
        monkeypatch.setattr(app.extensions["cachepurge"].chain, "cache_object", None)

        response = app.test_client().post("/admin/purge", headers=admin_auth)

        assert response.status_code == 500
        data = response.get_json()
        assert data["status"] == "FAILURE"
        assert data["detail"] == "CLI not found"
