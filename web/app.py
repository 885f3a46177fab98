"""Flask host app for the scheduled cache purge.

Serves cached pages (Flask-Caching) and hosts the purge service:
- every request polls due purge events and checks for an overdue purge
- operators see the last purge at /admin/purge-notice and can dismiss it

Run with ``flask --app web.app:create_app run`` or
``gunicorn "web.app:create_app()"``.
"""

import hmac
import logging
import os
import sys
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from flask import Flask, Response, current_app, jsonify, render_template, request
from flask_caching import Cache

# .env at the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Make the cachepurge package importable when run directly (python web/app.py)
if __package__ is None or __package__ == "":
    sys.path.insert(0, str(Path(__file__).parent))
    sys.path.insert(0, str(Path(__file__).parent.parent))
    from config import (
        CACHE_DEFAULT_TIMEOUT,
        CACHE_DIR,
        CACHE_REDIS_URL,
        CACHE_TYPE,
        FLASK_DEBUG,
        FLASK_HOST,
        FLASK_PORT,
        PAGE_CACHE_SECONDS,
        SHOW_PURGE_NOTICE,
    )
else:
    from .config import (
        CACHE_DEFAULT_TIMEOUT,
        CACHE_DIR,
        CACHE_REDIS_URL,
        CACHE_TYPE,
        FLASK_DEBUG,
        FLASK_HOST,
        FLASK_PORT,
        PAGE_CACHE_SECONDS,
        SHOW_PURGE_NOTICE,
    )

from cachepurge.config import Settings
from cachepurge.logging_config import setup_logging
from cachepurge.service import PurgeService

__all__ = ["create_app", "cache", "host_page_cache", "PageCache"]

logger = logging.getLogger(__name__)

cache = Cache()

# Paths that never trigger the purge hooks (operator pages, static assets)
_HOOK_EXEMPT_PREFIXES = ("/admin", "/static")

# Flask-Caching backends whose entries live inside one process
PROCESS_LOCAL_CACHES = frozenset({"SimpleCache", "NullCache", "simple", "null"})


# ---------- OPERATOR AUTH ----------


def _admin_creds() -> tuple[Optional[str], Optional[str]]:
    """Get operator credentials from environment."""
    return os.getenv("ADMIN_USER"), os.getenv("ADMIN_PASS")


def _unauthorized() -> Response:
    return Response(
        "Authentication required",
        401,
        {"WWW-Authenticate": 'Basic realm="Cache Purge Admin"'},
    )


def require_admin(view: Callable[..., Any]) -> Callable[..., Any]:
    """Enforce HTTP Basic Auth with ADMIN_USER/ADMIN_PASS.

    Admin routes are disabled (403) while no credentials are configured, so
    the notice can only ever be dismissed by an operator.
    """

    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        user, password = _admin_creds()
        if not user or not password:
            return Response("Admin access not configured", 403)

        auth = request.authorization
        if auth is None or auth.type != "basic":
            return _unauthorized()
        if _matches(auth.username, user) and _matches(auth.password, password):
            return view(*args, **kwargs)
        return _unauthorized()

    return wrapper


def _matches(given: Optional[str], expected: str) -> bool:
    return hmac.compare_digest((given or "").encode("utf-8"), expected.encode("utf-8"))


def _service() -> PurgeService:
    return current_app.extensions["cachepurge"]


# ---------- APP FACTORY ----------


def create_app(
    settings: Optional[Settings] = None,
    cache_config: Optional[dict] = None,
    schedule_on_start: bool = True,
) -> Flask:
    """Create the Flask app with its page cache and purge service.

    Args:
        settings: Purge settings (default: from environment)
        cache_config: Overrides for Flask-Caching settings
        schedule_on_start: Register the daily purge events during startup
    """
    app = Flask(__name__)
    _configure_cache(app, cache_config)
    cache.init_app(app)

    service = PurgeService.build(settings, page_cache=PageCache(app))
    app.extensions["cachepurge"] = service
    if schedule_on_start:
        service.start()

    @app.before_request
    def run_purge_hooks() -> None:
        """Poll due purge events and run the overdue fallback."""
        if request.path.startswith(_HOOK_EXEMPT_PREFIXES):
            return None
        _service().on_request()
        return None

    # ---------- FLASK ROUTES ----------

    @app.route("/", methods=["GET"])
    @cache.cached(timeout=PAGE_CACHE_SECONDS)
    def index() -> str:
        """Render the home page; cached until the next purge."""
        generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        return render_template("index.html", generated_at=generated_at)

    @app.route("/admin/purge-notice", methods=["GET"])
    @require_admin
    def purge_notice() -> Any:
        """Show the last purge; 204 once the notice has been dismissed."""
        summary = _service().notice.render() if SHOW_PURGE_NOTICE else None
        if summary is None:
            return Response(status=204)

        wants_json = request.args.get("format") == "json" or (
            request.accept_mimetypes.best == "application/json"
        )
        if wants_json:
            return jsonify(summary.to_dict())
        return render_template("purge_notice.html", summary=summary)

    @app.route("/admin/purge-notice/dismiss", methods=["POST"])
    @require_admin
    def dismiss_purge_notice() -> Any:
        """Hide the notice for good."""
        if not _service().notice.dismiss():
            return jsonify({"dismissed": False, "error": "Could not store dismissal"}), 500
        return jsonify({"dismissed": True})

    @app.route("/admin/purge", methods=["POST"])
    @require_admin
    def purge_now() -> Any:
        """Purge immediately and return the recorded outcome."""
        attempt = _service().run("manual-admin")
        status = 200 if attempt.succeeded else 500
        return (
            jsonify(
                {
                    "status": attempt.outcome.value,
                    "strategy": attempt.strategy_used.value,
                    "detail": attempt.detail,
                    "execution_time": round(attempt.duration, 2),
                }
            ),
            status,
        )

    return app


def _configure_cache(app: Flask, overrides: Optional[dict] = None) -> None:
    app.config["CACHE_TYPE"] = CACHE_TYPE
    app.config["CACHE_DEFAULT_TIMEOUT"] = CACHE_DEFAULT_TIMEOUT
    app.config.update(overrides or {})
    if app.config["CACHE_TYPE"] == "RedisCache":
        app.config.setdefault("CACHE_REDIS_URL", CACHE_REDIS_URL)
    elif app.config["CACHE_TYPE"] == "FileSystemCache":
        app.config.setdefault("CACHE_DIR", CACHE_DIR)


def host_page_cache(cache_config: Optional[dict] = None) -> Optional["PageCache"]:
    """Handle on the web host's page cache for another process (the purge CLI).

    Returns None when the configured cache lives inside each web process
    (SimpleCache, NullCache); no other process can clear that.
    """
    app = Flask(__name__)
    _configure_cache(app, cache_config)
    if app.config["CACHE_TYPE"] in PROCESS_LOCAL_CACHES:
        return None
    cache.init_app(app)
    return PageCache(app)


class PageCache:
    """Page cache handle that clears ``cache`` inside this app's context.

    Purges also fire outside requests: admin routes, and ``cachepurge run-cron``
    through ``host_page_cache()`` when the cache backend is shared.
    """

    def __init__(self, app: Flask):
        self.app = app

    def clear(self) -> bool:
        with self.app.app_context():
            return cache.clear()


if __name__ == "__main__":
    setup_logging()
    create_app().run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG)
