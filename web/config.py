"""Centralized configuration for the purge host web app."""

import os
from pathlib import Path

# Flask app settings (allow env overrides; default debug off for safety)
# Render sets PORT dynamically; fall back to FLASK_PORT or 5000 for local.
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("FLASK_PORT", os.getenv("PORT", "5000")))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# Page cache (Flask-Caching). SimpleCache is per process; use RedisCache or
# FileSystemCache to share one page cache between workers and the purge CLI.
CACHE_TYPE = os.getenv("CACHE_TYPE", "SimpleCache")
CACHE_REDIS_URL = os.getenv("CACHE_REDIS_URL", "redis://localhost:6379/1")
CACHE_DEFAULT_TIMEOUT = int(os.getenv("CACHE_DEFAULT_TIMEOUT", "86400"))

# FileSystemCache directory; shared by the web workers and the purge CLI
CACHE_DIR = os.getenv("CACHE_DIR", str(Path(__file__).parent.parent / "data" / "page_cache"))

# Cached pages live until the next purge
PAGE_CACHE_SECONDS = int(os.getenv("PAGE_CACHE_SECONDS", str(CACHE_DEFAULT_TIMEOUT)))

# UI Settings
SHOW_PURGE_NOTICE = os.getenv("SHOW_PURGE_NOTICE", "True").lower() == "true"
