"""Purge mechanisms tried by the strategy chain.

Every strategy answers two questions: is it usable in this process
(``available``) and did purging work (``attempt``). ``attempt`` never raises;
failures come back as a ``PurgeResult`` with ``success=False``.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

import requests

from cachepurge.config import CLI_CONTEXT_ENV_VARS
from cachepurge.models import PurgeResult, Strategy

__all__ = [
    "PurgeStrategy",
    "CacheObjectFlush",
    "EdgeFunctionFlush",
    "ObjectCacheFlush",
    "CliSubprocessPurge",
    "find_cli_executable",
    "output_indicates_success",
    "make_http_edge_purge",
]

logger = logging.getLogger(__name__)


class PurgeStrategy:
    """Base class for a single purge mechanism."""

    kind: Strategy = Strategy.NONE

    def available(self) -> bool:
        raise NotImplementedError

    def attempt(self) -> PurgeResult:
        raise NotImplementedError

    def _ok(self, output: str) -> PurgeResult:
        return PurgeResult.ok(output, self.kind)

    def _fail(self, error: str, output: str = "") -> PurgeResult:
        return PurgeResult.fail(error, self.kind, output=output)


class CacheObjectFlush(PurgeStrategy):
    """Flush an in-process page cache object.

    Accepts anything exposing ``flush()`` or ``clear()``; a Flask-Caching
    ``Cache`` is the usual handle. A backend answering ``clear()`` with False
    could not clear and counts as a failure.
    """

    kind = Strategy.CACHE_OBJECT_FLUSH

    def __init__(self, handle: Any = None):
        self.handle = handle

    def _flush_method(self) -> Optional[Callable[[], Any]]:
        if self.handle is None:
            return None
        for name in ("flush", "clear"):
            method = getattr(self.handle, name, None)
            if callable(method):
                return method
        return None

    def available(self) -> bool:
        return self._flush_method() is not None

    def attempt(self) -> PurgeResult:
        method = self._flush_method()
        if method is None:
            return self._fail("Page cache object has no flush capability")
        try:
            result = method()
        except Exception as e:
            return self._fail(f"Page cache flush failed: {e}")
        if result is False:
            return self._fail("Page cache flush failed: backend could not be cleared")
        return self._ok(f"Page cache flushed ({type(self.handle).__name__})")


class EdgeFunctionFlush(PurgeStrategy):
    """Call an in-process ``purge_all()`` for the edge cache.

    Only an explicit ``False`` return or an exception counts as failure.
    """

    kind = Strategy.EDGE_FUNCTION_FLUSH

    def __init__(self, purge_all: Optional[Callable[[], Any]] = None):
        self.purge_all = purge_all

    def available(self) -> bool:
        return callable(self.purge_all)

    def attempt(self) -> PurgeResult:
        if not self.available():
            return self._fail("Edge cache purge function not available")
        try:
            result = self.purge_all()
        except Exception as e:
            return self._fail(f"Edge cache purge failed: {e}")
        if result is False:
            return self._fail("Edge cache purge reported failure")
        return self._ok("Edge cache purged directly")


class ObjectCacheFlush(PurgeStrategy):
    """Flush the local object cache; the only option inside the purge CLI."""

    kind = Strategy.OBJECT_CACHE_FLUSH

    def __init__(self, flush: Optional[Callable[[], Any]] = None):
        self.flush = flush

    def available(self) -> bool:
        return callable(self.flush)

    def attempt(self) -> PurgeResult:
        if not self.available():
            return self._fail("Object cache flush not available")
        try:
            self.flush()
        except Exception as e:
            return self._fail(f"Object cache flush failed: {e}")
        return self._ok("Object cache flushed")


def _is_executable(path: Optional[str]) -> bool:
    return bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)


def find_cli_executable(
    configured: Optional[str],
    candidates: Iterable[str],
    name: str,
    site_root: Optional[str] = None,
) -> Optional[str]:
    """Locate the purge CLI.

    Order: explicit configured path, fixed install locations (plus
    ``wp-cli.phar`` in the site root), then a PATH lookup.
    """
    if _is_executable(configured):
        return configured

    search = list(candidates)
    if site_root:
        search.append(str(Path(site_root) / "wp-cli.phar"))
    for path in search:
        if _is_executable(path):
            return path

    found = shutil.which(name)
    if _is_executable(found):
        return found
    return None


def output_indicates_success(output: str, markers: Sequence[str]) -> bool:
    """Case-insensitive check for any success marker in CLI output."""
    lowered = output.lower()
    return any(marker.lower() in lowered for marker in markers)


class CliSubprocessPurge(PurgeStrategy):
    """Run ``<cli> edge-cache purge --domain=<site_root>`` in a subprocess."""

    kind = Strategy.CLI_SUBPROCESS

    def __init__(
        self,
        site_root: str,
        configured_path: Optional[str] = None,
        candidates: Sequence[str] = (),
        name: str = "wp",
        timeout: float = 120.0,
        success_markers: Sequence[str] = ("success", "purged"),
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.site_root = site_root
        self.configured_path = configured_path
        self.candidates = tuple(candidates)
        self.name = name
        self.timeout = timeout
        self.success_markers = tuple(success_markers)
        self.runner = runner

    def executable(self) -> Optional[str]:
        return find_cli_executable(
            self.configured_path, self.candidates, self.name, self.site_root
        )

    def available(self) -> bool:
        return self.executable() is not None

    def command(self, executable: str) -> list[str]:
        return [executable, "edge-cache", "purge", f"--domain={self.site_root}"]

    def attempt(self) -> PurgeResult:
        executable = self.executable()
        if not executable:
            return self._fail("CLI not found")

        # The child must know it is the CLI so it never calls back into us
        env = dict(os.environ)
        env[CLI_CONTEXT_ENV_VARS[0]] = "1"

        try:
            completed = self.runner(
                self.command(executable),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            partial = e.output or ""
            if isinstance(partial, bytes):
                partial = partial.decode("utf-8", errors="replace")
            return self._fail(
                f"CLI purge timed out after {self.timeout:g}s", output=partial.strip()
            )
        except OSError as e:
            return self._fail(f"CLI could not be started: {e}")

        output = (completed.stdout or "").strip()
        if not output:
            return self._fail("CLI command returned no output")

        if output_indicates_success(output, self.success_markers):
            return self._ok(output)
        return self._fail(f"CLI purge failed: {output}", output=output)


def make_http_edge_purge(
    url: str, token: Optional[str] = None, timeout: float = 10.0
) -> Callable[[], bool]:
    """Build a ``purge_all()`` that asks an edge cache API to purge everything."""

    def purge_all() -> bool:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        resp = requests.post(
            url, headers=headers, json={"purge_everything": True}, timeout=timeout
        )
        resp.raise_for_status()
        logger.info("[Cache Purge] Edge cache purge requested")
        return True

    return purge_all
