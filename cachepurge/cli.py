"""Command-line interface for the cache purge service."""

import argparse
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, List, Optional

from cachepurge.config import CLI_CONTEXT_ENV_VARS, Settings
from cachepurge.log_store import format_entry
from cachepurge.logging_config import setup_logging
from cachepurge.service import PurgeService

__all__ = ["main", "parse_args"]

MANUAL_TAG = "manual-cli"

# Commands that may purge and so should clear the web page cache too
PURGING_COMMANDS = ("run", "check-overdue", "run-cron")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cachepurge",
        description="Scheduled page/edge cache purge with overdue fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Purge now and record it in the purge log
  cachepurge run

  # Show the schedule, next events and the last purge
  cachepurge status

  # Poll due events from system cron every 5 minutes (needs a page cache the
  # CLI can reach: CACHE_TYPE=RedisCache or FileSystemCache)
  */5 * * * * cachepurge run-cron

  # Last 5 purge log entries
  cachepurge tail -n 5
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug diagnostics")
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Don't write JSONL diagnostics (console only)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Purge now and record the result")
    run.add_argument(
        "--tag",
        default=MANUAL_TAG,
        help=f"TRIGGERED_BY value written to the log (default: {MANUAL_TAG})",
    )

    sub.add_parser("status", help="Show schedule, next events and last purge")

    tail = sub.add_parser("tail", help="Print the most recent purge log entries")
    tail.add_argument("-n", "--lines", type=int, default=10, help="Number of entries (default: 10)")

    sub.add_parser("schedule", help="Register the daily purge events")
    sub.add_parser("check-overdue", help="Purge if the last success is too old")
    run_cron = sub.add_parser("run-cron", help="Run purge events that are due")
    run_cron.add_argument(
        "--without-page-cache",
        action="store_true",
        help="Claim due events even though the web page cache can't be reached",
    )
    sub.add_parser("dismiss-notice", help="Hide the operator notice permanently")

    edge = sub.add_parser("edge-cache", help="Edge cache commands")
    edge_sub = edge.add_subparsers(dest="edge_command", required=True)
    edge_purge = edge_sub.add_parser("purge", help="Purge the edge cache without recording it")
    edge_purge.add_argument("--domain", help="Site root the purge is scoped to")

    return parser.parse_args(argv)


def _print_status(service: PurgeService) -> None:
    summary = service.notice.summarize()

    print(f"\n{'='*60}")
    print("Daily Cache Purge")
    print(f"{'='*60}")
    print(f"Schedule: {summary.schedule_text or '(none)'}")
    print(f"Log file: {summary.log_file}")

    events = service.cron.scheduled()
    print("\nScheduled events:")
    if events:
        for hook, next_fire in events.items():
            print(f"  {hook}: {next_fire:%Y-%m-%d %H:%M:%S} UTC")
    else:
        print("  None (run 'cachepurge schedule')")

    print("\nLast purge:")
    if summary.has_last_purge:
        print(f"  UTC: {summary.utc_time}")
        print(f"  {summary.timezone}: {summary.local_time}")
        print(f"  Status: {summary.status.upper()}")
        if summary.error:
            print(f"  Error: {summary.error}")
    else:
        print("  No purge recorded yet")

    last_success = service.store.last_success_timestamp()
    if last_success is None:
        print("\nOverdue: yes (no successful purge on record)")
    else:
        age = datetime.now(timezone.utc) - last_success
        hours = age.total_seconds() / 3600
        overdue = "yes" if service.overdue.is_overdue() else "no"
        print(f"\nLast success {hours:.1f}h ago, overdue: {overdue}")

    if service.notice.dismissed:
        print("Operator notice: dismissed")
    print()


def _host_page_cache() -> Any:
    """The web host's page cache, or None when only the web processes can clear it."""
    from web.app import host_page_cache

    return host_page_cache()


def _edge_cache_purge(service: PurgeService) -> int:
    """Purge as the CLI itself: never shells out to the CLI again."""
    result = service.chain.attempt_purge()
    if result.success:
        print(f"Success: {result.output}")
        return 0
    print(f"Error: {result.error}")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)

    if args.command == "edge-cache":
        # This process is the CLI the web process may be shelling out to
        os.environ[CLI_CONTEXT_ENV_VARS[0]] = "1"

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_to_file=not args.no_log_file,
    )

    settings = Settings.from_env()
    if args.command == "edge-cache" and args.domain:
        settings = replace(settings, site_root=args.domain)

    page_cache = _host_page_cache() if args.command in PURGING_COMMANDS else None
    service = PurgeService.build(settings, page_cache=page_cache)

    if args.command == "run":
        attempt = service.run(args.tag)
        print(f"{attempt.outcome.value}: {attempt.detail} ({attempt.duration:.2f}s)")
        return 0 if attempt.succeeded else 1

    if args.command == "status":
        _print_status(service)
        return 0

    if args.command == "tail":
        entries = service.store.tail(args.lines)
        if not entries:
            print(f"No entries in {service.store.path}")
        for entry in entries:
            print(format_entry(entry), end="")
        return 0

    if args.command == "schedule":
        for hour, next_fire in sorted(service.start().items()):
            print(f"{hour:02d}:00 UTC -> next run {next_fire:%Y-%m-%d %H:%M:%S} UTC")
        return 0

    if args.command == "check-overdue":
        attempt = service.overdue.check()
        if attempt is None:
            print("Not overdue")
            return 0
        print(f"Overdue purge: {attempt.outcome.value}")
        return 0 if attempt.succeeded else 1

    if args.command == "run-cron":
        if page_cache is None and not args.without_page_cache:
            # Events claimed here never fire in the web workers
            print(
                "Page cache is local to the web processes; leaving due events to them "
                "(use --without-page-cache to run them here anyway)"
            )
            return 0
        service.start()
        fired = service.cron.run_due()
        print(f"Ran {len(fired)} due event(s)" + (f": {', '.join(fired)}" if fired else ""))
        return 0

    if args.command == "dismiss-notice":
        return 0 if service.notice.dismiss() else 1

    if args.command == "edge-cache":
        return _edge_cache_purge(service)

    return 2


if __name__ == "__main__":
    sys.exit(main())
