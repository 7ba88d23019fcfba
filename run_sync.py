#!/usr/bin/env python3
"""
Sync job-application emails into the tracker.

Usage:
  python run_sync.py --once              one sync, then exit
  python run_sync.py                     sync every `sync_interval_minutes` (default 30)
  python run_sync.py --once --dry-run    keep records in memory only
  python run_sync.py --once -v           debug output on the console
  python run_sync.py --create-notion-db PAGE_ID
"""
from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from jobmail.config import get_env, load_settings
from jobmail.log import configure_logging, get_logger

log = get_logger(__name__)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Track job applications from email")
    p.add_argument("--once", action="store_true", help="run one sync and exit")
    p.add_argument("--dry-run", action="store_true", help="keep records in memory instead of the store")
    p.add_argument("--max-results", type=int, default=None)
    p.add_argument("--days-back", type=int, default=None)
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging on the console")
    p.add_argument("--create-notion-db", metavar="PAGE_ID", help="create the Notion database under a page and exit")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    if args.verbose:
        configure_logging("DEBUG")
    settings = load_settings()

    if args.create_notion_db:
        from jobmail.stores import NotionStore

        api_key = get_env("NOTION_API_KEY")
        if not api_key:
            log.error("NOTION_API_KEY not set in .env")
            return 1
        db_id = NotionStore(api_key, "").create_database(args.create_notion_db)
        log.info("Set NOTION_DATABASE_ID=%s in .env", db_id)
        return 0

    from jobmail.sync import run_sync

    stop = threading.Event()
    pools = []

    def _on_signal(signum, _frame) -> None:
        log.info("Received %s, finishing current messages...", signal.Signals(signum).name)
        stop.set()
        for pool in pools:
            log.info("Queue at shutdown: %s", pool.status()["queue"])
            pool.shutdown()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    def _sync_once() -> dict:
        pools.clear()
        return run_sync(
            settings=settings,
            dry_run=args.dry_run,
            max_results=args.max_results,
            days_back=args.days_back,
            pool_hook=pools.append,
        )

    if args.once:
        result = _sync_once()
        return 1 if result["failed"] and not result["processed"] else 0

    interval = settings.sync_interval_minutes * 60
    log.info("Scheduler: sync every %d minute(s)", settings.sync_interval_minutes)
    while not stop.is_set():
        try:
            _sync_once()
        except Exception as exc:
            log.error("Sync failed: %s", exc)
        stop.wait(interval)
    log.info("Scheduler stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
