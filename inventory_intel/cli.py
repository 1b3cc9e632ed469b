"""Command-line runner for the inventory pipeline.

Examples:
  # Register targets from a file and run all of them once
  inventory-intel --tenant acme --targets targets.json run-all

  # Run a single source
  inventory-intel --tenant acme run --source "NC Trailers"

  # Show recent changes and an inventory summary
  inventory-intel --tenant acme changes --limit 20
  inventory-intel --tenant acme summary --source "NC Trailers"

  # Keep running on the configured interval
  inventory-intel --tenant acme schedule
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

import structlog

from inventory_intel.config import settings
from inventory_intel.core.exceptions import ConfigError
from inventory_intel.db.session import create_all, create_engine, create_session_factory
from inventory_intel.logging_config import configure_logging
from inventory_intel.schemas.target import load_targets, sync_targets
from inventory_intel.scrapers.factory import AdapterFactory
from inventory_intel.scrapers.orchestrator import ScrapeOrchestrator
from inventory_intel.scrapers.register_adapters import register_all_adapters
from inventory_intel.scrapers.scheduler import ScrapeScheduler
from inventory_intel.scrapers.utils.rate_limiter import DomainRateLimiter
from inventory_intel.scrapers.utils.retry import RetryingFetcher, build_http_client
from inventory_intel.services.change_log import ChangeLog
from inventory_intel.services.inventory_store import InventoryStore
from inventory_intel.services.inventory_summary import build_summary

log = structlog.get_logger("inventory_intel.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="inventory-intel",
        description="Scrape competitor trailer inventory, detect changes and store the result.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--tenant",
        default=settings.DEFAULT_TENANT_ID,
        help="Tenant id owning the targets and inventory (default: DEFAULT_TENANT_ID)",
    )
    parser.add_argument(
        "--targets",
        metavar="FILE",
        help="JSON file of target descriptors to register before running",
    )
    parser.add_argument(
        "--database-url",
        default=settings.DATABASE_URL,
        help="SQLAlchemy async database URL (default: DATABASE_URL)",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running (development only)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=settings.LOG_JSON,
        help="Emit JSON log lines on stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List active targets")

    run_parser = subparsers.add_parser("run", help="Run one target")
    run_parser.add_argument("--source", required=True, help="Source name of the target to run")

    subparsers.add_parser("run-all", help="Run every active target once")

    summary_parser = subparsers.add_parser("summary", help="Print an inventory summary")
    summary_parser.add_argument("--source", help="Restrict to one source")

    changes_parser = subparsers.add_parser("changes", help="Print recent change events")
    changes_parser.add_argument("--source", help="Restrict to one source")
    changes_parser.add_argument("--limit", type=int, default=100)

    subparsers.add_parser("schedule", help="Run all targets periodically until interrupted")

    return parser.parse_args(argv)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run(args: argparse.Namespace) -> int:
    if not args.tenant:
        raise ConfigError("a tenant id is required (--tenant or DEFAULT_TENANT_ID)")

    engine = create_engine(args.database_url, echo=settings.DEBUG)
    session_factory = create_session_factory(engine)

    try:
        if args.create_tables:
            await create_all(engine)

        if args.targets:
            await sync_targets(session_factory, args.tenant, load_targets(args.targets))

        if args.command == "summary":
            items = await InventoryStore(session_factory).list_items(args.tenant, args.source)
            _print_json(build_summary(items))
            return 0

        if args.command == "changes":
            events = await ChangeLog(session_factory).list_recent(args.tenant, args.source, args.limit)
            _print_json([event.to_record() for event in events])
            return 0

        async with build_http_client(settings.USER_AGENT, settings.HTTP_TIMEOUT_SECONDS) as client:
            fetcher = RetryingFetcher(
                client,
                max_retries=settings.HTTP_MAX_RETRIES,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                base_delay=settings.HTTP_BACKOFF_BASE_SECONDS,
                rate_limiter=DomainRateLimiter(),
            )
            orchestrator = ScrapeOrchestrator(
                session_factory,
                fetcher,
                register_all_adapters(AdapterFactory()),
                max_workers=settings.MAX_CONCURRENT_TARGETS,
                target_timeout=settings.TARGET_TIMEOUT_SECONDS,
                batch_size=settings.UPSERT_BATCH_SIZE,
            )
            targets = await orchestrator.load_active_targets(args.tenant)

            if args.command == "list":
                _print_json([
                    {
                        "sourceName": t.source_name,
                        "platformKind": t.platform_kind,
                        "inventoryUrl": t.inventory_url,
                        "lastScrapedAt": t.last_scraped_at,
                    }
                    for t in targets
                ])
                return 0

            if args.command == "run":
                selected = [t for t in targets if t.source_name == args.source]
                if not selected:
                    raise ConfigError(f"no active target named '{args.source}' for tenant '{args.tenant}'")
                summary = await orchestrator.run_target(selected[0])
                _print_json(summary.to_record())
                return 0 if summary.succeeded else 1

            if args.command == "run-all":
                batch = await orchestrator.run_all(targets)
                _print_json(batch.to_record())
                return 1 if batch.failed else 0

            if args.command == "schedule":
                scheduler = ScrapeScheduler(orchestrator, settings.SCRAPE_INTERVAL_MINUTES, args.tenant)
                scheduler.add_batch_job()
                scheduler.start()
                try:
                    await asyncio.Event().wait()
                finally:
                    await scheduler.stop()
                return 0

        return 2
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(settings.LOG_LEVEL, json=args.json_logs)

    try:
        return asyncio.run(run(args))
    except ConfigError as e:
        log.error("config_error", error=e.message)
        return 2
    except KeyboardInterrupt:
        log.info("interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
