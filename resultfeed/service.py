from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import FeedSettings, load_config
from .datasource.http_api import HttpJsonDataSource, HttpJsonDataSourceConfig
from .ledger_client import LedgerClient
from .scheduler import FeedScheduler, PollSummary


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def build_datasource(settings: FeedSettings) -> HttpJsonDataSource:
    ds_settings = settings.datasource
    if not ds_settings.url:
        raise RuntimeError("FEED__URL is not configured.")
    return HttpJsonDataSource(
        HttpJsonDataSourceConfig(
            url=ds_settings.url,
            issue_key=ds_settings.issue_key,
            numbers_key=ds_settings.numbers_key,
            lucky_key=ds_settings.lucky_key,
            date_key=ds_settings.date_key,
            timeout_seconds=ds_settings.timeout_seconds,
            timezone=settings.timezone,
        )
    )


def report_summary(summary: PollSummary, logger: logging.Logger) -> int:
    """Log one poll's outcome per draw and return the number of failed draws."""
    for result in summary.published:
        settlement = result.settlement or {}
        logger.info(
            "Published %s issue %s as v%s (%s checked, %s winners)",
            result.draw_id,
            result.issue_id,
            result.result_version,
            settlement.get("checked", 0),
            settlement.get("winners", 0),
        )
    if summary.skipped:
        logger.info("Skipped %s: nothing new to publish", ", ".join(summary.skipped))
    for draw_id, error in sorted(summary.failed.items()):
        logger.error("Draw %s failed: %s", draw_id, error)
    return len(summary.failed)


async def run(args: argparse.Namespace) -> Optional[PollSummary]:
    settings = load_config(args.env_file)
    configure_logging(args.verbose)
    logger = logging.getLogger("borlette.resultfeed")

    datasource = build_datasource(settings)
    client = LedgerClient(settings)
    scheduler = FeedScheduler(settings, datasource, client, logger=logger)

    try:
        if args.once or settings.submit_only_once:
            summary = await scheduler.run_once()
            report_summary(summary, logger)
            return summary

        await scheduler.run_forever()
        return None
    finally:
        client.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Borlette result feed")
    parser.add_argument("--env-file", type=str, default=None, help="Path to .env file with settings")
    parser.add_argument("--once", action="store_true", help="Poll every draw once and exit.")
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging (default INFO)."
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        summary = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Result feed stopped by user.")
        return 0
    return 1 if summary is not None and summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
