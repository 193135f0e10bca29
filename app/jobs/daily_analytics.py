"""
Batch entry point for the daily reassignment summaries.

    python -m app.jobs.daily_analytics              # yesterday (UTC)
    python -m app.jobs.daily_analytics --date 2024-03-01
"""
import argparse
import asyncio
import logging
from datetime import date
from typing import List, Optional

from app.config import LOG_LEVEL
from app.db.redis_client import close_redis, redis_client
from app.db.session import async_session, engine
from app.services.analytics_aggregator import AnalyticsAggregator

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Aggregate one day of reassignment events into summary rows.")
    parser.add_argument(
        "--date",
        dest="summary_date",
        type=date.fromisoformat,
        default=None,
        help="Day to aggregate (YYYY-MM-DD). Defaults to yesterday, UTC.",
    )
    return parser.parse_args(argv)


async def run(summary_date: Optional[date] = None, redis=redis_client) -> int:
    async with async_session() as db:
        rows = await AnalyticsAggregator(db, redis).aggregate(summary_date)
    return len(rows)


async def _main(summary_date: Optional[date]) -> int:
    try:
        return await run(summary_date)
    finally:
        await close_redis()
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    count = asyncio.run(_main(args.summary_date))
    logger.info("Wrote %d reassignment summaries", count)


if __name__ == "__main__":
    main()
