"""
Run one traffic feed ingestion outside of Celery
Useful for seeding a fresh database or debugging the feeds
"""
import argparse
import json
import logging
import sys

from traffic_feed.core.config import settings
from traffic_feed.core.database import get_db_context, init_db
from traffic_feed.services.bulk_upsert import BatchUpsertEngine
from traffic_feed.services.fetcher import FeedFetcher
from traffic_feed.services.ingestion import run_ingestion

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="MIV traffic feed ingestion")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before ingesting"
    )
    parser.add_argument(
        "--measurements-url",
        default=settings.MEASUREMENTS_FEED_URL,
        help="Live measurement feed URL"
    )
    parser.add_argument(
        "--locations-url",
        default=settings.LOCATIONS_FEED_URL,
        help="Location configuration feed URL"
    )
    parser.add_argument(
        "--vehicle-classes",
        action="store_true",
        default=settings.PERSIST_VEHICLE_CLASS_READINGS,
        help="Also write per-vehicle-class rows"
    )
    args = parser.parse_args()

    if args.init_db:
        init_db()
        logger.info("Database schema initialized")

    fetcher = FeedFetcher()
    try:
        with get_db_context() as db:
            result = run_ingestion(
                fetcher,
                BatchUpsertEngine(db),
                args.measurements_url,
                args.locations_url,
                persist_vehicle_classes=args.vehicle_classes
            )
    finally:
        fetcher.close()

    print(json.dumps(result.model_dump(), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
