"""
Celery application and scheduled ingestion task
"""
from celery import Celery
from celery.schedules import crontab
import logging

from traffic_feed.core.config import settings
from traffic_feed.core.database import get_db_context
from traffic_feed.core.errors import SchedulerError
from traffic_feed.models.schemas import IngestionResult
from traffic_feed.services.bulk_upsert import BatchUpsertEngine
from traffic_feed.services.fetcher import FeedFetcher
from traffic_feed.services.ingestion import run_ingestion

logger = logging.getLogger(__name__)

# Initialize Celery app
celery_app = Celery(
    "traffic_feed",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
)

# The feed publishes a fresh snapshot every minute
celery_app.conf.beat_schedule = {
    "ingest-traffic-feed": {
        "task": "traffic_feed.tasks.celery_app.ingest_traffic_feed",
        "schedule": crontab(minute=settings.INGESTION_SCHEDULE_MINUTE),
    },
}


@celery_app.task(name="traffic_feed.tasks.celery_app.ingest_traffic_feed")
def ingest_traffic_feed():
    """
    Fetch the MIV feeds and persist locations and aggregated measurements
    No retry: a failed run waits for the next beat tick
    """
    fetcher = FeedFetcher()
    try:
        with get_db_context() as db:
            result = run_ingestion(
                fetcher,
                BatchUpsertEngine(db),
                settings.MEASUREMENTS_FEED_URL,
                settings.LOCATIONS_FEED_URL,
                persist_vehicle_classes=settings.PERSIST_VEHICLE_CLASS_READINGS
            )
    except Exception as e:
        logger.error(f"Ingestion task failed: {e}", exc_info=True)
        error = SchedulerError(f"Ingestion task failed: {e}")
        return IngestionResult(success=False, error=error.to_payload()).model_dump()
    finally:
        fetcher.close()

    if not result.success:
        logger.error(f"Scheduled ingestion failed: {result.error}")
    return result.model_dump()
