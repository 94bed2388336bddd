"""
Celery Tasks
Background jobs that run outside the request path.
"""

import asyncio
import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tableside.celery_worker import celery_app
from tableside.core.config import get_settings
from tableside.services.analytics import aggregate_day

logger = logging.getLogger(__name__)


def previous_utc_day() -> date:
    return (datetime.now(timezone.utc) - timedelta(days=1)).date()


async def run_aggregation(day: date, database_url: Optional[str] = None) -> dict:
    """
    Aggregate one day on a dedicated engine.

    Each task run gets its own event loop, so it also gets its own engine
    instead of sharing the API process pool.
    """
    engine = create_async_engine(database_url or get_settings().database_url)
    try:
        session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        async with session_maker() as session:
            return await aggregate_day(session, day)
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def aggregate_daily_metrics(self, day: Optional[str] = None) -> dict:
    """
    Summarise one UTC day of orders into the daily metrics tables.

    Args:
        day: ISO date to aggregate; defaults to yesterday (UTC)

    Returns:
        dict: Aggregation summary with timing information
    """
    target = date.fromisoformat(day) if day else previous_utc_day()
    logger.info(f"Task {self.request.id}: aggregating metrics for {target.isoformat()}")
    start_time = time.time()

    result = asyncio.run(run_aggregation(target))

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = self.request.id
    result['processing_time_seconds'] = elapsed
    logger.info(f"Task {self.request.id}: done in {elapsed}s")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
