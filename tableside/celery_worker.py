"""
Celery Worker Configuration

Redis is both broker and result backend. Beat triggers the nightly
analytics aggregation at ANALYTICS_SCHEDULE_HOUR:ANALYTICS_SCHEDULE_MINUTE UTC.

Run:
    celery -A tableside.celery_worker worker --loglevel=info
    celery -A tableside.celery_worker beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from tableside.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'tableside_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['tableside.tasks'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Aggregation runs are long and few; take them one at a time
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
    result_expires=24 * 3600,

    # A day that was interrupted gets re-run, which replaces its rows
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_connection_retry_on_startup=True,

    beat_schedule={
        'aggregate-daily-metrics': {
            'task': 'tableside.tasks.aggregate_daily_metrics',
            'schedule': crontab(
                hour=settings.analytics_schedule_hour,
                minute=settings.analytics_schedule_minute,
            ),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
