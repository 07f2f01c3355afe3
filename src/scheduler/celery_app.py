"""
Celery worker and beat for the position monitor and entry strategies.

Run a worker with ``celery -A src.scheduler.celery_app worker`` and the
schedule with ``celery -A src.scheduler.celery_app beat``.
"""
from celery import Celery
from celery.schedules import crontab
from config.settings import get_settings
from src.utils.logging import configure_logging

settings = get_settings()
configure_logging()

REDIS_URL = f'redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}'

app = Celery(
    'gala_cycle_bot',
    broker=f'{REDIS_URL}/0',
    backend=f'{REDIS_URL}/1',
    include=['src.scheduler.tasks']
)

app.conf.update(
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
    timezone='UTC',
    enable_utc=True,
    # Must stay within the Redis lock timeout
    task_time_limit=settings.MONITOR_LOCK_TIMEOUT_SECONDS,
    result_expires=24 * 3600,
    # Swaps are not idempotent
    task_acks_late=False,
    worker_prefetch_multiplier=1,
)

app.conf.beat_schedule = {
    'monitor-open-positions': {
        'task': 'src.scheduler.tasks.monitor_open_positions',
        'schedule': float(settings.MONITOR_INTERVAL_SECONDS),
        # A missed tick is superseded by the next one
        'options': {'expires': float(settings.MONITOR_INTERVAL_SECONDS)},
    },
    'run-entry-strategies': {
        'task': 'src.scheduler.tasks.run_entry_strategies',
        'schedule': crontab(minute=0),
    },
}
