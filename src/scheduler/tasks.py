"""
Celery background tasks.
"""
import json
from contextlib import contextmanager
from celery import Task
import redis
from config.settings import get_settings, get_strategies_config
from src.core.bootstrap import build_components
from src.core.strategy_runner import StrategyRunner
from src.scheduler.celery_app import app
from src.utils.hashing import decimal_default
from src.utils.logging import get_logger

logger = get_logger(__name__)

MONITOR_LOCK_KEY = 'gala-cycle-bot:monitor-lock'


def to_json_safe(payload):
    """Celery's json serializer rejects Decimal and datetime."""
    return json.loads(json.dumps(payload, default=decimal_default))


class ComponentsTask(Task):
    """Base task holding one wired component graph per worker process."""
    _components = None
    
    @property
    def components(self):
        if self._components is None:
            self._components = build_components()
        return self._components


@contextmanager
def monitor_lock(client: redis.Redis, timeout: int):
    """
    Non-blocking lock around a monitoring batch.
    
    Yields False when another batch holds the lock.
    """
    lock = client.lock(MONITOR_LOCK_KEY, timeout=timeout)
    acquired = lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            try:
                lock.release()
            except redis.exceptions.LockError:
                logger.warning("Monitor lock expired before release", key=MONITOR_LOCK_KEY)


def redis_client() -> redis.Redis:
    settings = get_settings()
    return redis.Redis(host=settings.REDIS_HOST, port=settings.REDIS_PORT)


@app.task(base=ComponentsTask, bind=True)
def monitor_open_positions(self, strategy_filter=None):
    """
    Periodic task: check every OPEN position for a buyback.
    Skipped when a previous batch is still running.
    """
    settings = get_settings()
    
    with monitor_lock(redis_client(), settings.MONITOR_LOCK_TIMEOUT_SECONDS) as acquired:
        if not acquired:
            logger.warning("Previous monitoring batch still running, skipping")
            return {"skipped": True}
        
        summary = self.components.monitor.monitor_open_positions(strategy_filter)
    
    if not summary.success:
        logger.error("Monitoring cycle failed", error=summary.error)
    return to_json_safe(summary.to_dict())


@app.task(base=ComponentsTask, bind=True)
def run_entry_strategies(self):
    """
    Hourly task: evaluate entry strategies and open positions.
    """
    logger.info("Running entry strategies")
    components = self.components
    
    runner = StrategyRunner(
        components.repository,
        components.lifecycle_manager,
        components.price_source,
        get_strategies_config()
    )
    results = runner.run()
    
    opened = sum(1 for r in results if r.get('action') == 'open' and r.get('success'))
    logger.info("Entry strategies complete", evaluated=len(results), opened=opened)
    return to_json_safe({"evaluated": len(results), "opened": opened, "results": results})


@app.task(base=ComponentsTask, bind=True)
def close_all_positions(self, strategy_filter=None):
    """
    Manual task: force a buyback on every OPEN position.
    Shares the monitor lock so it never races a monitoring batch.
    """
    settings = get_settings()
    
    with monitor_lock(redis_client(), settings.MONITOR_LOCK_TIMEOUT_SECONDS) as acquired:
        if not acquired:
            logger.warning("Monitoring batch running, close-all not started")
            return {"skipped": True}
        
        summary = self.components.monitor.close_all_positions(strategy_filter)
    
    return to_json_safe(summary.to_dict())
