"""Prometheus metrics exporters."""
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create registry
registry = CollectorRegistry()

# ========== POSITION METRICS ==========
positions_opened = Counter(
    'positions_opened_total',
    'Total number of positions opened',
    ['strategy'],
    registry=registry
)

positions_closed = Counter(
    'positions_closed_total',
    'Total number of positions closed by buyback',
    ['reason'],
    registry=registry
)

positions_failed = Counter(
    'positions_failed_total',
    'Total number of positions that exhausted buyback retries',
    registry=registry
)

open_positions = Gauge(
    'open_positions',
    'Number of open positions seen by the last monitoring cycle',
    registry=registry
)

# ========== BUYBACK METRICS ==========
buyback_attempts = Counter(
    'buyback_attempts_total',
    'Total number of buyback swap attempts',
    ['result'],
    registry=registry
)

price_fetch_failures = Counter(
    'price_fetch_failures_total',
    'Price fetches that failed during monitoring',
    registry=registry
)

# ========== MONITOR METRICS ==========
monitor_cycles = Counter(
    'monitor_cycles_total',
    'Total number of monitoring cycles',
    ['status'],
    registry=registry
)

monitor_duration = Histogram(
    'monitor_cycle_seconds',
    'Monitoring cycle duration in seconds',
    registry=registry
)

# ========== HELPER FUNCTIONS ==========
def record_position_opened(strategy: str):
    """Record a new position opening."""
    positions_opened.labels(strategy=strategy).inc()

def record_position_closed(reason: str):
    """Record a position closed by buyback."""
    positions_closed.labels(reason=reason).inc()

def record_position_failed():
    """Record a position reaching FAILED."""
    positions_failed.inc()

def record_buyback_attempt(result: str):
    """Record a buyback attempt (success, retry, failed)."""
    buyback_attempts.labels(result=result).inc()

def record_price_fetch_failure():
    """Record a price fetch failure."""
    price_fetch_failures.inc()

def record_monitor_cycle(status: str, duration_seconds: float, positions: int):
    """Record a finished monitoring cycle."""
    monitor_cycles.labels(status=status).inc()
    monitor_duration.observe(duration_seconds)
    open_positions.set(positions)
