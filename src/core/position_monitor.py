"""
Batch monitor over all OPEN positions.

One call per scheduler tick. Errors raised while checking a single
position are recorded in that position's result and never escape the
batch; only a failure to load the position list fails the cycle.
"""
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional
from src.core.position_manager import CheckResult, PositionLifecycleManager
from src.data.price_oracle import BasePriceSource
from src.models.positions import Position
from src.storage.position_repository import PositionRepository
from src.utils import metrics
from src.utils.logging import get_logger

logger = get_logger(__name__)

@dataclass
class MonitorSummary:
    """Aggregate result of one monitoring cycle."""
    success: bool
    positions_checked: int = 0
    buybacks_executed: int = 0
    buybacks_failed: int = 0
    results: List[CheckResult] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0
    
    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'positions_checked': self.positions_checked,
            'buybacks_executed': self.buybacks_executed,
            'buybacks_failed': self.buybacks_failed,
            'results': [r.to_dict() for r in self.results],
            'error': self.error,
            'duration_seconds': self.duration_seconds,
        }

class PositionMonitor:
    """
    Checks every OPEN position once per cycle.
    
    Args:
        repository: Position repository
        lifecycle_manager: Per-position check and forced close
        price_source: Current price provider
        max_workers: Positions checked concurrently (1 = sequential)
    """
    
    def __init__(
        self,
        repository: PositionRepository,
        lifecycle_manager: PositionLifecycleManager,
        price_source: BasePriceSource,
        max_workers: int = 1
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.repository = repository
        self.lifecycle_manager = lifecycle_manager
        self.price_source = price_source
        self.max_workers = max_workers
    
    def monitor_open_positions(self, strategy_filter: Optional[str] = None) -> MonitorSummary:
        """Run one monitoring cycle."""
        return self._run_batch(
            'monitor',
            strategy_filter,
            lambda position: self.lifecycle_manager.check_position(position, self.price_source)
        )
    
    def close_all_positions(self, strategy_filter: Optional[str] = None) -> MonitorSummary:
        """Force a buyback on every OPEN position, ignoring thresholds."""
        logger.warning("Closing all open positions", strategy=strategy_filter)
        return self._run_batch(
            'close_all',
            strategy_filter,
            lambda position: self.lifecycle_manager.close_position_now(position, self.price_source)
        )
    
    def _run_batch(
        self,
        cycle: str,
        strategy_filter: Optional[str],
        check: Callable[[Position], CheckResult]
    ) -> MonitorSummary:
        started = time.monotonic()
        
        try:
            positions = self.repository.get_open_positions(strategy_filter)
        except Exception as e:
            duration = time.monotonic() - started
            logger.error("Failed to load open positions", cycle=cycle, error=str(e))
            metrics.record_monitor_cycle('error', duration, 0)
            return MonitorSummary(success=False, error=str(e), duration_seconds=duration)
        
        if not positions:
            duration = time.monotonic() - started
            logger.info("No open positions", cycle=cycle, strategy=strategy_filter)
            metrics.record_monitor_cycle('empty', duration, 0)
            return MonitorSummary(success=True, duration_seconds=duration)
        
        logger.info("Checking open positions", cycle=cycle, count=len(positions))
        
        if self.max_workers > 1 and len(positions) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(positions))) as pool:
                results = list(pool.map(lambda p: self._check_isolated(p, check), positions))
        else:
            results = [self._check_isolated(p, check) for p in positions]
        
        summary = MonitorSummary(
            success=True,
            positions_checked=len(results),
            buybacks_executed=sum(1 for r in results if r.buyback_executed),
            buybacks_failed=sum(1 for r in results if r.buyback_failed),
            results=results,
            duration_seconds=time.monotonic() - started
        )
        metrics.record_monitor_cycle('ok', summary.duration_seconds, sum(1 for r in results if not r.terminal))
        logger.info(
            "Monitoring cycle complete",
            cycle=cycle,
            checked=summary.positions_checked,
            executed=summary.buybacks_executed,
            failed=summary.buybacks_failed,
            duration_seconds=round(summary.duration_seconds, 3)
        )
        return summary
    
    def _check_isolated(self, position: Position, check: Callable[[Position], CheckResult]) -> CheckResult:
        try:
            return check(position)
        except Exception as e:
            logger.error(
                "Position check failed",
                position_id=position.id,
                error_type=type(e).__name__,
                error=str(e)
            )
            return CheckResult(
                position_id=position.id,
                success=False,
                buyback_failed=True,
                error=f"{type(e).__name__}: {e}"
            )
