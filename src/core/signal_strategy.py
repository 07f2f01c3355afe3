"""
Entry strategies.

Both strategies open positions by selling the base asset into a target
token. A golden-cross analysis enters on a death cross (base asset
weakening); DCA enters on a fixed schedule unless the market is too
volatile.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from src.core.indicators import (
    SELL, calculate_rsi, calculate_volatility, detect_golden_cross, detect_rsi_signal
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

CROSSOVER_WEIGHT = 0.7
RSI_CONFIRMATION_WEIGHT = 0.3
RSI_CONFLICT_PENALTY = 0.2

@dataclass
class StrategySignal:
    signal: Optional[str]
    confidence: float
    reasons: List[str] = field(default_factory=list)
    short_ma: Optional[float] = None
    long_ma: Optional[float] = None
    rsi: Optional[float] = None
    
    def is_actionable(self, minimum_confidence: float) -> bool:
        return self.signal is not None and self.confidence >= minimum_confidence

def analyze_golden_cross(
    prices: Sequence,
    short_period: int = 50,
    long_period: int = 200,
    use_rsi: bool = True,
    rsi_period: int = 14
) -> StrategySignal:
    """
    Combine the SMA crossover with RSI confirmation.
    
    Args:
        prices: Base asset prices, newest first
    
    Returns:
        StrategySignal with confidence capped at 1.0
    """
    crossover = detect_golden_cross(prices, short_period, long_period)
    rsi_signal = detect_rsi_signal(calculate_rsi(prices, rsi_period)) if use_rsi else None
    
    result = StrategySignal(
        signal=None,
        confidence=0.0,
        short_ma=crossover.short_ma,
        long_ma=crossover.long_ma,
        rsi=rsi_signal.rsi if rsi_signal else None
    )
    if crossover.signal is None:
        result.reasons.append(crossover.reason)
        return result
    
    result.signal = crossover.signal
    result.confidence = CROSSOVER_WEIGHT
    result.reasons.append(crossover.reason)
    
    if rsi_signal and rsi_signal.signal == crossover.signal:
        result.confidence += RSI_CONFIRMATION_WEIGHT
        result.reasons.append(rsi_signal.reason)
    elif rsi_signal and rsi_signal.signal is not None:
        result.confidence -= RSI_CONFLICT_PENALTY
        result.reasons.append(f"RSI conflict: {rsi_signal.reason}")
    
    result.confidence = min(round(result.confidence, 4), 1.0)
    return result

def is_entry_signal(signal: StrategySignal, minimum_confidence: float) -> bool:
    """Positions sell the base asset, so only SELL signals open one."""
    return signal.signal == SELL and signal.is_actionable(minimum_confidence)

def should_run_dca(last_entry_at: Optional[datetime], interval_hours: float, now: datetime = None) -> bool:
    """True when no DCA entry exists yet or the interval has elapsed."""
    if last_entry_at is None:
        return True
    now = now or datetime.utcnow()
    return now - last_entry_at >= timedelta(hours=interval_hours)

def dca_volatility_ok(prices: Sequence, max_volatility: float, window: int = 14) -> bool:
    """Skip DCA slots while volatility is above the limit; unknown counts as ok."""
    volatility = calculate_volatility(prices, window)
    if volatility is None:
        return True
    if volatility > max_volatility:
        logger.info(
            "DCA skipped, volatility above limit",
            volatility=round(volatility, 4),
            max_volatility=max_volatility
        )
        return False
    return True
