"""
Technical indicators for entry signals.

All price series are ordered newest first. Indicators work in floats;
they drive entry signals only and never touch position accounting.
"""
from dataclasses import dataclass
from typing import Optional, Sequence
import numpy as np

BUY = "BUY"
SELL = "SELL"

@dataclass
class CrossoverSignal:
    signal: Optional[str]
    reason: str
    short_ma: Optional[float] = None
    long_ma: Optional[float] = None
    previous_short_ma: Optional[float] = None
    previous_long_ma: Optional[float] = None
    crossover_strength: Optional[float] = None

@dataclass
class RSISignal:
    signal: Optional[str]
    reason: str
    rsi: Optional[float] = None
    level: Optional[str] = None

def _as_array(prices: Sequence) -> np.ndarray:
    return np.asarray([float(p) for p in prices], dtype=float)

def calculate_sma(prices: Sequence, period: int) -> Optional[float]:
    """Mean of the newest `period` prices, None if there are too few."""
    if period <= 0 or len(prices) < period:
        return None
    return float(np.mean(_as_array(prices[:period])))

def detect_golden_cross(prices: Sequence, short_period: int = 50, long_period: int = 200) -> CrossoverSignal:
    """
    Compare today's short/long SMAs with yesterday's.
    
    Golden cross (short crosses above long) is BUY, death cross is SELL.
    """
    if len(prices) < long_period + 1:
        return CrossoverSignal(signal=None, reason='Insufficient historical data')
    
    short_ma = calculate_sma(prices, short_period)
    long_ma = calculate_sma(prices, long_period)
    previous = prices[1:]
    previous_short = calculate_sma(previous, short_period)
    previous_long = calculate_sma(previous, long_period)
    
    if not (short_ma and long_ma and previous_short and previous_long):
        return CrossoverSignal(
            signal=None,
            reason='Unable to calculate moving averages',
            short_ma=short_ma,
            long_ma=long_ma,
            previous_short_ma=previous_short,
            previous_long_ma=previous_long
        )
    
    signal = None
    reason = 'No crossover detected'
    if short_ma > long_ma and previous_short <= previous_long:
        signal = BUY
        reason = 'Golden Cross detected: Short MA crossed above Long MA'
    elif short_ma < long_ma and previous_short >= previous_long:
        signal = SELL
        reason = 'Death Cross detected: Short MA crossed below Long MA'
    
    return CrossoverSignal(
        signal=signal,
        reason=reason,
        short_ma=short_ma,
        long_ma=long_ma,
        previous_short_ma=previous_short,
        previous_long_ma=previous_long,
        crossover_strength=abs(short_ma - long_ma) / long_ma
    )

def calculate_rsi(prices: Sequence, period: int = 14) -> Optional[float]:
    """Simple-average RSI over the newest `period` changes."""
    if period <= 0 or len(prices) < period + 1:
        return None
    
    values = _as_array(prices)
    # newest first: change_i = p[i] - p[i+1]
    changes = values[:-1] - values[1:]
    window = changes[:period]
    avg_gain = np.clip(window, 0, None).sum() / period
    avg_loss = np.clip(-window, 0, None).sum() / period
    
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))

def detect_rsi_signal(rsi: Optional[float], overbought: float = 70, oversold: float = 30) -> RSISignal:
    if rsi is None:
        return RSISignal(signal=None, reason='RSI value not available')
    
    if rsi >= overbought:
        return RSISignal(SELL, f"RSI overbought ({rsi:.2f} >= {overbought})", rsi, 'overbought')
    if rsi <= oversold:
        return RSISignal(BUY, f"RSI oversold ({rsi:.2f} <= {oversold})", rsi, 'oversold')
    return RSISignal(None, 'RSI within normal range', rsi, 'normal')

def calculate_volatility(prices: Sequence, window: int = 14) -> Optional[float]:
    """Standard deviation of simple returns over the newest `window` periods."""
    if window < 2 or len(prices) < window + 1:
        return None
    
    values = _as_array(prices[:window + 1])
    if np.any(values[1:] <= 0):
        return None
    returns = values[:-1] / values[1:] - 1
    return float(np.std(returns))
