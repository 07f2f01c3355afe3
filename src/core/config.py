"""Typed configuration consumed by the buyback core."""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional
from src.core.errors import InvalidInput
from src.utils.constants import (
    DEFAULT_BASE_ASSET, DEFAULT_BASE_SYMBOL, DEFAULT_PROFIT_THRESHOLD,
    DEFAULT_LOSS_THRESHOLD, DEFAULT_MAX_RETRIES, DEFAULT_SLIPPAGE,
    DEFAULT_PRICE_TIMEOUT_SECONDS, DEFAULT_SWAP_TIMEOUT_SECONDS,
    DEFAULT_STALE_PRICE_ALERT_AFTER
)

def to_decimal(value, name: str = "value") -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise InvalidInput(f"{name} must be numeric, got {value!r}")
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidInput(f"{name} must be numeric, got {value!r}")
    if not result.is_finite():
        raise InvalidInput(f"{name} must be finite, got {value!r}")
    return result

@dataclass
class BuybackConfig:
    """
    Thresholds, retry budget and timeouts for the buyback core.
    
    Thresholds are signed fractions (0.05 = +5%, -0.02 = -2%).
    Timeouts of None disable the timeout wrapper.
    """
    profit_threshold: Decimal = DEFAULT_PROFIT_THRESHOLD
    loss_threshold: Decimal = DEFAULT_LOSS_THRESHOLD
    max_retries: int = DEFAULT_MAX_RETRIES
    slippage_tolerance: Decimal = DEFAULT_SLIPPAGE
    price_timeout_seconds: Optional[float] = DEFAULT_PRICE_TIMEOUT_SECONDS
    swap_timeout_seconds: Optional[float] = DEFAULT_SWAP_TIMEOUT_SECONDS
    stale_price_alert_after: int = DEFAULT_STALE_PRICE_ALERT_AFTER
    base_asset: str = DEFAULT_BASE_ASSET
    base_symbol: str = DEFAULT_BASE_SYMBOL
    
    def __post_init__(self):
        self.profit_threshold = to_decimal(self.profit_threshold, "profit_threshold")
        self.loss_threshold = to_decimal(self.loss_threshold, "loss_threshold")
        self.slippage_tolerance = to_decimal(self.slippage_tolerance, "slippage_tolerance")
        validate_thresholds(self.profit_threshold, self.loss_threshold)
        
        if int(self.max_retries) < 1:
            raise InvalidInput(f"max_retries must be >= 1, got {self.max_retries}")
        self.max_retries = int(self.max_retries)
        
        if not (Decimal(0) <= self.slippage_tolerance < Decimal(1)):
            raise InvalidInput(
                f"slippage_tolerance must be in [0, 1), got {self.slippage_tolerance}"
            )
        
        for name in ('price_timeout_seconds', 'swap_timeout_seconds'):
            timeout = getattr(self, name)
            if timeout is not None and timeout <= 0:
                raise InvalidInput(f"{name} must be positive or None, got {timeout}")
        
        if self.stale_price_alert_after < 1:
            raise InvalidInput(
                f"stale_price_alert_after must be >= 1, got {self.stale_price_alert_after}"
            )
        if not self.base_asset:
            raise InvalidInput("base_asset is required")
    
    @classmethod
    def from_settings(cls, settings) -> "BuybackConfig":
        """Build from application Settings."""
        return cls(
            profit_threshold=settings.PROFIT_THRESHOLD,
            loss_threshold=settings.LOSS_THRESHOLD,
            max_retries=settings.MAX_RETRIES,
            slippage_tolerance=settings.DEFAULT_SLIPPAGE,
            price_timeout_seconds=settings.PRICE_TIMEOUT_SECONDS or None,
            swap_timeout_seconds=settings.SWAP_TIMEOUT_SECONDS or None,
            stale_price_alert_after=settings.STALE_PRICE_ALERT_AFTER,
            base_asset=settings.BASE_ASSET,
            base_symbol=settings.BASE_SYMBOL,
        )

def validate_thresholds(profit_threshold: Decimal, loss_threshold: Decimal):
    """Thresholds must straddle zero: profit > 0 > loss."""
    if not profit_threshold > 0:
        raise InvalidInput(f"profit_threshold must be > 0, got {profit_threshold}")
    if not loss_threshold < 0:
        raise InvalidInput(f"loss_threshold must be < 0, got {loss_threshold}")
