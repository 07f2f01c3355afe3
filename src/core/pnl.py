"""
Profit and loss evaluation for open positions.

Prices are quoted in base-asset units per held token. Thresholds are
signed fractions and are compared against the percentage result scaled
by 100, so 0.05 triggers at +5.00% and -0.02 at -2.00%. Both boundaries
are inclusive.

Every function here is pure and safe to call from any thread.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
from src.core.config import to_decimal
from src.core.errors import InvalidInput
from src.utils.constants import (
    DEFAULT_PROFIT_THRESHOLD, DEFAULT_LOSS_THRESHOLD, DEFAULT_BASE_SYMBOL, HUNDRED
)

class BuybackDecision(str, Enum):
    """Outcome of a threshold check."""
    PROFIT_TARGET = "PROFIT_TARGET"
    STOP_LOSS = "STOP_LOSS"
    HOLD = "HOLD"

@dataclass(frozen=True)
class PnLEvaluation:
    """Transient result of evaluating one position at one price."""
    pnl_percentage: Decimal
    decision: BuybackDecision
    description: str
    
    @property
    def should_buyback(self) -> bool:
        return self.decision != BuybackDecision.HOLD

@dataclass(frozen=True)
class ExpectedBuyback:
    """Expected and minimum base amounts for selling a token position."""
    expected: Decimal
    minimum: Decimal
    slippage_pct: Decimal

@dataclass(frozen=True)
class FinalPnL:
    """Realized result of a closed cycle, in base-asset units."""
    initial_amount: Decimal
    final_amount: Decimal
    absolute_pnl: Decimal
    percentage_pnl: Decimal
    
    @property
    def is_profit(self) -> bool:
        return self.absolute_pnl > 0

def calculate_pnl_percentage(entry_price, current_price) -> Decimal:
    """
    Percentage change from entry price to current price.
    
    Raises:
        InvalidInput: entry_price <= 0 or current_price < 0
    """
    entry = to_decimal(entry_price, "entry_price")
    current = to_decimal(current_price, "current_price")
    
    if entry <= 0:
        raise InvalidInput(f"Entry price must be positive, got {entry}")
    if current < 0:
        raise InvalidInput(f"Current price must be non-negative, got {current}")
    
    return (current - entry) / entry * HUNDRED

def evaluate(
    entry_price,
    current_price,
    profit_threshold=DEFAULT_PROFIT_THRESHOLD,
    loss_threshold=DEFAULT_LOSS_THRESHOLD
) -> PnLEvaluation:
    """
    Classify a position against its exit thresholds.
    
    Args:
        entry_price: Token price in base units at entry (> 0)
        current_price: Token price in base units now (>= 0)
        profit_threshold: Fractional profit trigger, e.g. 0.05
        loss_threshold: Fractional loss trigger, e.g. -0.02
    
    Returns:
        PnLEvaluation with the signed percentage and the decision
    """
    pnl_percentage = calculate_pnl_percentage(entry_price, current_price)
    profit_pct = to_decimal(profit_threshold, "profit_threshold") * HUNDRED
    loss_pct = to_decimal(loss_threshold, "loss_threshold") * HUNDRED
    
    if pnl_percentage >= profit_pct:
        return PnLEvaluation(
            pnl_percentage=pnl_percentage,
            decision=BuybackDecision.PROFIT_TARGET,
            description=f"Profit target reached: {pnl_percentage:.2f}% >= {profit_pct:.2f}%"
        )
    
    if pnl_percentage <= loss_pct:
        return PnLEvaluation(
            pnl_percentage=pnl_percentage,
            decision=BuybackDecision.STOP_LOSS,
            description=f"Stop loss triggered: {pnl_percentage:.2f}% <= {loss_pct:.2f}%"
        )
    
    return PnLEvaluation(
        pnl_percentage=pnl_percentage,
        decision=BuybackDecision.HOLD,
        description=(
            f"Position within thresholds: {pnl_percentage:.2f}% "
            f"({loss_pct:.2f}% to {profit_pct:.2f}%)"
        )
    )

def calculate_expected_buyback(token_amount, current_price, slippage) -> ExpectedBuyback:
    """Expected base amount for selling token_amount at current_price, and the floor after slippage."""
    amount = to_decimal(token_amount, "token_amount")
    price = to_decimal(current_price, "current_price")
    slip = to_decimal(slippage, "slippage")
    
    if amount <= 0:
        raise InvalidInput(f"Token amount must be positive, got {amount}")
    if price <= 0:
        raise InvalidInput(f"Current token price must be positive, got {price}")
    
    expected = amount * price
    return ExpectedBuyback(
        expected=expected,
        minimum=expected * (Decimal(1) - slip),
        slippage_pct=slip * HUNDRED
    )

def calculate_final_pnl(initial_amount, final_amount) -> FinalPnL:
    """Realized PnL of a cycle from base spent at entry and base recovered at exit."""
    initial = to_decimal(initial_amount, "initial_amount")
    final = to_decimal(final_amount, "final_amount")
    
    if initial <= 0:
        raise InvalidInput(f"Initial amount must be positive, got {initial}")
    if final < 0:
        raise InvalidInput(f"Final amount must be non-negative, got {final}")
    
    absolute = final - initial
    return FinalPnL(
        initial_amount=initial,
        final_amount=final,
        absolute_pnl=absolute,
        percentage_pnl=absolute / initial * HUNDRED
    )

def format_pnl(percentage, absolute: Optional[Decimal] = None, symbol: str = DEFAULT_BASE_SYMBOL) -> str:
    """Human-readable PnL, e.g. '📈 +6.00% (+0.6000 GALA)'."""
    pct = to_decimal(percentage, "percentage")
    emoji = "📈" if pct >= 0 else "📉"
    sign = "+" if pct >= 0 else ""
    result = f"{emoji} {sign}{pct:.2f}%"
    
    if absolute is not None:
        abs_value = to_decimal(absolute, "absolute")
        abs_sign = "+" if abs_value >= 0 else ""
        result += f" ({abs_sign}{abs_value:.4f} {symbol})"
    
    return result
