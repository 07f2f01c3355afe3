"""
Abstract swap executor interface.
All exchange adapters must implement this interface.

The base class owns the policy shared by every venue: pair and amount
guards, entry trade limits, slippage floors and dry-run receipts.
Adapters only fetch quotes and submit swaps.
"""
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from src.core.config import to_decimal
from src.core.errors import (
    InvalidInput, InvalidPair, QuoteUnavailable, SwapError, SwapFailed
)
from src.utils.constants import DEFAULT_BASE_ASSET, DEFAULT_SLIPPAGE
from src.utils.logging import get_logger

logger = get_logger(__name__)

@dataclass
class Quote:
    """Exact-input quote."""
    from_asset: str
    to_asset: str
    input_amount: Decimal
    output_amount: Decimal
    fee_tier: Optional[int] = None
    price_impact: Optional[Decimal] = None

@dataclass
class SwapReceipt:
    """Result of a swap; dry-run receipts carry only the quoted output."""
    from_asset: str
    to_asset: str
    input_amount: Decimal
    expected_output: Decimal
    minimum_output: Decimal
    transaction_id: str
    dry_run: bool
    actual_output: Optional[Decimal] = None
    fee_tier: Optional[int] = None
    executed_at: datetime = field(default_factory=datetime.utcnow)
    
    @property
    def output_amount(self) -> Decimal:
        """Actual output when live, quoted output in dry-run."""
        if self.actual_output is not None:
            return self.actual_output
        return self.expected_output
    
    @property
    def effective_slippage(self) -> Decimal:
        """Fraction lost against the quote."""
        if self.expected_output <= 0:
            return Decimal(0)
        return (self.expected_output - self.output_amount) / self.expected_output

class BaseSwapExecutor(ABC):
    """
    Abstract swap executor.
    Concrete venues implement _fetch_quote, _submit_swap and get_balance.
    """
    
    def __init__(
        self,
        base_asset: str = DEFAULT_BASE_ASSET,
        slippage_tolerance=DEFAULT_SLIPPAGE,
        dry_run: bool = True,
        min_trade_amount=None,
        max_trade_amount=None,
        min_seconds_between_trades: float = 0
    ):
        self.base_asset = base_asset
        self.slippage_tolerance = to_decimal(slippage_tolerance, "slippage_tolerance")
        self.dry_run = dry_run
        self.min_trade_amount = to_decimal(min_trade_amount, "min_trade_amount") if min_trade_amount is not None else None
        self.max_trade_amount = to_decimal(max_trade_amount, "max_trade_amount") if max_trade_amount is not None else None
        self.min_seconds_between_trades = min_seconds_between_trades
        self.last_entry_time: Optional[float] = None
        self._lock = threading.Lock()
    
    @abstractmethod
    def _fetch_quote(self, from_asset: str, to_asset: str, amount: Decimal) -> Quote:
        """Ask the venue for an exact-input quote."""
        pass
    
    @abstractmethod
    def _submit_swap(self, quote: Quote, minimum_output: Decimal) -> SwapReceipt:
        """Execute a quoted swap on the venue."""
        pass
    
    @abstractmethod
    def get_balance(self, asset: str) -> Decimal:
        """Wallet balance for an asset."""
        pass
    
    def quote(self, from_asset: str, to_asset: str, amount) -> Quote:
        """
        Get a quote for swapping `amount` of from_asset into to_asset.
        
        Raises:
            InvalidPair: same asset on both sides
            QuoteUnavailable: venue returned no usable quote
        """
        amount = self._validate_request(from_asset, to_asset, amount)
        
        try:
            quote = self._fetch_quote(from_asset, to_asset, amount)
        except SwapError:
            raise
        except Exception as e:
            raise QuoteUnavailable(f"Quote failed for {from_asset} -> {to_asset}: {e}") from e
        
        if quote is None or quote.output_amount <= 0:
            raise QuoteUnavailable(f"No liquidity for {from_asset} -> {to_asset}")
        
        logger.debug(
            "Quote received",
            from_asset=from_asset,
            to_asset=to_asset,
            input_amount=str(amount),
            output_amount=str(quote.output_amount),
            fee_tier=quote.fee_tier
        )
        return quote
    
    def swap(self, from_asset: str, to_asset: str, amount, minimum_output=None) -> SwapReceipt:
        """
        Swap `amount` of from_asset into to_asset.
        
        Args:
            minimum_output: Output floor; defaults to quote x (1 - slippage_tolerance)
        
        Raises:
            InvalidPair, InvalidInput: structural guards, before any venue call
            QuoteUnavailable, SwapFailed, InsufficientBalance: venue failures
        """
        amount = self._validate_request(from_asset, to_asset, amount)
        is_entry = from_asset == self.base_asset
        if is_entry:
            self._check_entry_limits(amount)
        
        quote = self.quote(from_asset, to_asset, amount)
        if minimum_output is None:
            min_out = quote.output_amount * (Decimal(1) - self.slippage_tolerance)
        else:
            min_out = to_decimal(minimum_output, "minimum_output")
        
        logger.info(
            "Executing swap",
            from_asset=from_asset,
            to_asset=to_asset,
            amount=str(amount),
            expected_output=str(quote.output_amount),
            minimum_output=str(min_out),
            slippage=f"{self.slippage_tolerance * 100}%",
            fee_tier=quote.fee_tier,
            dry_run=self.dry_run
        )
        
        if self.dry_run:
            logger.info("DRY RUN: swap simulated with quoted output")
            return SwapReceipt(
                from_asset=from_asset,
                to_asset=to_asset,
                input_amount=amount,
                expected_output=quote.output_amount,
                minimum_output=min_out,
                transaction_id=f"dry-run-{uuid.uuid4().hex}",
                dry_run=True,
                fee_tier=quote.fee_tier
            )
        
        try:
            receipt = self._submit_swap(quote, min_out)
        except SwapError:
            raise
        except Exception as e:
            raise SwapFailed(f"Swap failed for {from_asset} -> {to_asset}: {e}") from e
        
        if is_entry:
            with self._lock:
                self.last_entry_time = time.monotonic()
        
        logger.info(
            "Swap executed",
            transaction_id=receipt.transaction_id,
            from_asset=from_asset,
            to_asset=to_asset,
            output=str(receipt.output_amount)
        )
        return receipt
    
    def _validate_request(self, from_asset: str, to_asset: str, amount) -> Decimal:
        if not from_asset or not to_asset:
            raise InvalidInput("from_asset and to_asset are required")
        if from_asset == to_asset:
            raise InvalidPair(
                f"Cannot swap {from_asset} into itself: fromToken and toToken must be different"
            )
        amount = to_decimal(amount, "amount")
        if amount <= 0:
            raise InvalidInput(f"Swap amount must be positive, got {amount}")
        return amount
    
    def _check_entry_limits(self, amount: Decimal):
        if self.min_trade_amount is not None and amount < self.min_trade_amount:
            raise InvalidInput(f"Trade amount {amount} below minimum {self.min_trade_amount}")
        if self.max_trade_amount is not None and amount > self.max_trade_amount:
            raise InvalidInput(f"Trade amount {amount} above maximum {self.max_trade_amount}")
        
        with self._lock:
            last = self.last_entry_time
        if last is not None and self.min_seconds_between_trades > 0:
            elapsed = time.monotonic() - last
            if elapsed < self.min_seconds_between_trades:
                wait_minutes = int((self.min_seconds_between_trades - elapsed) // 60) + 1
                raise SwapFailed(f"Must wait {wait_minutes} minutes before next trade")
