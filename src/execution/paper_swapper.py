"""
Paper trading swap venue.
Simulates swaps against oracle prices with a pool fee and slippage.
"""
import uuid
from decimal import Decimal
from typing import Dict
from src.core.config import to_decimal
from src.core.errors import InsufficientBalance, QuoteUnavailable, SwapFailed
from src.data.price_oracle import BasePriceSource
from src.execution.base_swapper import BaseSwapExecutor, Quote, SwapReceipt
from src.utils.constants import BPS_DIVISOR
from src.utils.logging import get_logger

logger = get_logger(__name__)

class PaperSwapExecutor(BaseSwapExecutor):
    """
    Simulated swap venue for paper trading.
    
    Features:
    - Quotes derived from the price source (token price in base units)
    - Pool fee and deterministic slippage on fills
    - Optional balance enforcement
    - No real funds at risk
    """
    
    def __init__(
        self,
        price_source: BasePriceSource,
        starting_balance=Decimal(1000),
        fee_rate=Decimal('0.003'),
        simulate_slippage: bool = True,
        slippage_bps: int = 50,
        enforce_balances: bool = True,
        **kwargs
    ):
        """
        Initialize paper venue.
        
        Args:
            price_source: Source of token prices in base units
            starting_balance: Base asset balance (default 1000)
            fee_rate: Pool fee as a fraction (default 0.3%)
            slippage_bps: Fill slippage applied to live paper swaps
            enforce_balances: Reject swaps larger than the simulated balance
        """
        kwargs.setdefault('dry_run', False)
        super().__init__(**kwargs)
        self.price_source = price_source
        self.fee_rate = to_decimal(fee_rate, "fee_rate")
        self.simulate_slippage = simulate_slippage
        self.slippage_bps = slippage_bps
        self.enforce_balances = enforce_balances
        self.balances: Dict[str, Decimal] = {
            self.base_asset: to_decimal(starting_balance, "starting_balance")
        }
        self.receipts: Dict[str, SwapReceipt] = {}
        
        logger.info(
            "Paper swap venue initialized",
            starting_balance=str(starting_balance),
            fee_rate=str(self.fee_rate),
            slippage_enabled=self.simulate_slippage,
            slippage_bps=self.slippage_bps
        )
    
    def get_balance(self, asset: str) -> Decimal:
        with self._lock:
            return self.balances.get(asset, Decimal(0))
    
    def _price_in_base(self, asset: str) -> Decimal:
        if asset == self.base_asset:
            return Decimal(1)
        result = self.price_source.get_current_price(asset)
        if not result.success or result.price is None or result.price <= 0:
            raise QuoteUnavailable(f"No price for {asset}: {result.error}")
        return result.price
    
    def _fetch_quote(self, from_asset: str, to_asset: str, amount: Decimal) -> Quote:
        rate = self._price_in_base(from_asset) / self._price_in_base(to_asset)
        gross = amount * rate
        output = gross - gross * self.fee_rate
        return Quote(
            from_asset=from_asset,
            to_asset=to_asset,
            input_amount=amount,
            output_amount=output,
            fee_tier=int(self.fee_rate * 1_000_000),
            price_impact=Decimal(0)
        )
    
    def _submit_swap(self, quote: Quote, minimum_output: Decimal) -> SwapReceipt:
        fill = quote.output_amount
        if self.simulate_slippage:
            fill -= fill * Decimal(self.slippage_bps) / BPS_DIVISOR
        
        if fill < minimum_output:
            raise SwapFailed(
                f"Slippage exceeded: fill {fill} below minimum {minimum_output}"
            )
        
        with self._lock:
            available = self.balances.get(quote.from_asset, Decimal(0))
            if self.enforce_balances and available < quote.input_amount:
                raise InsufficientBalance(
                    f"Insufficient {quote.from_asset}: need {quote.input_amount}, have {available}"
                )
            self.balances[quote.from_asset] = available - quote.input_amount
            self.balances[quote.to_asset] = self.balances.get(quote.to_asset, Decimal(0)) + fill
        
        receipt = SwapReceipt(
            from_asset=quote.from_asset,
            to_asset=quote.to_asset,
            input_amount=quote.input_amount,
            expected_output=quote.output_amount,
            minimum_output=minimum_output,
            transaction_id=f"paper-{uuid.uuid4().hex}",
            dry_run=False,
            actual_output=fill,
            fee_tier=quote.fee_tier
        )
        self.receipts[receipt.transaction_id] = receipt
        
        logger.info(
            "Paper swap filled",
            transaction_id=receipt.transaction_id,
            from_asset=quote.from_asset,
            to_asset=quote.to_asset,
            input_amount=str(quote.input_amount),
            fill=str(fill),
            slippage_applied=self.simulate_slippage
        )
        return receipt
