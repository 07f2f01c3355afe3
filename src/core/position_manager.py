"""
Position lifecycle manager.

Opens positions after a successful entry swap and runs the per-cycle
check: fetch price, evaluate PnL, hold or hand off to the buyback
executor. A failed price lookup never mutates the position.
"""
import threading
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Dict, Optional
from src.core.buyback_executor import MANUAL_CLOSE, BuybackExecutor, BuybackOutcome
from src.core.config import BuybackConfig, to_decimal, validate_thresholds
from src.core.errors import CallTimeout, InvalidInput, PriceUnavailable, StorageError, SwapError, TradingBotError
from src.core.pnl import evaluate
from src.data.price_oracle import BasePriceSource
from src.execution.base_swapper import BaseSwapExecutor
from src.models.positions import Position
from src.notifications.notifier import BaseNotifier
from src.storage.position_repository import PositionRepository
from src.storage.trade_log import TradeLog
from src.utils import metrics
from src.utils.logging import get_logger
from src.utils.timeouts import call_with_timeout

logger = get_logger(__name__)

@dataclass
class CheckResult:
    """Outcome of checking one position in a monitoring cycle."""
    position_id: int
    success: bool
    buyback_executed: bool = False
    buyback_failed: bool = False
    decision: Optional[str] = None
    pnl_percentage: Optional[Decimal] = None
    current_price: Optional[Decimal] = None
    final_base_amount: Optional[Decimal] = None
    absolute_pnl: Optional[Decimal] = None
    percentage_pnl: Optional[Decimal] = None
    terminal: bool = False
    error: Optional[str] = None
    
    @classmethod
    def from_outcome(cls, outcome: BuybackOutcome, decision: str, pnl_percentage, current_price) -> "CheckResult":
        return cls(
            position_id=outcome.position_id,
            success=outcome.success,
            buyback_executed=outcome.success,
            buyback_failed=not outcome.success,
            decision=decision,
            pnl_percentage=pnl_percentage,
            current_price=current_price,
            final_base_amount=outcome.final_base_amount,
            absolute_pnl=outcome.absolute_pnl,
            percentage_pnl=outcome.percentage_pnl,
            terminal=outcome.terminal,
            error=outcome.error
        )
    
    def to_dict(self) -> dict:
        return asdict(self)

@dataclass
class OpenPositionResult:
    """Outcome of an entry swap plus position creation."""
    success: bool
    position_id: Optional[int] = None
    entry_trade_id: Optional[int] = None
    entry_price: Optional[Decimal] = None
    token_amount: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    reconciliation_required: bool = False
    error: Optional[str] = None
    
    def to_dict(self) -> dict:
        return asdict(self)

class PositionLifecycleManager:
    """
    Drives positions from entry to CLOSED or FAILED.
    
    Args:
        repository: Position repository
        buyback_executor: Exit swap handler
        swap_executor: Venue used for entry swaps
        config: Thresholds, retry budget and timeouts
        trade_log: Where entry trades are recorded (optional)
        notifier: Lifecycle event sink (optional)
    """
    
    def __init__(
        self,
        repository: PositionRepository,
        buyback_executor: BuybackExecutor,
        swap_executor: BaseSwapExecutor,
        config: BuybackConfig,
        trade_log: Optional[TradeLog] = None,
        notifier: Optional[BaseNotifier] = None
    ):
        self.repository = repository
        self.buyback_executor = buyback_executor
        self.swap_executor = swap_executor
        self.config = config
        self.trade_log = trade_log
        self.notifier = notifier
        
        # Consecutive price failures per position; process memory only
        self._price_failures: Dict[int, int] = {}
        self._lock = threading.Lock()
    
    def open_position(
        self,
        strategy: str,
        token_identifier: str,
        token_symbol: str,
        entry_amount,
        pair_symbol: str = None,
        profit_threshold=None,
        loss_threshold=None
    ) -> OpenPositionResult:
        """
        Sell base asset into the target token and open a position.
        
        Returns:
            OpenPositionResult; reconciliation_required is set when the swap
            went through but the position row could not be written.
        """
        pair_symbol = pair_symbol or f"{self.config.base_symbol}/{token_symbol}"
        try:
            amount = to_decimal(entry_amount, "entry_amount")
            profit = to_decimal(
                self.config.profit_threshold if profit_threshold is None else profit_threshold,
                "profit_threshold"
            )
            loss = to_decimal(
                self.config.loss_threshold if loss_threshold is None else loss_threshold,
                "loss_threshold"
            )
            validate_thresholds(profit, loss)
        except InvalidInput as e:
            logger.warning("Rejected position before entry swap", strategy=strategy, pair=pair_symbol, error=str(e))
            return OpenPositionResult(success=False, error=f"InvalidInput: {e}")
        
        logger.info(
            "Opening position",
            strategy=strategy,
            pair=pair_symbol,
            entry_amount=str(amount)
        )
        
        try:
            receipt = call_with_timeout(
                self.swap_executor.swap,
                self.config.swap_timeout_seconds,
                self.config.base_asset,
                token_identifier,
                amount
            )
        except (SwapError, CallTimeout, InvalidInput) as e:
            logger.warning("Entry swap failed", strategy=strategy, pair=pair_symbol, error=str(e))
            return OpenPositionResult(success=False, error=f"{type(e).__name__}: {e}")
        
        token_amount = receipt.output_amount
        entry_price = amount / token_amount
        entry_trade_id = None
        
        try:
            if self.trade_log is not None:
                entry_trade_id = self.trade_log.record_trade(
                    strategy=strategy,
                    symbol=pair_symbol,
                    side='SELL',
                    from_asset=receipt.from_asset,
                    to_asset=receipt.to_asset,
                    amount=amount,
                    price=entry_price,
                    total_value=token_amount,
                    slippage=receipt.effective_slippage,
                    status='COMPLETED',
                    tx_hash=receipt.transaction_id,
                    dry_run=receipt.dry_run,
                    executed_at=receipt.executed_at,
                    notes=f"Entry for {strategy}"
                )
            position_id = self.repository.create_position(
                strategy=strategy,
                pair_symbol=pair_symbol,
                token_symbol=token_symbol,
                token_identifier=token_identifier,
                entry_price=entry_price,
                entry_amount=amount,
                token_amount=token_amount,
                entry_trade_id=entry_trade_id,
                profit_threshold=profit,
                loss_threshold=loss,
                notes=f"Opened by {strategy}: sold {amount} {self.config.base_symbol} "
                      f"for {token_amount} {token_symbol}, tx {receipt.transaction_id}"
            )
        except TradingBotError as e:
            logger.error(
                "Entry swap succeeded but position was not recorded; reconciliation required",
                strategy=strategy,
                pair=pair_symbol,
                transaction_id=receipt.transaction_id,
                token_amount=str(token_amount),
                error=str(e)
            )
            self._notify(
                'notify_error',
                'Position reconciliation required',
                str(e),
                {
                    'strategy': strategy,
                    'pair': pair_symbol,
                    'transaction_id': receipt.transaction_id,
                    'token_amount': str(token_amount),
                }
            )
            return OpenPositionResult(
                success=False,
                entry_trade_id=entry_trade_id,
                entry_price=entry_price,
                token_amount=token_amount,
                transaction_id=receipt.transaction_id,
                reconciliation_required=True,
                error=str(e)
            )
        
        metrics.record_position_opened(strategy)
        try:
            self._notify('notify_position_opened', self.repository.get_position(position_id))
        except StorageError as e:
            logger.warning("Could not reload position for notification", position_id=position_id, error=str(e))
        
        return OpenPositionResult(
            success=True,
            position_id=position_id,
            entry_trade_id=entry_trade_id,
            entry_price=entry_price,
            token_amount=token_amount,
            transaction_id=receipt.transaction_id
        )
    
    def check_position(self, position: Position, price_source: BasePriceSource) -> CheckResult:
        """
        Evaluate one OPEN position and execute a buyback if a threshold is hit.
        
        Raises:
            StorageError: a repository write failed during the buyback
            InvalidState: position is not OPEN
        """
        try:
            current_price = self._fetch_price(position, price_source)
        except Exception as e:
            return self._price_unavailable(position, e)
        self._reset_price_failures(position.id)
        
        evaluation = evaluate(
            position.entry_price,
            current_price,
            position.profit_threshold,
            position.loss_threshold
        )
        logger.info(
            "Position evaluated",
            position_id=position.id,
            pair=position.pair_symbol,
            entry_price=str(position.entry_price),
            current_price=str(current_price),
            pnl_percentage=str(evaluation.pnl_percentage),
            decision=evaluation.decision.value
        )
        
        if not evaluation.should_buyback:
            return CheckResult(
                position_id=position.id,
                success=True,
                decision=evaluation.decision.value,
                pnl_percentage=evaluation.pnl_percentage,
                current_price=current_price
            )
        
        outcome = self.buyback_executor.execute_buyback(
            position, current_price, evaluation.decision.value
        )
        return CheckResult.from_outcome(
            outcome, evaluation.decision.value, evaluation.pnl_percentage, current_price
        )
    
    def close_position_now(self, position: Position, price_source: Optional[BasePriceSource] = None) -> CheckResult:
        """Forced exit regardless of thresholds; the price is fetched best-effort."""
        current_price = None
        if price_source is not None:
            try:
                current_price = self._fetch_price(position, price_source)
            except Exception as e:
                logger.warning(
                    "Price unavailable for forced close, proceeding without it",
                    position_id=position.id,
                    error=str(e)
                )
        
        outcome = self.buyback_executor.execute_buyback(position, current_price, MANUAL_CLOSE)
        if outcome.terminal:
            self._reset_price_failures(position.id)
        return CheckResult.from_outcome(outcome, MANUAL_CLOSE, None, current_price)
    
    def _fetch_price(self, position: Position, price_source: BasePriceSource) -> Decimal:
        result = call_with_timeout(
            price_source.get_current_price,
            self.config.price_timeout_seconds,
            position.token_identifier
        )
        if not result.success or result.price is None:
            raise PriceUnavailable(result.error or f"No price for {position.token_identifier}")
        return to_decimal(result.price, "current_price")
    
    def _price_unavailable(self, position: Position, error: Exception) -> CheckResult:
        with self._lock:
            failures = self._price_failures.get(position.id, 0) + 1
            self._price_failures[position.id] = failures
        
        metrics.record_price_fetch_failure()
        logger.warning(
            "Price unavailable, skipping position this cycle",
            position_id=position.id,
            token=position.token_identifier,
            consecutive_failures=failures,
            error=str(error)
        )
        if failures % self.config.stale_price_alert_after == 0:
            self._notify('notify_stale_position', position, failures)
        
        return CheckResult(
            position_id=position.id,
            success=False,
            buyback_failed=True,
            error=f"Price unavailable: {error}"
        )
    
    def _reset_price_failures(self, position_id: int):
        with self._lock:
            self._price_failures.pop(position_id, None)
    
    def consecutive_price_failures(self, position_id: int) -> int:
        with self._lock:
            return self._price_failures.get(position_id, 0)
    
    def _notify(self, method: str, *args):
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, method)(*args)
        except Exception as e:
            logger.warning("Notification failed", notification=method, error=str(e))
