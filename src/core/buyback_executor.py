"""
Buyback execution: the exit swap back into the base asset.

Failed swaps consume one retry from the position's persisted budget;
the attempt that reaches max_retries moves the position to FAILED.
A successful swap always closes the position, even when the exit trade
row cannot be written.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional
from src.core.config import BuybackConfig, to_decimal
from src.core.errors import CallTimeout, InvalidState, StorageError, SwapError
from src.core.pnl import calculate_expected_buyback, calculate_final_pnl, format_pnl
from src.execution.base_swapper import BaseSwapExecutor
from src.models.positions import Position, PositionStatus
from src.notifications.notifier import BaseNotifier
from src.storage.position_repository import PositionRepository
from src.storage.trade_log import TradeLog
from src.utils import metrics
from src.utils.logging import get_logger
from src.utils.timeouts import call_with_timeout

logger = get_logger(__name__)

MANUAL_CLOSE = "MANUAL"

@dataclass
class BuybackOutcome:
    """Result of one buyback attempt."""
    success: bool
    position_id: int
    status: str
    terminal: bool = False
    reason: Optional[str] = None
    final_base_amount: Optional[Decimal] = None
    absolute_pnl: Optional[Decimal] = None
    percentage_pnl: Optional[Decimal] = None
    close_trade_id: Optional[int] = None
    transaction_id: Optional[str] = None
    retry_count: Optional[int] = None
    dry_run: bool = False
    error: Optional[str] = None
    
    def to_dict(self) -> dict:
        return asdict(self)

class BuybackExecutor:
    """
    Sells a position's tokens back into the base asset and records the result.
    
    Args:
        repository: Position repository
        swap_executor: Venue used for the exit swap
        config: Thresholds, retry budget and timeouts
        trade_log: Where exit trades are recorded (optional)
        notifier: Lifecycle event sink (optional)
    """
    
    def __init__(
        self,
        repository: PositionRepository,
        swap_executor: BaseSwapExecutor,
        config: BuybackConfig,
        trade_log: Optional[TradeLog] = None,
        notifier: Optional[BaseNotifier] = None
    ):
        self.repository = repository
        self.swap_executor = swap_executor
        self.config = config
        self.trade_log = trade_log
        self.notifier = notifier
    
    def execute_buyback(self, position: Position, current_price=None, reason: str = None) -> BuybackOutcome:
        """
        Run the exit swap for an OPEN position.
        
        Args:
            position: Position as read at the start of this cycle
            current_price: Price that triggered the exit, for the audit trail
            reason: PROFIT_TARGET, STOP_LOSS or MANUAL
        
        Raises:
            InvalidState: position is not OPEN
            StorageError: repository write failed
        """
        if position.status != PositionStatus.OPEN.value:
            logger.error(
                "Buyback requested for non-OPEN position",
                position_id=position.id,
                status=position.status
            )
            raise InvalidState(f"Position {position.id} is {position.status}, not OPEN")
        
        reason = str(getattr(reason, 'value', reason) or MANUAL_CLOSE)
        logger.info(
            "Executing buyback",
            position_id=position.id,
            pair=position.pair_symbol,
            token_amount=str(position.token_amount),
            current_price=str(current_price) if current_price is not None else None,
            reason=reason,
            attempt=position.retry_count + 1
        )
        minimum_output = self._minimum_output(position, current_price)
        
        try:
            receipt = call_with_timeout(
                self.swap_executor.swap,
                self.config.swap_timeout_seconds,
                position.token_identifier,
                self.config.base_asset,
                position.token_amount,
                minimum_output=minimum_output
            )
        except (SwapError, CallTimeout) as e:
            return self._handle_swap_failure(position, reason, e)
        
        metrics.record_buyback_attempt('success')
        final_base_amount = receipt.output_amount
        final_pnl = calculate_final_pnl(position.entry_amount, final_base_amount)
        close_trade_id = self._record_exit_trade(position, receipt, reason)
        
        notes = (
            f"Buyback {reason}: sold {position.token_amount} {position.token_symbol} for "
            f"{final_base_amount} {self.config.base_symbol} "
            f"({format_pnl(final_pnl.percentage_pnl, final_pnl.absolute_pnl, self.config.base_symbol)}), "
            f"tx {receipt.transaction_id}"
        )
        try:
            closed = self.repository.close_position(
                position.id,
                close_trade_id,
                notes,
                exit_reason=reason,
                exit_price=current_price,
                final_base_amount=final_base_amount,
                realized_pnl=final_pnl.absolute_pnl,
                return_pct=final_pnl.percentage_pnl
            )
        except StorageError:
            logger.error(
                "Buyback swap succeeded but position could not be closed; reconciliation required",
                position_id=position.id,
                transaction_id=receipt.transaction_id
            )
            raise
        
        metrics.record_position_closed(reason)
        outcome = BuybackOutcome(
            success=True,
            position_id=position.id,
            status=closed.status,
            terminal=True,
            reason=reason,
            final_base_amount=final_base_amount,
            absolute_pnl=final_pnl.absolute_pnl,
            percentage_pnl=final_pnl.percentage_pnl,
            close_trade_id=close_trade_id,
            transaction_id=receipt.transaction_id,
            retry_count=closed.retry_count,
            dry_run=receipt.dry_run
        )
        logger.info(
            "Buyback completed",
            position_id=position.id,
            final_base_amount=str(final_base_amount),
            pnl=format_pnl(final_pnl.percentage_pnl, final_pnl.absolute_pnl, self.config.base_symbol),
            dry_run=receipt.dry_run
        )
        self._notify('notify_buyback', closed, outcome)
        return outcome
    
    def _handle_swap_failure(self, position: Position, reason: str, error: Exception) -> BuybackOutcome:
        new_retry_count = position.retry_count + 1
        message = f"{type(error).__name__}: {error}"
        
        if new_retry_count >= self.config.max_retries:
            failed = self.repository.mark_failed(
                position.id,
                f"Buyback failed after {new_retry_count} attempts. Last error: {message}",
                retry_count=new_retry_count
            )
            metrics.record_buyback_attempt('failed')
            metrics.record_position_failed()
            logger.error(
                "Buyback retries exhausted, position FAILED",
                position_id=position.id,
                retry_count=new_retry_count,
                max_retries=self.config.max_retries,
                error=message
            )
            self._notify('notify_position_failed', failed, message)
            return BuybackOutcome(
                success=False,
                position_id=position.id,
                status=failed.status,
                terminal=True,
                reason=reason,
                retry_count=new_retry_count,
                error=message
            )
        
        updated = self.repository.update_retry(position.id, new_retry_count, message)
        metrics.record_buyback_attempt('retry')
        logger.warning(
            "Buyback failed, will retry next cycle",
            position_id=position.id,
            retry_count=new_retry_count,
            max_retries=self.config.max_retries,
            error=message
        )
        return BuybackOutcome(
            success=False,
            position_id=position.id,
            status=updated.status,
            terminal=False,
            reason=reason,
            retry_count=new_retry_count,
            error=message
        )
    
    def _minimum_output(self, position: Position, current_price) -> Optional[Decimal]:
        """Output floor from the price that triggered the exit; None lets the venue use its quote."""
        if current_price is None or to_decimal(current_price, "current_price") <= 0:
            return None
        return calculate_expected_buyback(
            position.token_amount, current_price, self.config.slippage_tolerance
        ).minimum
    
    def _record_exit_trade(self, position: Position, receipt, reason: str) -> Optional[int]:
        """Write the BUY trade; a storage failure must not block the close."""
        if self.trade_log is None:
            return None
        amount = receipt.input_amount
        price = receipt.output_amount / amount if amount > 0 else Decimal(0)
        try:
            return self.trade_log.record_trade(
                strategy=position.strategy,
                symbol=position.pair_symbol,
                side='BUY',
                from_asset=receipt.from_asset,
                to_asset=receipt.to_asset,
                amount=amount,
                price=price,
                total_value=receipt.output_amount,
                slippage=receipt.effective_slippage,
                status='COMPLETED',
                tx_hash=receipt.transaction_id,
                dry_run=receipt.dry_run,
                executed_at=receipt.executed_at,
                notes=f"Buyback for position {position.id} ({reason})"
            )
        except StorageError as e:
            logger.warning(
                "Exit trade could not be recorded; closing without trade reference",
                position_id=position.id,
                transaction_id=receipt.transaction_id,
                error=str(e)
            )
            return None
    
    def _notify(self, method: str, *args):
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, method)(*args)
        except Exception as e:
            logger.warning("Notification failed", notification=method, error=str(e))
