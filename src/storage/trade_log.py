"""Trade log: one row per entry or buyback swap."""
from datetime import datetime
from typing import Callable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from src.core.errors import StorageError
from src.models.trades import Trade
from src.utils.logging import get_logger

logger = get_logger(__name__)

class TradeLog:
    """Records swaps so positions can reference their entry and exit trades."""
    
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
    
    def record_trade(
        self,
        strategy: str,
        symbol: str,
        side: str,
        amount,
        price,
        total_value,
        slippage,
        from_asset: str = None,
        to_asset: str = None,
        fee=0,
        status: str = 'COMPLETED',
        tx_hash: Optional[str] = None,
        dry_run: bool = True,
        executed_at: Optional[datetime] = None,
        notes: Optional[str] = None
    ) -> int:
        """
        Insert a trade row.
        
        Returns:
            The trade id
        """
        trade = Trade(
            strategy=strategy,
            symbol=symbol,
            side=side,
            from_asset=from_asset,
            to_asset=to_asset,
            amount=amount,
            price=price,
            total_value=total_value,
            slippage=slippage,
            fee=fee,
            status=status,
            tx_hash=tx_hash,
            dry_run=dry_run,
            executed_at=executed_at or datetime.utcnow(),
            notes=notes
        )
        with self.session_factory() as db:
            try:
                db.add(trade)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to record trade: {e}") from e
        
        logger.info(
            "Trade recorded",
            trade_id=trade.id,
            side=side,
            symbol=symbol,
            amount=str(amount),
            tx_hash=tx_hash,
            dry_run=dry_run
        )
        return trade.id
    
    def get_trade(self, trade_id: int) -> Optional[Trade]:
        with self.session_factory() as db:
            try:
                return db.get(Trade, trade_id)
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to load trade {trade_id}: {e}") from e
    
    def find_by_tx_hash(self, tx_hash: str) -> Optional[Trade]:
        with self.session_factory() as db:
            try:
                return db.query(Trade).filter(Trade.tx_hash == tx_hash).first()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to look up trade {tx_hash}: {e}") from e
    
    def recent_trades(self, limit: int = 50) -> List[Trade]:
        with self.session_factory() as db:
            try:
                return db.query(Trade).order_by(Trade.id.desc()).limit(limit).all()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to list trades: {e}") from e
