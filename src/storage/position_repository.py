"""
Position repository.

Each public method runs in its own session and transaction, so every call
is atomic on its own and the repository can be shared between worker
threads. Status transitions only ever leave OPEN; rows are never deleted.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from src.core.config import to_decimal, validate_thresholds
from src.core.errors import InvalidInput, InvalidState, NotFound, StorageError
from src.models.audit_log import AuditLog
from src.models.positions import Position, PositionStatus
from src.utils.constants import DEFAULT_PROFIT_THRESHOLD, DEFAULT_LOSS_THRESHOLD, DEFAULT_QUERY_LIMIT
from src.utils.hashing import create_event_hash
from src.utils.logging import get_logger

logger = get_logger(__name__)

AUDIT_ACTOR = "buyback_engine"

def append_note(existing: Optional[str], note: str, timestamp: datetime = None) -> str:
    """Append one timestamped line to a notes field."""
    if not note:
        return existing or ""
    stamp = (timestamp or datetime.utcnow()).strftime("%Y-%m-%dT%H:%M:%SZ")
    line = f"[{stamp}] {note}"
    return f"{existing}\n{line}" if existing else line

def _snapshot(position: Position) -> Dict:
    return {
        'status': position.status,
        'retry_count': position.retry_count,
        'close_trade_id': position.close_trade_id,
        'entry_price': str(position.entry_price) if position.entry_price is not None else None,
        'token_amount': str(position.token_amount) if position.token_amount is not None else None,
    }

class PositionRepository:
    """
    CRUD and status transitions for positions.
    
    Args:
        session_factory: Callable returning a new SQLAlchemy Session
    """
    
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
    
    def create_position(
        self,
        strategy: str,
        pair_symbol: str,
        token_symbol: str,
        token_identifier: str,
        entry_price,
        entry_amount,
        token_amount,
        entry_trade_id: Optional[int] = None,
        profit_threshold=DEFAULT_PROFIT_THRESHOLD,
        loss_threshold=DEFAULT_LOSS_THRESHOLD,
        notes: str = None
    ) -> int:
        """
        Insert a new OPEN position.
        
        Returns:
            The new position id
        """
        profit = to_decimal(profit_threshold, "profit_threshold")
        loss = to_decimal(loss_threshold, "loss_threshold")
        validate_thresholds(profit, loss)
        
        position = Position(
            strategy=strategy,
            pair_symbol=pair_symbol,
            token_symbol=token_symbol,
            token_identifier=token_identifier,
            entry_trade_id=entry_trade_id,
            entry_price=entry_price,
            entry_amount=entry_amount,
            token_amount=token_amount,
            profit_threshold=profit,
            loss_threshold=loss,
            status=PositionStatus.OPEN.value,
            retry_count=0,
            notes=append_note(None, notes or f"Opened by {strategy}")
        )
        
        with self.session_factory() as db:
            try:
                db.add(position)
                db.flush()
                self._record_audit(db, position, 'POSITION_OPENED', 'open', None, None)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to create position: {e}") from e
        
        logger.info(
            "Position created",
            position_id=position.id,
            strategy=strategy,
            pair=pair_symbol,
            entry_price=str(position.entry_price),
            token_amount=str(position.token_amount)
        )
        return position.id
    
    def get_open_positions(self, strategy: Optional[str] = None) -> List[Position]:
        """All OPEN positions, oldest first, optionally filtered by strategy."""
        with self.session_factory() as db:
            try:
                query = db.query(Position).filter(Position.status == PositionStatus.OPEN.value)
                if strategy:
                    query = query.filter(Position.strategy == strategy)
                return query.order_by(Position.id).all()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to load open positions: {e}") from e
    
    def get_position(self, position_id: int) -> Position:
        """Load one position by id."""
        with self.session_factory() as db:
            try:
                position = db.get(Position, position_id)
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to load position {position_id}: {e}") from e
        if position is None:
            raise NotFound(f"Position {position_id} not found")
        return position
    
    def list_positions(
        self,
        status: Optional[str] = None,
        strategy: Optional[str] = None,
        limit: int = DEFAULT_QUERY_LIMIT
    ) -> List[Position]:
        """Newest positions first with optional filters."""
        with self.session_factory() as db:
            try:
                query = db.query(Position)
                if status:
                    query = query.filter(Position.status == status.upper())
                if strategy:
                    query = query.filter(Position.strategy == strategy)
                return query.order_by(Position.id.desc()).limit(limit).all()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to list positions: {e}") from e
    
    def close_position(
        self,
        position_id: int,
        close_trade_id: Optional[int],
        notes: str,
        exit_reason: Optional[str] = None,
        exit_price=None,
        final_base_amount=None,
        realized_pnl=None,
        return_pct=None
    ) -> Position:
        """
        Transition OPEN -> CLOSED.
        
        Raises:
            NotFound: position missing or not OPEN
        """
        with self.session_factory() as db:
            try:
                position = self._load_open(db, position_id)
                before = _snapshot(position)
                now = datetime.utcnow()
                
                position.status = PositionStatus.CLOSED.value
                position.close_trade_id = close_trade_id
                position.closed_at = now
                position.exit_reason = exit_reason
                position.exit_price = exit_price
                position.final_base_amount = final_base_amount
                position.realized_pnl = realized_pnl
                position.return_pct = return_pct
                position.notes = append_note(position.notes, notes, now)
                
                self._record_audit(db, position, 'POSITION_CLOSED', 'close', exit_reason, before)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to close position {position_id}: {e}") from e
        
        logger.info(
            "Position closed",
            position_id=position_id,
            close_trade_id=close_trade_id,
            exit_reason=exit_reason
        )
        return position
    
    def update_retry(self, position_id: int, new_retry_count: int, note: str) -> Position:
        """
        Record a failed buyback attempt; the position stays OPEN.
        
        Raises:
            NotFound: position missing or not OPEN
            InvalidState: new_retry_count does not increase the counter
        """
        with self.session_factory() as db:
            try:
                position = self._load_open(db, position_id)
                if new_retry_count <= position.retry_count:
                    raise InvalidState(
                        f"Retry count for position {position_id} must increase "
                        f"({position.retry_count} -> {new_retry_count})"
                    )
                before = _snapshot(position)
                position.retry_count = new_retry_count
                position.notes = append_note(
                    position.notes, f"Buyback attempt {new_retry_count} failed: {note}"
                )
                self._record_audit(db, position, 'BUYBACK_RETRY', 'retry', note, before)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to update retry for position {position_id}: {e}") from e
        
        logger.info("Buyback retry recorded", position_id=position_id, retry_count=new_retry_count)
        return position
    
    def mark_failed(self, position_id: int, reason: str, retry_count: Optional[int] = None) -> Position:
        """
        Transition OPEN -> FAILED (terminal).
        
        Raises:
            NotFound: position missing or not OPEN
        """
        with self.session_factory() as db:
            try:
                position = self._load_open(db, position_id)
                before = _snapshot(position)
                now = datetime.utcnow()
                
                if retry_count is not None:
                    if retry_count < position.retry_count:
                        raise InvalidState(
                            f"Retry count for position {position_id} cannot decrease "
                            f"({position.retry_count} -> {retry_count})"
                        )
                    position.retry_count = retry_count
                position.status = PositionStatus.FAILED.value
                position.failed_at = now
                position.failure_reason = reason
                position.notes = append_note(position.notes, f"Marked FAILED: {reason}", now)
                
                self._record_audit(db, position, 'POSITION_FAILED', 'fail', reason, before)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to mark position {position_id} failed: {e}") from e
        
        logger.warning("Position marked FAILED", position_id=position_id, reason=reason)
        return position
    
    def last_entry_at(self, strategy: str, token_identifier: Optional[str] = None) -> Optional[datetime]:
        """Creation time of the newest position for a strategy, any status."""
        with self.session_factory() as db:
            try:
                query = db.query(func.max(Position.created_at)).filter(Position.strategy == strategy)
                if token_identifier:
                    query = query.filter(Position.token_identifier == token_identifier)
                return query.scalar()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to load last entry for {strategy}: {e}") from e
    
    def get_stats(self) -> Dict:
        """Counts per status plus realized PnL over closed positions."""
        with self.session_factory() as db:
            try:
                counts = dict(
                    db.query(Position.status, func.count(Position.id))
                    .group_by(Position.status)
                    .all()
                )
                closed = PositionStatus.CLOSED.value
                total_pnl = db.query(func.sum(Position.realized_pnl)).filter(
                    Position.status == closed
                ).scalar() or Decimal(0)
                winners = db.query(Position).filter(
                    Position.status == closed,
                    Position.realized_pnl > 0
                ).count()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to compute position stats: {e}") from e
        
        closed_count = counts.get(closed, 0)
        win_rate = (winners / closed_count * 100) if closed_count > 0 else 0
        return {
            "total": sum(counts.values()),
            "open": counts.get(PositionStatus.OPEN.value, 0),
            "closed": closed_count,
            "failed": counts.get(PositionStatus.FAILED.value, 0),
            "total_pnl": float(total_pnl),
            "win_rate": round(win_rate, 2)
        }
    
    def get_audit_trail(self, position_id: int) -> List[AuditLog]:
        """Audit rows for one position, oldest first."""
        with self.session_factory() as db:
            try:
                return db.query(AuditLog).filter(
                    AuditLog.entity_type == 'position',
                    AuditLog.entity_id == str(position_id)
                ).order_by(AuditLog.id).all()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to load audit trail: {e}") from e
    
    def _load_open(self, db: Session, position_id: int) -> Position:
        position = db.query(Position).filter(Position.id == position_id).with_for_update().first()
        if position is None:
            raise NotFound(f"Position {position_id} not found")
        if position.status != PositionStatus.OPEN.value:
            raise NotFound(f"Position {position_id} is {position.status}, not OPEN")
        return position
    
    def _record_audit(
        self,
        db: Session,
        position: Position,
        event_type: str,
        action: str,
        reason: Optional[str],
        before: Optional[Dict]
    ):
        previous = db.query(AuditLog.event_hash).order_by(AuditLog.id.desc()).first()
        previous_hash = previous[0] if previous else None
        timestamp = datetime.utcnow()
        after = _snapshot(position)
        
        db.add(AuditLog(
            timestamp=timestamp,
            event_type=event_type,
            entity_type='position',
            entity_id=str(position.id),
            actor=AUDIT_ACTOR,
            action=action,
            reason=(reason or "")[:255] or None,
            before_state=before,
            after_state=after,
            event_hash=create_event_hash(timestamp, event_type, str(position.id), after, previous_hash),
            previous_hash=previous_hash
        ))
