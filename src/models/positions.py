"""Position database model."""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Numeric, TIMESTAMP, Integer, Text
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from src.core.config import to_decimal
from src.core.errors import InvalidInput, InvalidState
from src.models.base import Base

class PositionStatus(str, Enum):
    """Position lifecycle states. CLOSED and FAILED are terminal."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    FAILED = "FAILED"

TERMINAL_STATUSES = (PositionStatus.CLOSED.value, PositionStatus.FAILED.value)

class Position(Base):
    """
    One "sell base, hold token, wait for exit" cycle.
    
    Prices are in base-asset units per token. Entry fields are immutable
    once set; status transitions go through PositionRepository.
    """
    __tablename__ = 'positions'
    
    # Primary key
    id = Column(Integer, primary_key=True)
    strategy = Column(String(50), nullable=False, index=True)
    pair_symbol = Column(String(64), nullable=False)
    token_symbol = Column(String(32), nullable=False)
    token_identifier = Column(String(128), nullable=False, index=True)
    
    # Entry details
    entry_trade_id = Column(Integer)
    entry_price = Column(Numeric, nullable=False)
    entry_amount = Column(Numeric, nullable=False)
    token_amount = Column(Numeric, nullable=False)
    
    # Exit thresholds (signed fractions)
    profit_threshold = Column(Numeric, nullable=False, default=0.05)
    loss_threshold = Column(Numeric, nullable=False, default=-0.02)
    
    # State
    status = Column(String(20), nullable=False, default=PositionStatus.OPEN.value, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    failure_reason = Column(Text)
    
    # Exit details
    close_trade_id = Column(Integer)
    exit_reason = Column(String(20))
    exit_price = Column(Numeric)
    final_base_amount = Column(Numeric)
    realized_pnl = Column(Numeric)
    return_pct = Column(Numeric)
    
    # Append-only audit trail
    notes = Column(Text, default="")
    
    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, server_default=func.now())
    closed_at = Column(TIMESTAMP)
    failed_at = Column(TIMESTAMP)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, server_default=func.now(), onupdate=datetime.utcnow)
    
    @validates('entry_price', 'entry_amount', 'token_amount')
    def _validate_entry_field(self, key, value):
        if getattr(self, key) is not None:
            raise InvalidState(f"{key} is immutable after creation")
        amount = to_decimal(value, key)
        if amount <= 0:
            raise InvalidInput(f"{key} must be > 0, got {amount}")
        return amount
    
    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN.value
    