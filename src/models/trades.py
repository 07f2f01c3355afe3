"""Trade database model."""
from datetime import datetime
from sqlalchemy import Column, String, Numeric, TIMESTAMP, Integer, Text, Boolean
from sqlalchemy.sql import func
from src.models.base import Base

class Trade(Base):
    """
    Individual swaps sent to the exchange (entries and buybacks).
    """
    __tablename__ = 'trades'
    
    # Primary key
    id = Column(Integer, primary_key=True)
    strategy = Column(String(50), nullable=False, index=True)
    symbol = Column(String(64), nullable=False)
    side = Column(String(4), nullable=False)
    
    # Swap details
    from_asset = Column(String(128))
    to_asset = Column(String(128))
    amount = Column(Numeric, nullable=False)
    price = Column(Numeric, nullable=False)
    total_value = Column(Numeric, nullable=False)
    slippage = Column(Numeric, nullable=False)
    fee = Column(Numeric, default=0)
    
    # Execution status
    status = Column(String(20), nullable=False, default='PENDING', index=True)
    tx_hash = Column(String(128), index=True)
    dry_run = Column(Boolean, nullable=False, default=True)
    
    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, server_default=func.now())
    executed_at = Column(TIMESTAMP)
    
    notes = Column(Text)
