"""Audit rows written on every position transition."""
from sqlalchemy import Column, Index, Integer, JSON, String, TIMESTAMP
from sqlalchemy.sql import func
from src.models.base import Base

class AuditLog(Base):
    """
    One row per OPEN/retry/CLOSED/FAILED transition.

    event_hash covers the row's after_state plus the hash of the row
    written before it, so rows are never updated in place.
    """
    __tablename__ = 'audit_log'
    __table_args__ = (
        Index('ix_audit_log_entity', 'entity_type', 'entity_id'),
    )

    id = Column(Integer, primary_key=True)
    timestamp = Column(TIMESTAMP, nullable=False, server_default=func.now(), index=True)

    # POSITION_OPENED, BUYBACK_RETRY, POSITION_CLOSED, POSITION_FAILED
    event_type = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False, default='position')
    entity_id = Column(String(64), nullable=False)
    actor = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    reason = Column(String(255))

    before_state = Column(JSON)
    after_state = Column(JSON)

    event_hash = Column(String(64), nullable=False, unique=True)
    previous_hash = Column(String(64))

    def __repr__(self):
        return f"<AuditLog {self.event_type} {self.entity_type}:{self.entity_id}>"
