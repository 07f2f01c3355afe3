"""
Position management endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from src.api.dependencies import get_components
from src.core.bootstrap import Components
from src.core.errors import InvalidState, NotFound
from src.utils.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from src.utils.hashing import event_hash_matches

router = APIRouter()

class PositionResponse(BaseModel):
    id: int
    strategy: str
    pair_symbol: str
    token_symbol: str
    token_identifier: str
    entry_price: Decimal
    entry_amount: Decimal
    token_amount: Decimal
    profit_threshold: Decimal
    loss_threshold: Decimal
    status: str
    retry_count: int
    entry_trade_id: Optional[int]
    close_trade_id: Optional[int]
    exit_reason: Optional[str]
    final_base_amount: Optional[Decimal]
    realized_pnl: Optional[Decimal]
    return_pct: Optional[Decimal]
    failure_reason: Optional[str]
    notes: Optional[str]
    created_at: datetime
    closed_at: Optional[datetime]
    failed_at: Optional[datetime]
    
    class Config:
        from_attributes = True

@router.get("/", response_model=List[PositionResponse])
def list_positions(
    status: Optional[str] = Query(None, description="Filter by status (OPEN, CLOSED, FAILED)"),
    strategy: Optional[str] = Query(None, description="Filter by strategy"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT, description="Maximum number of results"),
    components: Components = Depends(get_components)
):
    """
    List positions with optional filters.
    """
    return components.repository.list_positions(status=status, strategy=strategy, limit=limit)

@router.get("/stats/summary")
def position_stats(components: Components = Depends(get_components)):
    """
    Get position statistics summary.
    """
    return components.repository.get_stats()

@router.get("/{position_id}", response_model=PositionResponse)
def get_position(position_id: int, components: Components = Depends(get_components)):
    """
    Get specific position by ID.
    """
    return _get(components, position_id)

@router.get("/{position_id}/audit")
def position_audit(position_id: int, components: Components = Depends(get_components)):
    """
    Audit trail for one position with per-row hash verification.
    """
    _get(components, position_id)
    events = components.repository.get_audit_trail(position_id)
    return {
        "position_id": position_id,
        "hashes_valid": all(event_hash_matches(row) for row in events),
        "events": [
            {
                "timestamp": row.timestamp,
                "event_type": row.event_type,
                "action": row.action,
                "reason": row.reason,
                "before_state": row.before_state,
                "after_state": row.after_state,
                "event_hash": row.event_hash,
                "previous_hash": row.previous_hash,
            }
            for row in events
        ]
    }

@router.post("/{position_id}/check")
def check_position(position_id: int, components: Components = Depends(get_components)):
    """
    Re-check one position against its thresholds now.
    """
    position = _load_open(components, position_id)
    try:
        return components.lifecycle_manager.check_position(position, components.price_source).to_dict()
    except (InvalidState, NotFound) as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.post("/{position_id}/close")
def close_position(position_id: int, components: Components = Depends(get_components)):
    """
    Force a buyback for one position, ignoring thresholds.
    """
    position = _load_open(components, position_id)
    try:
        return components.lifecycle_manager.close_position_now(position, components.price_source).to_dict()
    except (InvalidState, NotFound) as e:
        raise HTTPException(status_code=409, detail=str(e))

def _get(components: Components, position_id: int):
    try:
        return components.repository.get_position(position_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

def _load_open(components: Components, position_id: int):
    position = _get(components, position_id)
    if not position.is_open:
        raise HTTPException(status_code=409, detail=f"Position {position_id} is {position.status}")
    return position
