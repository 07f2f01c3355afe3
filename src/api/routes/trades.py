"""
Trade log endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from src.api.dependencies import get_components
from src.core.bootstrap import Components
from src.utils.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT

router = APIRouter()

class TradeResponse(BaseModel):
    id: int
    strategy: str
    symbol: str
    side: str
    from_asset: Optional[str]
    to_asset: Optional[str]
    amount: Decimal
    price: Decimal
    total_value: Decimal
    slippage: Decimal
    status: str
    tx_hash: Optional[str]
    dry_run: bool
    executed_at: Optional[datetime]
    
    class Config:
        from_attributes = True

@router.get("/", response_model=List[TradeResponse])
def list_trades(
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    components: Components = Depends(get_components)
):
    """
    Most recent entry and buyback trades.
    """
    return components.trade_log.recent_trades(limit)

@router.get("/tx/{tx_hash}", response_model=TradeResponse)
def get_trade_by_tx(tx_hash: str, components: Components = Depends(get_components)):
    """
    Look up a trade by its swap transaction id.
    """
    trade = components.trade_log.find_by_tx_hash(tx_hash)
    if trade is None:
        raise HTTPException(status_code=404, detail=f"No trade for transaction {tx_hash}")
    return trade
