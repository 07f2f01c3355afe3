"""
Monitoring endpoints for manual runs.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from src.api.dependencies import get_components
from src.core.bootstrap import Components

router = APIRouter()

@router.post("/run")
def run_monitor(
    strategy: Optional[str] = Query(None, description="Only check positions of this strategy"),
    components: Components = Depends(get_components)
):
    """
    Run one monitoring cycle synchronously.
    """
    return components.monitor.monitor_open_positions(strategy).to_dict()

@router.post("/close-all")
def close_all(
    strategy: Optional[str] = Query(None, description="Only close positions of this strategy"),
    components: Components = Depends(get_components)
):
    """
    Force a buyback on every OPEN position.
    """
    return components.monitor.close_all_positions(strategy).to_dict()
