"""
Liveness and Prometheus scrape endpoints.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from src.api.dependencies import get_components
from src.core.bootstrap import Components
from src.utils.metrics import registry

router = APIRouter()

@router.get("/health")
def health_check(components: Components = Depends(get_components)):
    """
    Report database reachability and the swap mode in use.
    """
    report = {
        "timestamp": datetime.utcnow().isoformat(),
        "dry_run": components.swap_executor.dry_run,
        "base_asset": components.config.base_symbol,
    }
    try:
        with components.session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {**report, "status": "unhealthy", "database": "disconnected", "error": str(e)}
    return {**report, "status": "healthy", "database": "connected"}

@router.get("/metrics")
def metrics():
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
