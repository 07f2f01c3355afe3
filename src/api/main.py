"""
HTTP surface for the Gala cycle bot: health, positions, monitor runs and trades.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from config.settings import get_settings
from src.api.routes import health, monitor, positions, trades
from src.core.errors import InvalidInput, InvalidState, NotFound, StorageError, TradingBotError
from src.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Gala Cycle Bot API",
    description="Position lifecycle and buyback monitoring API",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(positions.router, prefix="/positions", tags=["Positions"])
app.include_router(monitor.router, prefix="/monitor", tags=["Monitor"])
app.include_router(trades.router, prefix="/trades", tags=["Trades"])

@app.exception_handler(TradingBotError)
def trading_error_handler(request: Request, exc: TradingBotError):
    if isinstance(exc, InvalidInput):
        status_code = 422
    elif isinstance(exc, (NotFound, InvalidState)):
        status_code = 409
    elif isinstance(exc, StorageError):
        status_code = 503
    else:
        status_code = 500
    logger.error("Request failed", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})

@app.get("/")
def root():
    settings = get_settings()
    return {
        "name": "Gala Cycle Bot API",
        "base_asset": settings.BASE_SYMBOL,
        "swap_mode": settings.SWAP_MODE,
    }

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
