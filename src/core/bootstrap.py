"""
Composition root.

Builds every collaborator once from Settings and wires them together by
constructor injection. Callers (Celery tasks, API, scripts) hold the
returned Components instead of looking services up globally.
"""
from dataclasses import dataclass
from typing import Callable, Optional
from sqlalchemy.orm import Session, sessionmaker
from config.settings import Settings, get_settings
from src.core.buyback_executor import BuybackExecutor
from src.core.config import BuybackConfig
from src.core.position_manager import PositionLifecycleManager
from src.core.position_monitor import PositionMonitor
from src.data.price_oracle import BasePriceSource, GalaPriceOracle
from src.execution.base_swapper import BaseSwapExecutor
from src.execution.paper_swapper import PaperSwapExecutor
from src.models.base import SessionLocal, engine, make_engine
from src.notifications.notifier import BaseNotifier, DiscordNotifier, LogNotifier
from src.storage.position_repository import PositionRepository
from src.storage.trade_log import TradeLog
from src.utils.logging import get_logger

logger = get_logger(__name__)

SWAP_MODES = ('dry_run', 'paper')

@dataclass
class Components:
    settings: Settings
    config: BuybackConfig
    session_factory: Callable[[], Session]
    repository: PositionRepository
    trade_log: TradeLog
    price_source: BasePriceSource
    swap_executor: BaseSwapExecutor
    notifier: BaseNotifier
    buyback_executor: BuybackExecutor
    lifecycle_manager: PositionLifecycleManager
    monitor: PositionMonitor

def build_notifier(settings: Settings) -> BaseNotifier:
    if settings.DISCORD_WEBHOOK_URL:
        return DiscordNotifier(
            settings.DISCORD_WEBHOOK_URL,
            min_interval_ms=settings.NOTIFICATION_MIN_INTERVAL_MS
        )
    return LogNotifier()

def build_swap_executor(settings: Settings, price_source: BasePriceSource, config: BuybackConfig) -> BaseSwapExecutor:
    """Paper venue; DRY_RUN_MODE forces dry-run receipts whatever SWAP_MODE says."""
    if settings.SWAP_MODE not in SWAP_MODES:
        raise ValueError(f"SWAP_MODE must be one of {SWAP_MODES}, got {settings.SWAP_MODE!r}")
    dry_run = settings.DRY_RUN_MODE or settings.SWAP_MODE == 'dry_run'
    return PaperSwapExecutor(
        price_source,
        starting_balance=settings.PAPER_STARTING_BALANCE,
        fee_rate=settings.PAPER_FEE_RATE,
        slippage_bps=settings.PAPER_SLIPPAGE_BPS,
        enforce_balances=settings.PAPER_ENFORCE_BALANCES,
        base_asset=settings.BASE_ASSET,
        slippage_tolerance=config.slippage_tolerance,
        dry_run=dry_run,
        min_trade_amount=settings.MIN_TRADE_AMOUNT,
        max_trade_amount=settings.MAX_TRADE_AMOUNT,
        min_seconds_between_trades=settings.MIN_TIME_BETWEEN_TRADES_MS / 1000.0
    )

def build_components(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    price_source: Optional[BasePriceSource] = None,
    notifier: Optional[BaseNotifier] = None
) -> Components:
    """
    Wire the application.
    
    Args:
        settings: Defaults to get_settings()
        session_factory: Defaults to a sessionmaker bound to DATABASE_URL
        price_source: Defaults to the GalaSwap price oracle
        notifier: Defaults to Discord when a webhook is configured, else log only
    """
    settings = settings or get_settings()
    config = BuybackConfig.from_settings(settings)
    
    if session_factory is None and engine.url.render_as_string(hide_password=False) == settings.DATABASE_URL:
        session_factory = SessionLocal
    elif session_factory is None:
        session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=make_engine(settings.DATABASE_URL)
        )
    if price_source is None:
        price_source = GalaPriceOracle(
            settings.PRICE_ORACLE_URL,
            base_asset=settings.BASE_ASSET,
            cache_timeout_seconds=settings.PRICE_CACHE_TIMEOUT_SECONDS,
            request_timeout=settings.PRICE_TIMEOUT_SECONDS
        )
    notifier = notifier or build_notifier(settings)
    
    repository = PositionRepository(session_factory)
    trade_log = TradeLog(session_factory)
    swap_executor = build_swap_executor(settings, price_source, config)
    buyback_executor = BuybackExecutor(
        repository, swap_executor, config, trade_log=trade_log, notifier=notifier
    )
    lifecycle_manager = PositionLifecycleManager(
        repository, buyback_executor, swap_executor, config, trade_log=trade_log, notifier=notifier
    )
    monitor = PositionMonitor(
        repository, lifecycle_manager, price_source, max_workers=settings.MONITOR_MAX_WORKERS
    )
    
    logger.info(
        "Components built",
        swap_mode=settings.SWAP_MODE,
        dry_run=swap_executor.dry_run,
        notifier=type(notifier).__name__,
        max_retries=config.max_retries
    )
    return Components(
        settings=settings,
        config=config,
        session_factory=session_factory,
        repository=repository,
        trade_log=trade_log,
        price_source=price_source,
        swap_executor=swap_executor,
        notifier=notifier,
        buyback_executor=buyback_executor,
        lifecycle_manager=lifecycle_manager,
        monitor=monitor
    )
