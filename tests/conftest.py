"""Shared fixtures: in-memory database, fake collaborators, wired core."""
from decimal import Decimal
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from src.core.buyback_executor import BuybackExecutor
from src.core.config import BuybackConfig
from src.core.position_manager import PositionLifecycleManager
from src.core.position_monitor import PositionMonitor
from src.data.price_oracle import BasePriceSource, PriceResult
from src.execution.paper_swapper import PaperSwapExecutor
from src.models.base import Base
from src.models.positions import Position
from src.models.trades import Trade
from src.models.audit_log import AuditLog
from src.notifications.notifier import BaseNotifier
from src.storage.position_repository import PositionRepository
from src.storage.trade_log import TradeLog

BASE = "GALA|Unit|none|none"
TOKEN = "GUSDC|Unit|none|none"
OTHER = "GWETH|Unit|none|none"


class FakePriceSource(BasePriceSource):
    """Prices in base units per token; set `failures` to make a token raise."""
    
    def __init__(self, prices=None):
        self.prices = {BASE: Decimal(1)}
        self.prices.update({k: Decimal(str(v)) for k, v in (prices or {}).items()})
        self.failures = {}
        self.history = {}
        self.calls = []
    
    def set_price(self, token, price):
        self.prices[token] = Decimal(str(price))
    
    def get_current_price(self, token_identifier):
        self.calls.append(token_identifier)
        if token_identifier in self.failures:
            raise self.failures[token_identifier]
        price = self.prices.get(token_identifier)
        if price is None:
            return PriceResult(success=False, error=f"No price data available for {token_identifier}")
        return PriceResult(success=True, price=price)
    
    def get_price_history(self, token_identifier, lookback_days=250):
        return list(self.history.get(token_identifier, []))


class RecordingNotifier(BaseNotifier):
    """Collects events; set `fail` to make every call raise."""
    
    def __init__(self, fail=False):
        self.fail = fail
        self.events = []
    
    def _record(self, name, *args):
        self.events.append((name,) + args)
        if self.fail:
            raise RuntimeError("webhook down")
    
    def notify_position_opened(self, position):
        self._record('opened', position)
    
    def notify_buyback(self, position, outcome):
        self._record('buyback', position, outcome)
    
    def notify_position_failed(self, position, reason):
        self._record('failed', position, reason)
    
    def notify_stale_position(self, position, consecutive_failures):
        self._record('stale', position, consecutive_failures)
    
    def notify_error(self, title, error, context=None):
        self._record('error', title, error, context)
    
    def names(self):
        return [event[0] for event in self.events]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def repository(session_factory):
    return PositionRepository(session_factory)


@pytest.fixture
def trade_log(session_factory):
    return TradeLog(session_factory)


@pytest.fixture
def price_source():
    return FakePriceSource({TOKEN: "0.05", OTHER: "2"})


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return BuybackConfig(
        profit_threshold=Decimal("0.05"),
        loss_threshold=Decimal("-0.02"),
        max_retries=5,
        slippage_tolerance=Decimal("0.05"),
        price_timeout_seconds=None,
        swap_timeout_seconds=None,
        stale_price_alert_after=3,
        base_asset=BASE
    )


@pytest.fixture
def swapper(price_source):
    """Paper venue with fee and slippage off so fills equal the price ratio."""
    return PaperSwapExecutor(
        price_source,
        starting_balance=1000,
        fee_rate=0,
        simulate_slippage=False,
        enforce_balances=False,
        base_asset=BASE,
        slippage_tolerance=Decimal("0.05")
    )


@pytest.fixture
def buyback_executor(repository, swapper, config, trade_log, notifier):
    return BuybackExecutor(repository, swapper, config, trade_log=trade_log, notifier=notifier)


@pytest.fixture
def lifecycle_manager(repository, buyback_executor, swapper, config, trade_log, notifier):
    return PositionLifecycleManager(
        repository, buyback_executor, swapper, config, trade_log=trade_log, notifier=notifier
    )


@pytest.fixture
def monitor(repository, lifecycle_manager, price_source):
    return PositionMonitor(repository, lifecycle_manager, price_source)


@pytest.fixture
def make_position(repository):
    """Create an OPEN position; entry_price is base units per token."""
    def _make(
        token=TOKEN,
        entry_price="0.05",
        entry_amount="10",
        strategy="golden_cross",
        retry_count=0,
        **kwargs
    ):
        entry_price = Decimal(str(entry_price))
        entry_amount = Decimal(str(entry_amount))
        symbol = token.split("|")[0]
        position_id = repository.create_position(
            strategy=strategy,
            pair_symbol=f"GALA/{symbol}",
            token_symbol=symbol,
            token_identifier=token,
            entry_price=entry_price,
            entry_amount=entry_amount,
            token_amount=entry_amount / entry_price,
            **kwargs
        )
        for count in range(1, retry_count + 1):
            repository.update_retry(position_id, count, "seeded failure")
        return repository.get_position(position_id)
    return _make
