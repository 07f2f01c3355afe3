from decimal import Decimal
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from src.core.buyback_executor import BuybackExecutor
from src.core.errors import StorageError
from src.core.position_manager import PositionLifecycleManager
from src.core.position_monitor import PositionMonitor
from src.models.base import Base
from src.models.positions import PositionStatus
from src.storage.position_repository import PositionRepository
from src.storage.trade_log import TradeLog
from tests.conftest import OTHER, TOKEN

BROKEN = "GBAD|Unit|none|none"


class UnavailableRepository:
    def get_open_positions(self, strategy=None):
        raise StorageError("connection refused")


class ExplodingManager:
    """Lifecycle manager whose check raises for one position id."""

    def __init__(self, inner, bad_id):
        self.inner = inner
        self.bad_id = bad_id

    def check_position(self, position, price_source):
        if position.id == self.bad_id:
            raise StorageError("write failed")
        return self.inner.check_position(position, price_source)


def test_no_open_positions_is_a_normal_cycle(monitor):
    summary = monitor.monitor_open_positions()

    assert summary.success
    assert summary.positions_checked == 0
    assert summary.buybacks_executed == 0
    assert summary.buybacks_failed == 0
    assert summary.results == []
    assert summary.error is None


def test_one_price_failure_does_not_abort_batch(monitor, repository, price_source, make_position):
    hold = make_position(token=TOKEN)
    profit = make_position(token=OTHER, entry_price="2")
    broken = make_position(token=BROKEN, entry_price="1")
    price_source.set_price(TOKEN, "0.051")
    price_source.set_price(OTHER, "2.2")
    price_source.failures[BROKEN] = RuntimeError("oracle timeout")

    summary = monitor.monitor_open_positions()

    assert summary.success
    assert summary.positions_checked == 3
    assert summary.buybacks_executed == 1
    assert summary.buybacks_failed == 1

    by_id = {r.position_id: r for r in summary.results}
    assert by_id[hold.id].decision == "HOLD"
    assert by_id[profit.id].decision == "PROFIT_TARGET"
    assert by_id[profit.id].buyback_executed
    assert by_id[broken.id].buyback_failed
    assert "oracle timeout" in by_id[broken.id].error

    assert repository.get_position(broken.id).retry_count == 0
    assert repository.get_position(profit.id).status == PositionStatus.CLOSED.value


def test_exception_in_one_check_is_isolated(repository, lifecycle_manager, price_source, make_position):
    first = make_position()
    second = make_position(token=OTHER, entry_price="2")
    monitor = PositionMonitor(repository, ExplodingManager(lifecycle_manager, first.id), price_source)

    summary = monitor.monitor_open_positions()

    assert summary.success
    assert summary.positions_checked == 2
    assert summary.buybacks_failed == 1
    results = {r.position_id: r for r in summary.results}
    assert results[first.id].error == "StorageError: write failed"
    assert results[second.id].success


def test_load_failure_fails_the_cycle(lifecycle_manager, price_source):
    monitor = PositionMonitor(UnavailableRepository(), lifecycle_manager, price_source)

    summary = monitor.monitor_open_positions()

    assert not summary.success
    assert summary.positions_checked == 0
    assert "connection refused" in summary.error


def test_strategy_filter(monitor, price_source, make_position):
    make_position(strategy="golden_cross")
    make_position(strategy="dca", token=OTHER, entry_price="2")

    summary = monitor.monitor_open_positions("dca")

    assert summary.positions_checked == 1
    assert summary.results[0].decision == "HOLD"


def test_close_all_positions(monitor, repository, make_position):
    make_position()
    make_position(token=OTHER, entry_price="2")

    summary = monitor.close_all_positions()

    assert summary.success
    assert summary.buybacks_executed == 2
    assert repository.get_open_positions() == []
    assert {r.decision for r in summary.results} == {"MANUAL"}


def test_summary_to_dict(monitor, make_position):
    make_position()
    data = monitor.monitor_open_positions().to_dict()
    assert data["positions_checked"] == 1
    assert data["results"][0]["decision"] == "HOLD"


def test_rejects_zero_workers(repository, lifecycle_manager, price_source):
    with pytest.raises(ValueError):
        PositionMonitor(repository, lifecycle_manager, price_source, max_workers=0)


def test_concurrent_batch(tmp_path, price_source, swapper, config):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'monitor.db'}",
        connect_args={"check_same_thread": False, "timeout": 30}
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    repository = PositionRepository(factory)
    trade_log = TradeLog(factory)
    executor = BuybackExecutor(repository, swapper, config, trade_log=trade_log)
    manager = PositionLifecycleManager(repository, executor, swapper, config, trade_log=trade_log)
    monitor = PositionMonitor(repository, manager, price_source, max_workers=4)

    ids = []
    for _ in range(6):
        ids.append(repository.create_position(
            strategy="golden_cross",
            pair_symbol="GALA/GUSDC",
            token_symbol="GUSDC",
            token_identifier=TOKEN,
            entry_price=Decimal("0.05"),
            entry_amount=Decimal("10"),
            token_amount=Decimal("200")
        ))
    price_source.set_price(TOKEN, "0.06")

    summary = monitor.monitor_open_positions()

    assert summary.success
    assert summary.positions_checked == 6
    assert summary.buybacks_executed == 6
    assert sorted(r.position_id for r in summary.results) == ids
    assert repository.get_open_positions() == []
    assert all(repository.get_position(i).close_trade_id is not None for i in ids)
    engine.dispose()
