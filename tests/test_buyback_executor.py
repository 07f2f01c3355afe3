from decimal import Decimal
import threading
import pytest
from src.core.buyback_executor import BuybackExecutor
from src.core.config import BuybackConfig
from src.core.errors import InvalidState, StorageError
from src.execution.paper_swapper import PaperSwapExecutor
from src.models.positions import PositionStatus
from tests.conftest import BASE, TOKEN, RecordingNotifier


class BrokenTradeLog:
    def record_trade(self, **kwargs):
        raise StorageError("trades table locked")


class SlowSwapper:
    def __init__(self):
        self.release = threading.Event()

    def swap(self, from_asset, to_asset, amount, minimum_output=None):
        self.release.wait(2)
        raise AssertionError("swap should have timed out")


def test_successful_buyback_closes_position(buyback_executor, repository, trade_log, notifier, price_source, make_position):
    position = make_position()
    price_source.set_price(TOKEN, "0.053")

    outcome = buyback_executor.execute_buyback(position, Decimal("0.053"), "PROFIT_TARGET")

    assert outcome.success and outcome.terminal
    assert outcome.final_base_amount == Decimal("10.6")
    assert outcome.absolute_pnl == Decimal("0.6")
    assert outcome.percentage_pnl == Decimal("6")
    assert outcome.transaction_id.startswith("paper-")

    closed = repository.get_position(position.id)
    assert closed.status == PositionStatus.CLOSED.value
    assert closed.close_trade_id == outcome.close_trade_id
    assert closed.exit_reason == "PROFIT_TARGET"
    assert closed.closed_at is not None
    assert closed.realized_pnl == Decimal("0.6")

    trade = trade_log.get_trade(outcome.close_trade_id)
    assert trade.side == "BUY"
    assert trade.tx_hash == outcome.transaction_id
    assert trade.to_asset == BASE
    assert notifier.names() == ["buyback"]


def test_failure_below_retry_budget_stays_open(buyback_executor, repository, price_source, notifier, make_position):
    position = make_position(retry_count=3)
    price_source.failures[TOKEN] = RuntimeError("no route")

    outcome = buyback_executor.execute_buyback(position, Decimal("0.049"), "STOP_LOSS")

    assert not outcome.success
    assert not outcome.terminal
    assert outcome.retry_count == 4
    assert "QuoteUnavailable" in outcome.error

    reloaded = repository.get_position(position.id)
    assert reloaded.status == PositionStatus.OPEN.value
    assert reloaded.retry_count == 4
    assert notifier.events == []


def test_failure_at_last_retry_marks_failed(buyback_executor, repository, price_source, notifier, make_position):
    position = make_position(retry_count=4)
    price_source.failures[TOKEN] = RuntimeError("no route")

    outcome = buyback_executor.execute_buyback(position, Decimal("0.049"), "STOP_LOSS")

    assert not outcome.success
    assert outcome.terminal
    assert outcome.status == PositionStatus.FAILED.value

    reloaded = repository.get_position(position.id)
    assert reloaded.status == PositionStatus.FAILED.value
    assert reloaded.retry_count == 5
    assert "after 5 attempts" in reloaded.failure_reason
    assert repository.get_open_positions() == []
    assert notifier.names() == ["failed"]


def test_retry_count_never_exceeds_max_retries(buyback_executor, repository, price_source, make_position):
    position = make_position()
    price_source.failures[TOKEN] = RuntimeError("no route")

    for _ in range(5):
        buyback_executor.execute_buyback(repository.get_position(position.id), None, "STOP_LOSS")

    reloaded = repository.get_position(position.id)
    assert reloaded.status == PositionStatus.FAILED.value
    assert reloaded.retry_count == 5


def test_non_open_position_is_rejected(buyback_executor, repository, make_position):
    position = make_position()
    buyback_executor.execute_buyback(position, Decimal("0.05"), "MANUAL")

    with pytest.raises(InvalidState):
        buyback_executor.execute_buyback(repository.get_position(position.id), Decimal("0.05"), "MANUAL")


def test_notification_failure_does_not_block_close(repository, swapper, config, trade_log, make_position):
    executor = BuybackExecutor(repository, swapper, config, trade_log=trade_log, notifier=RecordingNotifier(fail=True))
    position = make_position()

    outcome = executor.execute_buyback(position, Decimal("0.05"), "MANUAL")

    assert outcome.success
    assert repository.get_position(position.id).status == PositionStatus.CLOSED.value


def test_unrecorded_exit_trade_closes_without_reference(repository, swapper, config, make_position):
    executor = BuybackExecutor(repository, swapper, config, trade_log=BrokenTradeLog())
    position = make_position()

    outcome = executor.execute_buyback(position, Decimal("0.05"), "MANUAL")

    assert outcome.success
    assert outcome.close_trade_id is None
    closed = repository.get_position(position.id)
    assert closed.status == PositionStatus.CLOSED.value
    assert closed.close_trade_id is None


def test_dry_run_buyback_uses_quoted_output(repository, price_source, config, make_position):
    venue = PaperSwapExecutor(price_source, fee_rate="0.003", base_asset=BASE, dry_run=True)
    executor = BuybackExecutor(repository, venue, config)
    position = make_position()

    outcome = executor.execute_buyback(position, Decimal("0.05"), "MANUAL")

    assert outcome.dry_run
    assert outcome.transaction_id.startswith("dry-run-")
    assert outcome.final_base_amount == Decimal("9.97")
    assert venue.get_balance(TOKEN) == 0


def test_swap_timeout_counts_as_failed_attempt(repository, make_position):
    config = BuybackConfig(swap_timeout_seconds=0.05, price_timeout_seconds=None, base_asset=BASE)
    slow = SlowSwapper()
    executor = BuybackExecutor(repository, slow, config)
    position = make_position()

    try:
        outcome = executor.execute_buyback(position, Decimal("0.06"), "PROFIT_TARGET")
    finally:
        slow.release.set()

    assert not outcome.success
    assert "CallTimeout" in outcome.error
    assert repository.get_position(position.id).retry_count == 1


@pytest.mark.parametrize("exit_price,reason", [("0.06", "PROFIT_TARGET"), ("0.048", "STOP_LOSS")])
def test_realized_pnl_sign_follows_trigger(repository, price_source, config, make_position, exit_price, reason):
    venue = PaperSwapExecutor(
        price_source, fee_rate="0.003", slippage_bps=50, enforce_balances=False,
        base_asset=BASE, slippage_tolerance=config.slippage_tolerance
    )
    executor = BuybackExecutor(repository, venue, config)
    position = make_position()
    price_source.set_price(TOKEN, exit_price)

    outcome = executor.execute_buyback(position, Decimal(exit_price), reason)
    trigger_pct = (Decimal(exit_price) - position.entry_price) / position.entry_price * 100

    assert outcome.success
    if reason == "PROFIT_TARGET":
        assert outcome.percentage_pnl >= 0
    else:
        assert outcome.percentage_pnl <= 0
    # realized result stays within the slippage bound of the trigger
    assert abs(outcome.percentage_pnl - trigger_pct) <= config.slippage_tolerance * 100 * (1 + abs(trigger_pct) / 100)


def test_exit_floor_follows_trigger_price(buyback_executor, repository, price_source, make_position):
    position = make_position()
    # Triggered at 0.06 but the venue now fills at 0.053: 10.6 < 200 x 0.06 x 0.95
    price_source.set_price(TOKEN, "0.053")

    outcome = buyback_executor.execute_buyback(position, Decimal("0.06"), "PROFIT_TARGET")

    assert not outcome.success
    assert "Slippage exceeded" in outcome.error
    assert "11.4" in outcome.error
    assert repository.get_position(position.id).retry_count == 1


def test_exit_without_trigger_price_uses_venue_quote(buyback_executor, price_source, make_position):
    position = make_position()
    price_source.set_price(TOKEN, "0.053")

    outcome = buyback_executor.execute_buyback(position, None, "MANUAL")

    assert outcome.success
    assert outcome.final_base_amount == Decimal("10.6")
