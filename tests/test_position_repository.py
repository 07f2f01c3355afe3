from decimal import Decimal
import pytest
from src.core.errors import InvalidInput, InvalidState, NotFound, StorageError
from src.models.positions import PositionStatus
from src.storage.position_repository import PositionRepository, append_note
from src.utils.hashing import event_hash_matches
from tests.conftest import OTHER, TOKEN


def test_create_position_starts_open(make_position):
    position = make_position()
    assert position.status == PositionStatus.OPEN.value
    assert position.retry_count == 0
    assert position.token_amount == Decimal("200")
    assert position.closed_at is None
    assert position.close_trade_id is None
    assert "Opened by golden_cross" in position.notes


def test_create_rejects_thresholds_that_do_not_straddle_zero(repository):
    with pytest.raises(InvalidInput):
        repository.create_position(
            strategy="dca",
            pair_symbol="GALA/GUSDC",
            token_symbol="GUSDC",
            token_identifier=TOKEN,
            entry_price="0.05",
            entry_amount="10",
            token_amount="200",
            profit_threshold="-0.01",
            loss_threshold="-0.02"
        )


def test_create_rejects_non_positive_entry_fields(repository):
    with pytest.raises(InvalidInput):
        repository.create_position(
            strategy="dca",
            pair_symbol="GALA/GUSDC",
            token_symbol="GUSDC",
            token_identifier=TOKEN,
            entry_price="0",
            entry_amount="10",
            token_amount="200"
        )


def test_entry_fields_are_immutable(make_position):
    position = make_position()
    with pytest.raises(InvalidState):
        position.entry_price = Decimal("1")


def test_open_positions_by_strategy(repository, make_position):
    make_position(strategy="golden_cross")
    make_position(strategy="dca", token=OTHER, entry_price="2")

    assert len(repository.get_open_positions()) == 2
    dca = repository.get_open_positions("dca")
    assert [p.token_identifier for p in dca] == [OTHER]


def test_close_position(repository, make_position):
    position = make_position()
    closed = repository.close_position(
        position.id, 7, "sold", exit_reason="PROFIT_TARGET",
        final_base_amount=Decimal("10.6"), realized_pnl=Decimal("0.6"), return_pct=Decimal("6")
    )
    assert closed.status == PositionStatus.CLOSED.value
    assert closed.close_trade_id == 7
    assert closed.closed_at is not None
    assert closed.failed_at is None
    assert closed.notes.endswith("sold")

    assert repository.get_open_positions() == []
    assert repository.get_position(position.id).status == PositionStatus.CLOSED.value


def test_terminal_positions_cannot_transition(repository, make_position):
    position = make_position()
    repository.close_position(position.id, None, "sold")

    with pytest.raises(NotFound):
        repository.close_position(position.id, None, "again")
    with pytest.raises(NotFound):
        repository.update_retry(position.id, 1, "late failure")
    with pytest.raises(NotFound):
        repository.mark_failed(position.id, "late failure")


def test_not_found_is_a_storage_error(repository):
    with pytest.raises(StorageError):
        repository.get_position(999)
    with pytest.raises(NotFound):
        repository.close_position(999, None, "missing")


def test_update_retry_keeps_position_open(repository, make_position):
    position = make_position()
    updated = repository.update_retry(position.id, 1, "SwapFailed: no liquidity")
    assert updated.status == PositionStatus.OPEN.value
    assert updated.retry_count == 1
    assert "Buyback attempt 1 failed: SwapFailed: no liquidity" in updated.notes


def test_retry_count_never_decreases(repository, make_position):
    position = make_position(retry_count=2)
    with pytest.raises(InvalidState):
        repository.update_retry(position.id, 2, "same count")
    with pytest.raises(InvalidState):
        repository.update_retry(position.id, 1, "lower count")
    assert repository.get_position(position.id).retry_count == 2


def test_mark_failed_is_terminal(repository, make_position):
    position = make_position(retry_count=4)
    failed = repository.mark_failed(position.id, "retries exhausted", retry_count=5)
    assert failed.status == PositionStatus.FAILED.value
    assert failed.retry_count == 5
    assert failed.failure_reason == "retries exhausted"
    assert failed.failed_at is not None
    assert failed.closed_at is None
    assert repository.get_open_positions() == []


def test_list_positions_and_stats(repository, make_position):
    winner = make_position()
    loser = make_position(token=OTHER, entry_price="2")
    make_position(strategy="dca")
    repository.close_position(winner.id, 1, "win", realized_pnl=Decimal("0.6"))
    repository.close_position(loser.id, 2, "loss", realized_pnl=Decimal("-0.2"))

    assert [p.id for p in repository.list_positions(status="closed")] == [loser.id, winner.id]
    assert len(repository.list_positions(strategy="dca")) == 1

    stats = repository.get_stats()
    assert stats["total"] == 3
    assert stats["open"] == 1
    assert stats["closed"] == 2
    assert stats["failed"] == 0
    assert stats["total_pnl"] == pytest.approx(0.4)
    assert stats["win_rate"] == 50.0


def test_last_entry_at(repository, make_position):
    assert repository.last_entry_at("dca") is None
    position = make_position(strategy="dca")
    assert repository.last_entry_at("dca", TOKEN) == position.created_at
    assert repository.last_entry_at("dca", OTHER) is None


def test_audit_trail_is_hash_chained(repository, make_position):
    position = make_position()
    repository.update_retry(position.id, 1, "first failure")
    repository.close_position(position.id, 3, "sold", exit_reason="STOP_LOSS")

    trail = repository.get_audit_trail(position.id)
    assert [row.event_type for row in trail] == ["POSITION_OPENED", "BUYBACK_RETRY", "POSITION_CLOSED"]
    assert trail[0].previous_hash is None
    assert trail[-1].before_state["status"] == "OPEN"
    assert trail[-1].after_state["status"] == "CLOSED"
    assert all(event_hash_matches(row) for row in trail)
    assert [row.previous_hash for row in trail[1:]] == [row.event_hash for row in trail[:-1]]

    trail[1].after_state = dict(trail[1].after_state, retry_count=9)
    assert not event_hash_matches(trail[1])


def test_append_note():
    assert append_note(None, "") == ""
    first = append_note(None, "one")
    assert first.startswith("[") and first.endswith("] one")
    assert append_note(first, "two").split("\n")[1].endswith("] two")
