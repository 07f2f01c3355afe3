from decimal import Decimal
import pytest
from src.core.errors import InvalidInput
from src.core.pnl import (
    BuybackDecision, calculate_expected_buyback, calculate_final_pnl,
    calculate_pnl_percentage, evaluate, format_pnl
)


def test_profit_target_above_threshold():
    result = evaluate("0.05", "0.053", "0.05", "-0.02")
    assert result.pnl_percentage == Decimal("6")
    assert result.decision == BuybackDecision.PROFIT_TARGET
    assert result.should_buyback


def test_stop_loss_boundary_is_inclusive():
    result = evaluate("0.05", "0.049", "0.05", "-0.02")
    assert result.pnl_percentage == Decimal("-2")
    assert result.decision == BuybackDecision.STOP_LOSS


def test_hold_inside_band():
    result = evaluate("0.05", "0.051", "0.05", "-0.02")
    assert result.pnl_percentage == Decimal("2")
    assert result.decision == BuybackDecision.HOLD
    assert not result.should_buyback


def test_profit_boundary_is_inclusive():
    result = evaluate("0.05", "0.0525")
    assert result.pnl_percentage == Decimal("5")
    assert result.decision == BuybackDecision.PROFIT_TARGET


def test_unchanged_price_holds():
    result = evaluate(Decimal("0.05"), Decimal("0.05"))
    assert result.pnl_percentage == 0
    assert result.decision == BuybackDecision.HOLD


def test_zero_current_price_is_a_stop_loss():
    result = evaluate("0.05", "0")
    assert result.pnl_percentage == Decimal("-100")
    assert result.decision == BuybackDecision.STOP_LOSS


def test_float_inputs_do_not_leak_binary_error():
    assert evaluate(0.05, 0.053).pnl_percentage == Decimal("6")


def test_evaluate_is_deterministic():
    first = evaluate("0.0731", "0.0744", "0.03", "-0.01")
    second = evaluate("0.0731", "0.0744", "0.03", "-0.01")
    assert first == second


@pytest.mark.parametrize("current", ["0.01", "0.048", "0.05", "0.0519", "0.06", "1"])
def test_decisions_are_mutually_exclusive(current):
    result = evaluate("0.05", current, "0.04", "-0.04")
    pct = result.pnl_percentage
    if result.decision == BuybackDecision.PROFIT_TARGET:
        assert pct >= 4
    elif result.decision == BuybackDecision.STOP_LOSS:
        assert pct <= -4
    else:
        assert -4 < pct < 4


@pytest.mark.parametrize("entry,current", [("0", "1"), ("-0.05", "1"), ("0.05", "-0.01")])
def test_invalid_prices_raise(entry, current):
    with pytest.raises(InvalidInput):
        calculate_pnl_percentage(entry, current)


def test_invalid_input_is_a_value_error():
    with pytest.raises(ValueError):
        evaluate("abc", "1")


def test_expected_buyback_applies_slippage_floor():
    expected = calculate_expected_buyback("200", "0.053", "0.05")
    assert expected.expected == Decimal("10.600")
    assert expected.minimum == Decimal("10.07")
    assert expected.slippage_pct == Decimal("5.00")


def test_expected_buyback_rejects_zero_amount():
    with pytest.raises(InvalidInput):
        calculate_expected_buyback("0", "0.05", "0.05")


def test_final_pnl_profit_and_loss():
    gain = calculate_final_pnl("10", "10.6")
    assert gain.absolute_pnl == Decimal("0.6")
    assert gain.percentage_pnl == Decimal("6")
    assert gain.is_profit

    loss = calculate_final_pnl("10", "9.8")
    assert loss.absolute_pnl == Decimal("-0.2")
    assert loss.percentage_pnl == Decimal("-2")
    assert not loss.is_profit


def test_final_pnl_requires_positive_initial_amount():
    with pytest.raises(InvalidInput):
        calculate_final_pnl("0", "1")


def test_format_pnl():
    assert format_pnl(Decimal("6"), Decimal("0.6")) == "📈 +6.00% (+0.6000 GALA)"
    assert format_pnl(Decimal("-2.5")) == "📉 -2.50%"
    assert format_pnl(Decimal("1"), Decimal("0.1"), "GUSDC").endswith("GUSDC)")
