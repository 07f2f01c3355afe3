from decimal import Decimal
from unittest.mock import MagicMock
import pytest
import requests
from src.core.errors import PriceUnavailable
from src.data.price_oracle import GalaPriceOracle, to_api_symbol
from tests.conftest import BASE, TOKEN


def make_oracle(usd_prices):
    """usd_prices maps api symbol -> list of USD prices, newest first."""
    def get(url, params, timeout):
        response = MagicMock()
        series = usd_prices.get(params["token"])
        if series is None:
            response.raise_for_status.side_effect = requests.HTTPError("404")
            return response
        response.json.return_value = {"data": [{"price": p} for p in series[:params["limit"]]]}
        return response

    session = MagicMock()
    session.get.side_effect = get
    return GalaPriceOracle("https://oracle.example/fetch-price", base_asset=BASE, session=session), session


def test_api_symbol():
    assert to_api_symbol(TOKEN) == "GUSDC$Unit$none$none"


def test_price_is_token_usd_over_base_usd():
    oracle, _ = make_oracle({"GUSDC$Unit$none$none": ["1.0"], "GALA$Unit$none$none": ["0.02"]})
    result = oracle.get_current_price(TOKEN)
    assert result.success
    assert result.price == Decimal("50")


def test_base_asset_is_priced_at_one_without_network():
    oracle, session = make_oracle({})
    result = oracle.get_current_price(BASE)
    assert result.price == Decimal(1)
    session.get.assert_not_called()


def test_http_error_is_reported_not_raised():
    oracle, _ = make_oracle({"GALA$Unit$none$none": ["0.02"]})
    result = oracle.get_current_price(TOKEN)
    assert not result.success
    assert "404" in result.error


def test_empty_data_is_reported():
    oracle, _ = make_oracle({"GUSDC$Unit$none$none": [], "GALA$Unit$none$none": ["0.02"]})
    result = oracle.get_current_price(TOKEN)
    assert not result.success
    assert "No price data" in result.error


def test_usd_prices_are_cached():
    oracle, session = make_oracle({"GUSDC$Unit$none$none": ["1.0"], "GALA$Unit$none$none": ["0.02"]})
    oracle.get_current_price(TOKEN)
    oracle.get_current_price(TOKEN)
    assert session.get.call_count == 2


def test_price_history_is_paired_newest_first():
    oracle, _ = make_oracle({
        "GUSDC$Unit$none$none": ["1.0", "1.0", "1.0"],
        "GALA$Unit$none$none": ["0.02", "0.025", "0.04"],
    })
    history = oracle.get_price_history(TOKEN, lookback_days=2)
    assert history == [Decimal("50"), Decimal("40"), Decimal("25")]


def test_price_history_failure_raises_price_unavailable():
    oracle, _ = make_oracle({"GALA$Unit$none$none": ["0.02"]})
    with pytest.raises(PriceUnavailable, match="404"):
        oracle.get_price_history(TOKEN, lookback_days=2)
