"""
Tests for market metric calculations
"""
import math
from decimal import Decimal

import pytest

from token_metrics.analysis.market import (
    HeuristicOffMarketStrategy,
    MarketMetricsCalculator,
    OffMarketStrategy,
    analyze_off_market_sales,
    calculate_fully_diluted_cap,
    calculate_market_cap,
    calculate_market_cap_difference,
    to_decimal,
)
from token_metrics.models import TokenDescriptor, Transfer

NOW = 1_700_000_000


def descriptor(total_supply="1000000000000000000000", decimals=18):
    return TokenDescriptor(
        address="0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984",
        name="Test Token",
        symbol="TST",
        decimals=decimals,
        total_supply=total_supply,
        is_erc20_compliant=True,
        network="testnet",
        chain_id=1337,
    )


def transfer(amount, recipient="0xAbC0000000000000000000000000000000000001", timestamp=NOW - 10 * 86400,
             is_large=True):
    return Transfer(
        transaction_hash="0x01",
        sender="0xDeF0000000000000000000000000000000000002",
        recipient=recipient,
        amount=str(amount),
        timestamp=timestamp,
        is_large=is_large,
        block_number=1,
    )


class AlwaysBelow(OffMarketStrategy):
    def is_below_market(self, transfer, descriptor):
        return True


def test_market_cap_difference():
    assert calculate_market_cap_difference(100, 150) == {"difference": 50, "percent_difference": 50}


def test_market_cap_difference_with_zero_market_cap():
    assert calculate_market_cap_difference(0, 150) == {"difference": 150, "percent_difference": 0}


def test_to_decimal_scales_by_decimals():
    assert to_decimal("1500000", 6) == 1.5
    assert to_decimal("garbage", 18) == 0


def test_market_cap_uses_decimals():
    assert calculate_market_cap("1000000000000000000000", 18, 2.5) == pytest.approx(2500.0)


def test_fully_diluted_cap_prefers_max_supply():
    assert calculate_fully_diluted_cap("1000", 0, 2.0) == pytest.approx(2000.0)
    assert calculate_fully_diluted_cap("1000", 0, 2.0, max_supply="5000") == pytest.approx(10000.0)


def test_calculator_returns_none_without_positive_price():
    calculator = MarketMetricsCalculator()
    assert calculator.calculate(descriptor(), None) is None
    assert calculator.calculate(descriptor(), 0) is None
    assert calculator.calculate(descriptor(), -1.0) is None
    assert calculator.calculate(descriptor(), float("nan")) is None


def test_calculator_basic_metrics():
    metrics = MarketMetricsCalculator().calculate(descriptor(), 2.0)
    assert metrics.market_cap == pytest.approx(2000.0)
    assert metrics.fully_diluted_cap == pytest.approx(2000.0)
    assert metrics.dilution_delta == 0
    assert metrics.dilution_percent == 0
    assert metrics.off_market_volume_usd == 0


def test_zero_supply_yields_neutral_metrics():
    metrics = MarketMetricsCalculator().calculate(descriptor(total_supply="0"), 2.0,
                                                   [transfer(10 ** 19)])
    assert metrics.market_cap == 0
    assert metrics.dilution_percent == 0
    assert metrics.off_market_above_percent == 0
    assert metrics.off_market_below_percent == 0
    assert metrics.off_market_percent_of_supply == 0
    for value in (metrics.market_cap, metrics.off_market_volume_usd, metrics.off_market_percent_of_supply):
        assert math.isfinite(value)


def test_off_market_with_injected_strategy():
    result = analyze_off_market_sales(
        [transfer(10 * 10 ** 18), transfer(5 * 10 ** 18)],
        descriptor(),
        price=2.0,
        strategy=AlwaysBelow(),
    )
    assert result["below_price"] == pytest.approx(1.5)
    assert result["above_price"] == 0
    assert result["percentage"] == pytest.approx(1.5)
    assert result["volume_usd"] == pytest.approx(30.0)


def test_off_market_ignores_small_transfers():
    result = analyze_off_market_sales([transfer(10 ** 18, is_large=False)], descriptor(), price=2.0)
    assert result == {"above_price": 0.0, "below_price": 0.0, "percentage": 0.0, "volume_usd": 0.0}


def test_heuristic_is_deterministic():
    strategy = HeuristicOffMarketStrategy(clock=lambda: NOW)
    token = descriptor()

    burn = transfer(7 * 10 ** 18, recipient="0x00aa000000000000000000000000000000000001")
    recent_round = transfer(20 * 10 ** 18, timestamp=NOW - 3600)
    old_round = transfer(20 * 10 ** 18, timestamp=NOW - 3 * 86400)
    recent_odd = transfer(7 * 10 ** 18, timestamp=NOW - 3600)

    for _ in range(20):
        assert strategy.is_below_market(burn, token) is True
        assert strategy.is_below_market(recent_round, token) is True
        assert strategy.is_below_market(old_round, token) is False
        assert strategy.is_below_market(recent_odd, token) is False


def test_heuristic_uses_token_decimals():
    strategy = HeuristicOffMarketStrategy(clock=lambda: NOW)
    six_decimals = descriptor(total_supply=str(10 ** 12), decimals=6)
    assert strategy.is_below_market(transfer(30 * 10 ** 6, timestamp=NOW), six_decimals) is True
    assert strategy.is_below_market(transfer(30 * 10 ** 6 + 1, timestamp=NOW), six_decimals) is False


def test_calculator_splits_volume_between_buckets():
    calculator = MarketMetricsCalculator(HeuristicOffMarketStrategy(clock=lambda: NOW))
    transfers = [
        transfer(10 * 10 ** 18, recipient="0x0000000000000000000000000000000000000000"),
        transfer(30 * 10 ** 18),
    ]
    metrics = calculator.calculate(descriptor(), 1.0, transfers)
    assert metrics.off_market_below_percent == pytest.approx(1.0)
    assert metrics.off_market_above_percent == pytest.approx(3.0)
    assert metrics.off_market_percent_of_supply == pytest.approx(4.0)
    assert metrics.off_market_volume_usd == pytest.approx(40.0)


def test_to_decimal_keeps_all_digits_of_large_amounts():
    assert to_decimal(3 * 10 ** 30 + 7, 18) == Decimal("3000000000000.000000000000000007")


def test_heuristic_round_check_is_exact_for_large_supply_tokens():
    strategy = HeuristicOffMarketStrategy(clock=lambda: NOW)
    token = descriptor(total_supply=str(10 ** 33), decimals=18)

    assert strategy.is_below_market(transfer(3 * 10 ** 30 + 7, timestamp=NOW), token) is False
    assert strategy.is_below_market(transfer(3 * 10 ** 30, timestamp=NOW), token) is True
