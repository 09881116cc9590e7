from __future__ import annotations

from decimal import Decimal

import pytest

from jupiter_arb_bot.errors import InvalidAmount
from jupiter_arb_bot.strategy.profit import adaptive_slippage, jitter_threshold, profit_percent


def test_profit_percent_known_values():
    assert profit_percent(100, 110) == 10.0
    assert profit_percent(100, 100) == 0.0
    assert profit_percent(100, 90) == -10.0


@pytest.mark.parametrize("k", [1, 7, 10**6, 10**18])
def test_profit_percent_scale_invariant(k):
    assert profit_percent(1_000_000 * k, 1_010_000 * k) == profit_percent(1_000_000, 1_010_000)
    assert profit_percent(Decimal("1.5") * k, Decimal("1.53") * k) == pytest.approx(2.0)


@pytest.mark.parametrize("out", [0, 1, 10**9])
def test_profit_percent_zero_input_raises(out):
    with pytest.raises(InvalidAmount):
        profit_percent(0, out)


def test_profit_percent_negative_input_raises():
    with pytest.raises(InvalidAmount):
        profit_percent(-5, 10)


def test_adaptive_disabled_returns_base():
    for profit in (-3.0, 0.5, 1.0, 50.0):
        assert adaptive_slippage(profit, 0.5, 100, adaptive_enabled=False) == 100


def test_adaptive_profit_equal_threshold_not_widened():
    assert adaptive_slippage(0.5, 0.5, 100, adaptive_enabled=True) == 100
    assert adaptive_slippage(0.2, 0.5, 100, adaptive_enabled=True) == 100


def test_adaptive_normal_widening():
    # 0.8 * (100 * (1.0 - 0.5 + 1.0)) = 120
    assert adaptive_slippage(1.0, 0.5, 100, adaptive_enabled=True) == pytest.approx(120.0)


def test_adaptive_boundary_raw_500_uses_0_8():
    # raw = 100 * (4.5 - 0.5 + 1.0) = 500 -> not above the cap
    assert adaptive_slippage(4.5, 0.5, 100, adaptive_enabled=True) == pytest.approx(400.0)


def test_adaptive_boundary_raw_501_uses_0_3():
    # raw = 100 * (4.51 - 0.5 + 1.0) = 501 -> capped branch
    assert adaptive_slippage(4.51, 0.5, 100, adaptive_enabled=True) == pytest.approx(150.3)


def test_adaptive_rounds_to_three_decimals():
    out = adaptive_slippage(0.733333, 0.5, 50, adaptive_enabled=True)
    assert out == round(out, 3)


def test_jitter_threshold_within_one_percent():
    import random

    rng = random.Random(42)
    for _ in range(200):
        t = jitter_threshold(0.5, rng)
        assert 0.495 <= t <= 0.505
