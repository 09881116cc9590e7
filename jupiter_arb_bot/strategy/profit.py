from __future__ import annotations

import random
from decimal import Decimal

from jupiter_arb_bot.errors import InvalidAmount

# Above this raw value only 30% of the widening is applied
ADAPTIVE_RAW_CAP = 500
ADAPTIVE_FACTOR_HIGH = 0.3
ADAPTIVE_FACTOR_NORMAL = 0.8

THRESHOLD_JITTER = 0.01


def profit_percent(amount_in: int | Decimal, amount_out: int | Decimal) -> float:
    """Percentage gain of ``amount_out`` over ``amount_in``.

    Both sides must be expressed in the same decimal base (same token, same
    scale). The ratio is taken in Decimal so scaling both arguments by the same
    factor never changes the result.
    """
    a_in = Decimal(str(amount_in))
    a_out = Decimal(str(amount_out))
    if a_in <= 0:
        raise InvalidAmount(f"amount_in must be positive, got {amount_in}")
    return float((a_out - a_in) / a_in * 100)


def adaptive_slippage(
    profit: float,
    min_profit_threshold: float,
    base_slippage_bps: float,
    adaptive_enabled: bool,
) -> float:
    """Widen slippage when simulated profit clears the threshold.

    Returns ``base_slippage_bps`` untouched when disabled or when profit does not
    exceed the threshold. Otherwise
    ``raw = 100 * (profit - threshold + base / 100)``, scaled by 0.3 when
    ``raw > 500`` and by 0.8 otherwise, rounded to 3 decimals.
    """
    if not adaptive_enabled or profit <= min_profit_threshold:
        return base_slippage_bps
    raw = round(100 * (profit - min_profit_threshold + (base_slippage_bps / 100)), 3)
    if raw > ADAPTIVE_RAW_CAP:
        revised = ADAPTIVE_FACTOR_HIGH * raw
    else:
        revised = ADAPTIVE_FACTOR_NORMAL * raw
    return round(revised, 3)


def jitter_threshold(threshold: float, rng: random.Random | None = None) -> float:
    """Randomize the profit threshold by +/-1% so consecutive checks do not repeat exactly."""
    rng = rng or random
    return threshold * rng.uniform(1 - THRESHOLD_JITTER, 1 + THRESHOLD_JITTER)
