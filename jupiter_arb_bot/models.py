from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Any

BPS_DENOMINATOR = 10_000


def to_decimal(amount: int, decimals: int) -> Decimal:
    """Smallest-unit integer -> human readable Decimal."""
    return Decimal(int(amount)).scaleb(-int(decimals))


def to_amount(value: Decimal | str | float | int, decimals: int) -> int:
    """Human readable value -> smallest-unit integer, rounded down."""
    # str() first so floats like 0.1 keep their printed value
    scaled = Decimal(str(value)).scaleb(int(decimals))
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def min_out_for_slippage(out_amount: int, slippage_bps: float | int) -> int:
    bps = Decimal(str(slippage_bps))
    threshold = Decimal(int(out_amount)) * (BPS_DENOMINATOR - bps) / BPS_DENOMINATOR
    return max(0, int(threshold.to_integral_value(rounding=ROUND_FLOOR)))


@dataclass(frozen=True)
class Token:
    address: str
    symbol: str
    decimals: int

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Token:
        return cls(
            address=str(d["address"]),
            symbol=str(d.get("symbol") or d["address"][:4]),
            decimals=int(d.get("decimals") or 0),
        )

    def display(self, amount: int) -> str:
        return f"{to_decimal(amount, self.decimals)} {self.symbol}"


@dataclass(frozen=True)
class Quote:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    slippage_bps: int
    route_hops: tuple[str, ...] = ()
    price_impact_pct: float = 0.0
    # Provider payload handed back verbatim to the swap endpoint
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_jupiter(cls, payload: dict[str, Any]) -> Quote:
        hops = []
        for step in payload.get("routePlan") or []:
            info = step.get("swapInfo") or {}
            hops.append(str(info.get("label") or "Unknown"))
        return cls(
            input_mint=str(payload.get("inputMint") or ""),
            output_mint=str(payload.get("outputMint") or ""),
            in_amount=int(payload["inAmount"]),
            out_amount=int(payload["outAmount"]),
            other_amount_threshold=int(payload.get("otherAmountThreshold") or 0),
            slippage_bps=int(payload.get("slippageBps") or 0),
            route_hops=tuple(hops),
            price_impact_pct=float(payload.get("priceImpactPct") or 0.0),
            raw=dict(payload),
        )

    def with_slippage(self, slippage_bps: float) -> Quote:
        """Copy of this quote with slippage revised and the min-out recomputed from it."""
        wire_bps = int(math.ceil(slippage_bps))
        threshold = min_out_for_slippage(self.out_amount, slippage_bps)
        raw = dict(self.raw)
        raw["slippageBps"] = wire_bps
        raw["otherAmountThreshold"] = str(threshold)
        return replace(self, slippage_bps=wire_bps, other_amount_threshold=threshold, raw=raw)

    def with_min_out(self, threshold: int) -> Quote:
        raw = dict(self.raw)
        raw["otherAmountThreshold"] = str(int(threshold))
        return replace(self, other_amount_threshold=int(threshold), raw=raw)


@dataclass(frozen=True)
class TradeEntry:
    side: str
    input_token: str
    output_token: str
    in_amount: int
    expected_out_amount: int
    expected_profit_percent: float
    slippage_used: float
    out_amount: int | None = None
    actual_profit_percent: float | None = None
    error_kind: str | None = None  # SubmissionRejected|ConfirmationTimeout|FailedOnChain|Unknown
    error_message: str | None = None
    tx_id: str | None = None
    lookup_attempts: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d
