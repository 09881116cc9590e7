from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

RATE_WINDOW_SEC = 60.0


class StopReason(str, Enum):
    BALANCE_SHORTFALL = "balance_shortfall"
    ERROR_CEILING = "error_ceiling"
    INTERRUPTED = "interrupted"


@dataclass
class Overrides:
    """Manual overrides set from outside the cycle (signals, tests)."""

    force_execute: bool = False
    revert: bool = False

    def request_force(self) -> None:
        self.force_execute = True

    def request_revert(self) -> None:
        self.revert = True


@dataclass
class RateLimiter:
    min_interval: float
    soft_limit: int = 45
    per_minute: int = 60
    max_delay: float = 10.0
    cooldown: float = 30.0
    request_count: int = 0
    window_start: float = 0.0
    current_delay: float = 0.0
    cooldown_until: float | None = None

    def __post_init__(self):
        if not self.current_delay:
            self.current_delay = self.min_interval

    @property
    def is_rate_limited(self) -> bool:
        return self.cooldown_until is not None

    def reset_window(self, now: float) -> None:
        self.request_count = 0
        self.window_start = now

    def record_request(self, now: float) -> float:
        """Count one provider request and return the delay to use until the next poll."""
        if now - self.window_start >= RATE_WINDOW_SEC:
            if self.request_count >= self.soft_limit:
                logger.info("Rate limit window reset")
            self.request_count = 0
            self.window_start = now
            self.current_delay = self.min_interval
        self.request_count += 1
        if self.request_count >= self.soft_limit:
            remaining = RATE_WINDOW_SEC - (now - self.window_start)
            if remaining > 0:
                left = max(1, self.per_minute - self.request_count)
                # Spread the remaining budget over the rest of the window (ms precision)
                new_delay = math.ceil(remaining * 1000 / left) / 1000
                if new_delay > self.current_delay:
                    logger.warning(
                        "Adjusted request interval to {:.3f}s to avoid rate limits ({} requests)",
                        new_delay,
                        self.request_count,
                    )
                self.current_delay = max(self.min_interval, new_delay)
        return self.current_delay

    def on_rate_limited(self, now: float) -> None:
        self.current_delay = min(self.current_delay * 2, self.max_delay)
        self.cooldown_until = now + self.cooldown
        logger.warning(
            "Rate limit hit; pausing for {:.0f}s, next interval {:.3f}s",
            self.cooldown,
            self.current_delay,
        )

    def maybe_resume(self, now: float) -> bool:
        """Leave the cooldown once it has elapsed. Returns True while still cooling down."""
        if self.cooldown_until is None:
            return False
        if now < self.cooldown_until:
            return True
        self.cooldown_until = None
        self.reset_window(now)
        logger.info("Resuming after rate limit with {:.3f}s interval", self.current_delay)
        return False


@dataclass
class RunState:
    rate_limiter: RateLimiter
    trading_enabled: bool = False
    max_balance_shortfalls: int = 5
    max_errors: int = 100
    iteration: int = 0
    is_trade_in_flight: bool = False
    consecutive_failures: int = 0
    consecutive_balance_shortfalls: int = 0
    success_count: int = 0
    fail_count: int = 0
    max_profit_spotted: float = 0.0
    rotation_requested: bool = False
    overrides: Overrides = field(default_factory=Overrides)
    stop_reason: StopReason | None = None

    @property
    def halted(self) -> bool:
        return self.stop_reason is not None

    def toggle_trading(self) -> bool:
        self.trading_enabled = not self.trading_enabled
        logger.warning("Trading {}", "ENABLED" if self.trading_enabled else "DISABLED")
        return self.trading_enabled

    def record_success(self) -> None:
        self.success_count += 1
        self.consecutive_failures = 0
        self.consecutive_balance_shortfalls = 0

    def record_failure(self, balance_short: bool = False) -> StopReason | None:
        """Count a failed trade and trip a circuit breaker once a ceiling is crossed."""
        self.fail_count += 1
        self.consecutive_failures += 1
        if balance_short:
            self.consecutive_balance_shortfalls += 1
            logger.warning(
                "Insufficient balance detected ({}/{} warnings)",
                self.consecutive_balance_shortfalls,
                self.max_balance_shortfalls,
            )
        logger.info("Total error count: {}/{}", self.consecutive_failures, self.max_errors)
        if self.halted:
            return self.stop_reason
        if self.consecutive_balance_shortfalls > self.max_balance_shortfalls:
            self.halt(StopReason.BALANCE_SHORTFALL)
        elif self.consecutive_failures > self.max_errors:
            self.halt(StopReason.ERROR_CEILING)
        return self.stop_reason

    def halt(self, reason: StopReason) -> None:
        if self.halted:
            return
        self.stop_reason = reason
        logger.critical("Circuit breaker tripped: {}; stopping the bot", reason.value)
