from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from jupiter_arb_bot.state import RunState


class Phase(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Decision:
    submit: bool
    reason: str
    forced: bool = False
    revert: bool = False

    def __str__(self) -> str:
        return f"{'SUBMIT' if self.submit else 'HOLD'}: {self.reason}"


class TradeGate:
    """Single-flight gate between a profitable quote and a swap submission.

    The gate owns the phase; ``RunState.is_trade_in_flight`` mirrors it from the
    moment a submission starts until ``finish`` classifies the result.
    """

    def __init__(self, state: RunState):
        self.state = state
        self.phase = Phase.IDLE

    @property
    def busy(self) -> bool:
        return self.state.is_trade_in_flight or self.phase in (Phase.SUBMITTING, Phase.CONFIRMING)

    def evaluate(self, profit: float, threshold: float) -> Decision:
        if self.busy:
            return Decision(False, "trade already in flight")
        self.phase = Phase.EVALUATING
        overrides = self.state.overrides

        if not (overrides.force_execute or overrides.revert or profit >= threshold):
            self.phase = Phase.IDLE
            return Decision(False, f"profit {profit:.4f}% below {threshold:.4f}%")

        forced = overrides.force_execute
        if forced:
            logger.warning("Execution forced by user")
            overrides.force_execute = False
        if overrides.revert:
            logger.warning("Revert requested; accepting any output")

        if not (self.state.trading_enabled or overrides.revert):
            self.phase = Phase.IDLE
            return Decision(False, "trading disabled", forced=forced)

        return Decision(True, "threshold met" if not forced else "forced", forced=forced, revert=overrides.revert)

    def begin_submission(self) -> None:
        if self.busy:
            raise RuntimeError("submission already in flight")
        self.phase = Phase.SUBMITTING
        self.state.is_trade_in_flight = True

    def begin_confirmation(self) -> None:
        self.phase = Phase.CONFIRMING

    def finish(self, success: bool, revert: bool = False) -> None:
        self.phase = Phase.SUCCEEDED if success else Phase.FAILED
        if success and revert:
            logger.warning("Revert swap succeeded; TRADING DISABLED until re-enabled")
            self.state.overrides.revert = False
            self.state.trading_enabled = False
        self.state.is_trade_in_flight = False
        self.phase = Phase.IDLE
