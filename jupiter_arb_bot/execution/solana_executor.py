from __future__ import annotations

import random
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from loguru import logger

from jupiter_arb_bot.aggregators.jupiter import JupiterClient
from jupiter_arb_bot.chains.solana import SolanaChain, TransactionResult
from jupiter_arb_bot.config import AppSettings
from jupiter_arb_bot.db import TradeHistory
from jupiter_arb_bot.errors import ArbBotError, ConfirmationTimeout, RateLimited, SubmissionRejected
from jupiter_arb_bot.models import Quote, Token, TradeEntry
from jupiter_arb_bot.state import RunState
from jupiter_arb_bot.strategy.profit import profit_percent

SLIPPAGE_EXCEEDED = 6001

ERROR_LABELS = {
    SLIPPAGE_EXCEEDED: "Slippage Tolerance Exceeded",
}

_HEX_CODE = re.compile(r"custom program error: 0x([0-9a-fA-F]+)")
_DEC_CODE = re.compile(r"Custom\"?\s*[:(]\s*(\d+)")


def program_error_code(message: str) -> int | None:
    m = _HEX_CODE.search(message)
    if m:
        return int(m.group(1), 16)
    m = _DEC_CODE.search(message)
    if m:
        return int(m.group(1))
    return None


def _failed_entry(base: dict, err: ArbBotError, **extra) -> TradeEntry:
    return TradeEntry(**base, error_kind=type(err).__name__, error_message=str(err), **extra)


class ConfirmOutcome(str, Enum):
    CONFIRMED = "confirmed"
    FAILED_ON_CHAIN = "failed_on_chain"
    TIMEOUT = "timeout"


@dataclass
class Confirmation:
    outcome: ConfirmOutcome
    attempts: int
    result: TransactionResult | None = None


def backoff_delay(attempt: int, min_backoff: float, max_backoff: float, rng=None) -> float:
    rng = rng or random
    return min(min_backoff * (2 ** (attempt - 1)) * rng.uniform(1.0, 2.0), max_backoff)


def confirm_transaction(
    lookup: Callable[[str, str], TransactionResult | None],
    tx_id: str,
    owner: str,
    mint: str,
    max_attempts: int = 30,
    min_backoff: float = 1.0,
    max_backoff: float = 4.0,
    sleep: Callable[[float], None] = time.sleep,
    rng=None,
) -> Confirmation:
    """Poll the chain until the swap for ``owner`` is visible with its metadata.

    Three-way result: executed (confirmed, whatever the ``mint`` delta), failed
    on-chain (terminal), or timeout once ``max_attempts`` lookups came back empty.
    """
    for attempt in range(1, max_attempts + 1):
        logger.debug("Transaction lookup attempt {}/{} for {}", attempt, max_attempts, tx_id)
        try:
            res = lookup(tx_id, owner)
        except Exception as e:
            logger.warning("Transaction lookup error (attempt {}): {}", attempt, e)
            res = None
        if res is not None:
            if res.on_chain_error:
                logger.error("Transaction {} failed on-chain: {}", tx_id, res.on_chain_error)
                return Confirmation(ConfirmOutcome.FAILED_ON_CHAIN, attempt, res)
            delta = res.change_for(mint)
            if delta <= 0:
                logger.warning("Transaction {} executed without a gain in {} (delta {})", tx_id, mint, delta)
            return Confirmation(ConfirmOutcome.CONFIRMED, attempt, res)
        if attempt < max_attempts:
            sleep(backoff_delay(attempt, min_backoff, max_backoff, rng))
    logger.error("Reached max attempts ({}) to fetch transaction {}", max_attempts, tx_id)
    return Confirmation(ConfirmOutcome.TIMEOUT, max_attempts)


@dataclass
class SwapExecutor:
    settings: AppSettings
    chain: SolanaChain
    jupiter: JupiterClient
    state: RunState
    history: TradeHistory
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=random.Random)

    def submit(self, quote: Quote) -> str:
        try:
            swap_tx_b64 = self.jupiter.get_swap_transaction(quote, self.chain.owner)
            if not swap_tx_b64:
                raise SubmissionRejected("No swap transaction from Jupiter")
            return self.chain.send_swap(swap_tx_b64)
        except (SubmissionRejected, RateLimited):
            raise
        except Exception as e:
            code = program_error_code(str(e))
            label = ERROR_LABELS.get(code) if code is not None else None
            raise SubmissionRejected(label or str(e), code=code) from e

    def submit_and_confirm(
        self,
        quote: Quote,
        token: Token,
        expected_profit: float,
        slippage_used: float,
        trade_amount: int,
        on_submitted: Callable[[str], None] | None = None,
    ) -> TradeEntry:
        base = dict(
            side="buy",
            input_token=token.symbol,
            output_token=token.symbol,
            in_amount=quote.in_amount,
            expected_out_amount=quote.out_amount,
            expected_profit_percent=expected_profit,
            slippage_used=slippage_used,
        )
        logger.info(
            "Executing swap: {} -> expected {} (min {}, slippage {} bps)",
            token.display(quote.in_amount),
            token.display(quote.out_amount),
            quote.other_amount_threshold,
            slippage_used,
        )
        started = time.monotonic()
        try:
            tx_id = self.submit(quote)
        except SubmissionRejected as e:
            logger.error("Swap rejected: {}", e)
            entry = _failed_entry(base, e)
            self._on_failure(entry, token, trade_amount)
            return entry

        try:
            logger.info("Swap sent: {} ({:.0f} ms)", tx_id, (time.monotonic() - started) * 1000)
            if on_submitted is not None:
                on_submitted(tx_id)
            conf = confirm_transaction(
                self.chain.get_transaction_result,
                tx_id,
                self.chain.owner,
                token.address,
                max_attempts=self.settings.confirm_max_attempts,
                min_backoff=self.settings.confirm_min_backoff_sec,
                max_backoff=self.settings.confirm_max_backoff_sec,
                sleep=self.sleep,
                rng=self.rng,
            )
        except KeyboardInterrupt:
            logger.warning("Interrupted while confirming {}; recording as Unknown", tx_id)
            self.history.append(
                TradeEntry(**base, tx_id=tx_id, error_kind="Unknown", error_message="interrupted before confirmation")
            )
            raise

        if conf.outcome is ConfirmOutcome.CONFIRMED:
            delta = conf.result.change_for(token.address)
            out_amount = quote.in_amount + delta
            entry = TradeEntry(
                **base,
                out_amount=out_amount,
                actual_profit_percent=profit_percent(quote.in_amount, out_amount),
                tx_id=tx_id,
                lookup_attempts=conf.attempts,
            )
            logger.success(
                "Swap confirmed after {} lookups: {} -> {} ({:.4f}%)",
                conf.attempts,
                token.display(quote.in_amount),
                token.display(out_amount),
                entry.actual_profit_percent,
            )
            self.history.append(entry)
            self.state.record_success()
            return entry

        if conf.outcome is ConfirmOutcome.FAILED_ON_CHAIN:
            entry = TradeEntry(
                **base,
                tx_id=tx_id,
                error_kind="FailedOnChain",
                error_message=str(conf.result.on_chain_error if conf.result else "failed"),
                lookup_attempts=conf.attempts,
            )
        else:
            # Funds state is unknown; still counted as a failure
            err = ConfirmationTimeout(f"no result after {conf.attempts} lookups")
            entry = _failed_entry(base, err, tx_id=tx_id, lookup_attempts=conf.attempts)
        self._on_failure(entry, token, trade_amount)
        return entry

    def _on_failure(self, entry: TradeEntry, token: Token, trade_amount: int) -> None:
        self.history.append(entry)
        short = False
        try:
            balance = self.chain.get_token_balance(self.chain.owner, token.address)
            logger.info("Current balance: {}", token.display(balance))
            short = balance < trade_amount
        except Exception as e:
            logger.warning("Error checking balance: {}", e)
        self.state.record_failure(balance_short=short)
