from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

from jupiter_arb_bot.aggregators.jupiter import JupiterClient
from jupiter_arb_bot.chains.solana import SolanaChain
from jupiter_arb_bot.config import AppSettings
from jupiter_arb_bot.db import TradeHistory
from jupiter_arb_bot.errors import BalanceShortfall, InvalidAmount, NoRouteFound, RateLimited
from jupiter_arb_bot.execution.solana_executor import SwapExecutor
from jupiter_arb_bot.models import Token, TradeEntry, to_amount
from jupiter_arb_bot.state import RateLimiter, RunState, StopReason
from jupiter_arb_bot.strategy.gate import TradeGate
from jupiter_arb_bot.strategy.profit import adaptive_slippage, jitter_threshold, profit_percent
from jupiter_arb_bot.tokens import TokenRotation, load_tokens, resolve_token


def build_state(settings: AppSettings) -> RunState:
    limiter = RateLimiter(
        min_interval=settings.poll_interval_sec,
        soft_limit=settings.rate_limit_soft,
        per_minute=settings.rate_limit_per_min,
        max_delay=settings.rate_limit_max_delay_sec,
        cooldown=settings.rate_limit_cooldown_sec,
    )
    return RunState(
        rate_limiter=limiter,
        trading_enabled=settings.trading_enabled,
        max_balance_shortfalls=settings.max_balance_shortfalls,
        max_errors=settings.max_errors,
    )


@dataclass
class ArbitrageBot:
    settings: AppSettings
    quotes: JupiterClient
    executor: SwapExecutor
    state: RunState
    token: Token
    rotation: TokenRotation | None = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self):
        self.gate = TradeGate(self.state)
        self.current_amount = to_amount(self.settings.trade_size, self.token.decimals)
        self._cycle_running = False
        self._last_rotation = self.clock()
        self.state.rate_limiter.reset_window(self._last_rotation)

    @classmethod
    def create(cls, settings: AppSettings, SessionFactory=None) -> ArbitrageBot:
        chain = SolanaChain.create(settings)
        jupiter = JupiterClient.create(settings)
        tokens = load_tokens(jupiter, settings.token_cache_path, settings.token_list_tag)
        token = resolve_token(tokens, settings.base_mint)

        rotation = None
        rotation_tokens = [tokens[m] for m in settings.rotation_mints() if m in tokens]
        if rotation_tokens:
            rotation = TokenRotation(rotation_tokens, start=token)

        state = build_state(settings)
        history = TradeHistory(SessionFactory, store_failed=settings.store_failed_in_history)
        executor = SwapExecutor(settings=settings, chain=chain, jupiter=jupiter, state=state, history=history)
        return cls(settings=settings, quotes=jupiter, executor=executor, state=state, token=token, rotation=rotation)

    @property
    def history(self) -> TradeHistory:
        return self.executor.history

    def startup_check(self) -> int:
        """Verify RPC reachability and that the wallet can afford one trade."""
        chain = self.executor.chain
        chain.check_connection()
        amount = to_amount(self.settings.trade_size, self.token.decimals)
        balance = chain.get_token_balance(chain.owner, self.token.address)
        if balance < amount:
            raise BalanceShortfall(
                f"Insufficient {self.token.symbol}: available {self.token.display(balance)}, "
                f"required {self.token.display(amount)}"
            )
        logger.info("Wallet {} holds {}", chain.owner, self.token.display(balance))
        return balance

    def trade_amount(self) -> int:
        if self.settings.trade_size_strategy == "cumulative":
            return self.current_amount
        return to_amount(self.settings.trade_size, self.token.decimals)

    def request_rotation(self) -> None:
        self.state.rotation_requested = True

    def _maybe_rotate(self, now: float) -> None:
        if self.rotation is None or not len(self.rotation):
            return
        interval = self.settings.rotation_interval_min
        due = interval is not None and interval > 0 and now - self._last_rotation >= interval * 60
        if not (self.state.rotation_requested or due):
            return
        self.state.rotation_requested = False
        self._last_rotation = now
        nxt = self.rotation.next()
        if nxt is None or nxt.address == self.token.address:
            return
        logger.info("Rotating to new token: {} ({})", nxt.symbol, nxt.address)
        self.token = nxt
        self.current_amount = to_amount(self.settings.trade_size, nxt.decimals)
        self.state.iteration = 0
        self.state.max_profit_spotted = 0.0
        self.state.rate_limiter.reset_window(now)

    def run_cycle(self) -> TradeEntry | None:
        """One quote -> evaluate -> decide -> execute pass."""
        st = self.state
        st.iteration += 1
        token = self.token
        amount = self.trade_amount()
        base_slippage = self.settings.slippage_bps

        st.rate_limiter.record_request(self.clock())
        quote = self.quotes.get_quote(token.address, token.address, amount, base_slippage)

        profit = profit_percent(amount, quote.out_amount)
        threshold = jitter_threshold(self.settings.min_profit_percent, self.rng)
        st.max_profit_spotted = max(st.max_profit_spotted, profit)

        slippage = adaptive_slippage(profit, threshold, base_slippage, self.settings.adaptive_slippage)
        if slippage != base_slippage:
            logger.info("Setting adaptive slippage to {} bps", slippage)
            quote = quote.with_slippage(slippage)

        logger.info(
            "#{} {}: simulated profit {:.4f}% (required {:.4f}%, max seen {:.4f}%) via {}",
            st.iteration,
            token.symbol,
            profit,
            threshold,
            st.max_profit_spotted,
            " > ".join(quote.route_hops) or "-",
        )

        decision = self.gate.evaluate(profit, threshold)
        if not decision.submit:
            logger.debug("No trade: {}", decision.reason)
            return None
        if decision.revert:
            quote = quote.with_min_out(0)

        self.gate.begin_submission()
        entry = None
        try:
            entry = self.executor.submit_and_confirm(
                quote,
                token,
                expected_profit=profit,
                slippage_used=slippage,
                trade_amount=amount,
                on_submitted=lambda _tx: self.gate.begin_confirmation(),
            )
        finally:
            self.gate.finish(entry is not None and entry.succeeded, revert=decision.revert)

        if entry.succeeded and entry.out_amount is not None:
            self.current_amount = entry.out_amount
        return entry

    def tick(self) -> TradeEntry | None:
        if self._cycle_running:
            logger.debug("Previous cycle still running; tick skipped")
            return None
        if self.state.halted:
            return None
        now = self.clock()
        if self.state.rate_limiter.maybe_resume(now):
            logger.debug("Rate limit cooldown active, skipping this iteration")
            return None

        self._cycle_running = True
        try:
            self._maybe_rotate(now)
            return self.run_cycle()
        except RateLimited as e:
            logger.warning("{}", e)
            self.state.rate_limiter.on_rate_limited(self.clock())
        except (NoRouteFound, InvalidAmount) as e:
            logger.warning("Cycle aborted: {}", e)
        except Exception as e:
            logger.exception("Error in arbitrage cycle: {}", e)
        finally:
            self._cycle_running = False
        return None

    def run(self) -> StopReason | None:
        logger.info(
            "Starting arbitrage bot on {} (trading_enabled={}, interval={}s, min profit {}%)",
            self.token.symbol,
            self.state.trading_enabled,
            self.state.rate_limiter.current_delay,
            self.settings.min_profit_percent,
        )
        try:
            while not self.state.halted:
                started = self.clock()
                self.tick()
                if self.state.halted:
                    break
                delay = self.state.rate_limiter.current_delay
                elapsed = self.clock() - started
                if elapsed > delay:
                    # Fixed grid: fires that fell inside a long cycle are dropped
                    logger.debug("Cycle took {:.2f}s (> {:.2f}s); skipping missed ticks", elapsed, delay)
                    self.sleep(delay - (elapsed % delay))
                else:
                    self.sleep(delay - elapsed)
        except KeyboardInterrupt:
            logger.info("Arbitrage bot interrupted; shutting down.")
            return StopReason.INTERRUPTED
        return self.state.stop_reason
