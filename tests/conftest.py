from __future__ import annotations

import pytest

from jupiter_arb_bot.chains.solana import BalanceChange, TransactionResult
from jupiter_arb_bot.models import Quote, Token, min_out_for_slippage

USDC = Token(address="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", symbol="USDC", decimals=6)
OWNER = "9xQeWvG816bUx9EPm2Tbd2Ykqg3k9uADuZbL9g1z3Q2E"


class MidRng:
    """Deterministic rng: no threshold jitter, minimum backoff."""

    def uniform(self, a, b):
        return 1.0 if a < 1.0 < b else a


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class FakeJupiter:
    def __init__(self, out_amount: int = 1_010_000, swap_tx: str | None = "c3dhcA==", quote_error=None):
        self.out_amount = out_amount
        self.swap_tx = swap_tx
        self.quote_error = quote_error
        self.quote_calls: list[tuple] = []
        self.swapped: list[Quote] = []
        self.on_quote = None

    def get_quote(self, input_mint, output_mint, amount, slippage_bps):
        self.quote_calls.append((input_mint, output_mint, amount, slippage_bps))
        if self.on_quote is not None:
            self.on_quote()
        if self.quote_error is not None:
            raise self.quote_error
        return Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=self.out_amount,
            other_amount_threshold=min_out_for_slippage(self.out_amount, slippage_bps),
            slippage_bps=slippage_bps,
            route_hops=("Orca", "Raydium"),
            raw={"inAmount": str(amount), "outAmount": str(self.out_amount), "slippageBps": slippage_bps},
        )

    def get_swap_transaction(self, quote, user_public_key):
        self.swapped.append(quote)
        return self.swap_tx


class FakeChain:
    owner = OWNER

    def __init__(self, results=None, balance: int = 10**12, send_error: Exception | None = None):
        self.results = list(results or [])
        self.balance = balance
        self.send_error = send_error
        self.sent: list[str] = []
        self.lookups = 0
        self.on_lookup = None

    def check_connection(self):
        return None

    def send_swap(self, swap_tx_b64):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(swap_tx_b64)
        return f"sig{len(self.sent)}"

    def get_transaction_result(self, tx_id, owner):
        self.lookups += 1
        if self.on_lookup is not None:
            self.on_lookup()
        if self.results:
            return self.results.pop(0)
        return None

    def get_token_balance(self, owner, mint):
        return self.balance


def confirmed(mint: str, start: int, end: int) -> TransactionResult:
    return TransactionResult(changes={mint: BalanceChange(start=start, end=end, decimals=6)})


def make_bot(settings=None, chain=None, jupiter=None, token=USDC, clock=None, sleep=None, history=None, rotation=None):
    from jupiter_arb_bot.config import AppSettings
    from jupiter_arb_bot.db import TradeHistory
    from jupiter_arb_bot.execution.solana_executor import SwapExecutor
    from jupiter_arb_bot.runner import ArbitrageBot, build_state

    settings = settings or AppSettings(
        base_mint=token.address,
        trade_size=1.0,
        min_profit_percent=0.5,
        slippage_bps=100,
        adaptive_slippage=True,
        trading_enabled=True,
    )
    chain = chain if chain is not None else FakeChain()
    jupiter = jupiter if jupiter is not None else FakeJupiter()
    state = build_state(settings)
    executor = SwapExecutor(
        settings=settings,
        chain=chain,
        jupiter=jupiter,
        state=state,
        history=history if history is not None else TradeHistory(),
        sleep=lambda s: None,
        rng=MidRng(),
    )
    return ArbitrageBot(
        settings=settings,
        quotes=jupiter,
        executor=executor,
        state=state,
        token=token,
        rotation=rotation,
        clock=clock or FakeClock(),
        sleep=sleep or (lambda s: None),
        rng=MidRng(),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def log_messages():
    from loguru import logger

    messages: list = []
    handler_id = logger.add(messages.append, level="DEBUG", format="{level}|{message}")
    yield messages
    logger.remove(handler_id)
