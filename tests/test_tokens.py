from __future__ import annotations

import json

from jupiter_arb_bot.config import WSOL_MINT
from jupiter_arb_bot.models import Token
from jupiter_arb_bot.tokens import TokenRotation, load_tokens, resolve_token

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class FakeSource:
    def __init__(self, tokens=None, error=None):
        self.tokens = tokens or []
        self.error = error
        self.calls = 0

    def list_tokens(self, tag=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.tokens


def test_fetch_once_then_read_from_cache(tmp_path):
    cache = tmp_path / "cache" / "tokens.json"
    src = FakeSource([{"address": USDC, "symbol": "USDC", "decimals": 6}])

    tokens = load_tokens(src, cache, "verified")
    assert tokens[USDC].decimals == 6
    assert json.loads(cache.read_text())[0]["symbol"] == "USDC"

    again = load_tokens(src, cache, "verified")
    assert again == tokens
    assert src.calls == 1


def test_fetch_failure_uses_fallback_and_skips_cache(tmp_path):
    cache = tmp_path / "tokens.json"
    tokens = load_tokens(FakeSource(error=ConnectionError("down")), cache)
    assert tokens[WSOL_MINT].symbol == "SOL"
    assert tokens[USDC].decimals == 6
    assert not cache.exists()


def test_malformed_entries_are_skipped(tmp_path):
    cache = tmp_path / "tokens.json"
    cache.write_text(json.dumps([{"symbol": "NOADDR"}, {"address": USDC, "decimals": "x"}, {"address": "A1", "decimals": 2}]))
    tokens = load_tokens(FakeSource(), cache)
    assert list(tokens) == ["A1"]
    assert tokens["A1"].symbol == "A1"


def test_resolve_unknown_mint_falls_back_to_wsol():
    tokens = {USDC: Token(USDC, "USDC", 6)}
    assert resolve_token(tokens, USDC).symbol == "USDC"
    assert resolve_token(tokens, "Unknown111").address == WSOL_MINT


def test_rotation_cycles_after_start_token():
    a, b, c = Token("A", "A", 6), Token("B", "B", 6), Token("C", "C", 9)
    rot = TokenRotation([a, b, c], start=b)
    assert [rot.next().symbol for _ in range(4)] == ["C", "A", "B", "C"]
    assert TokenRotation([]).next() is None
