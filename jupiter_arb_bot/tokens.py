from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from jupiter_arb_bot.config import WSOL_MINT
from jupiter_arb_bot.models import Token

# Used when the token list cannot be fetched and nothing is cached yet
FALLBACK_TOKENS = [
    {"address": WSOL_MINT, "symbol": "SOL", "decimals": 9},
    {"address": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "symbol": "USDC", "decimals": 6},
    {"address": "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZXnKzLf", "symbol": "JUP", "decimals": 6},
]


def load_tokens(source, cache_path: str | Path, tag: str | None = None) -> dict[str, Token]:
    """Token list keyed by mint; read from the disk cache or fetched once and cached."""
    path = Path(cache_path)
    raw: list[dict[str, Any]] = []
    if path.exists():
        raw = json.loads(path.read_text()) or []
        logger.info("Token list loaded from cache {} ({} tokens)", path, len(raw))
    else:
        try:
            raw = source.list_tokens(tag)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(raw))
            logger.info("Token list fetched and saved to {} ({} tokens)", path, len(raw))
        except Exception as e:
            logger.warning("Token list fetch failed, using built-in fallback: {}", e)
            raw = FALLBACK_TOKENS
    out: dict[str, Token] = {}
    for item in raw:
        try:
            tok = Token.from_dict(item)
        except (KeyError, TypeError, ValueError):
            continue
        out[tok.address] = tok
    return out


def resolve_token(tokens: dict[str, Token], mint: str) -> Token:
    tok = tokens.get(mint)
    if tok is not None:
        return tok
    logger.warning("Token {} not in token list; falling back to wSOL", mint)
    return tokens.get(WSOL_MINT) or Token.from_dict(FALLBACK_TOKENS[0])


class TokenRotation:
    """Cycles through a fixed list of round-trip tokens, starting after the base token."""

    def __init__(self, tokens: list[Token], start: Token | None = None):
        self.tokens = tokens
        self.index = -1
        if start is not None:
            for i, t in enumerate(tokens):
                if t.address == start.address:
                    self.index = i
                    break

    def __len__(self) -> int:
        return len(self.tokens)

    def next(self) -> Token | None:
        if not self.tokens:
            return None
        self.index = (self.index + 1) % len(self.tokens)
        return self.tokens[self.index]
