from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests
from loguru import logger

from jupiter_arb_bot.config import AppSettings
from jupiter_arb_bot.errors import NoRouteFound, RateLimited
from jupiter_arb_bot.models import Quote

NO_ROUTE_CODES = ("COULD_NOT_FIND_ANY_ROUTE", "NO_ROUTES_FOUND", "TOKEN_NOT_TRADABLE")


def _check_throttle(r: requests.Response, what: str) -> None:
    if r.status_code == 429:
        raise RateLimited(f"Jupiter {what} rate limited (429)")


def get_quote(quote_url: str, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Quote:
    params = {
        "inputMint": input_mint,
        "outputMint": output_mint,
        "amount": str(amount),
        "slippageBps": str(slippage_bps),
        "onlyDirectRoutes": "false",
    }
    r = requests.get(quote_url, params=params, timeout=15)
    _check_throttle(r, "quote")
    if r.status_code == 400:
        body = r.json() or {}
        if body.get("errorCode") in NO_ROUTE_CODES:
            raise NoRouteFound(body.get("error") or body["errorCode"])
    r.raise_for_status()
    data = r.json() or {}
    # Older deployments wrapped routes in a 'data' list
    if "data" in data and isinstance(data["data"], list):
        routes = data["data"]
        if not routes:
            raise NoRouteFound(f"No route {input_mint} -> {output_mint}")
        data = routes[0]
    if not data.get("outAmount"):
        raise NoRouteFound(f"No route {input_mint} -> {output_mint}")
    return Quote.from_jupiter(data)


def get_swap_transaction(
    swap_url: str,
    quote: Quote,
    user_public_key: str,
    wrap_unwrap_sol: bool = True,
    priority_fee_micro_lamports: int | None = None,
) -> str | None:
    payload: dict[str, Any] = {
        "quoteResponse": quote.raw,
        "userPublicKey": user_public_key,
        "wrapAndUnwrapSol": wrap_unwrap_sol,
        "useSharedAccounts": True,
        "asLegacyTransaction": False,
    }
    if priority_fee_micro_lamports:
        payload["computeUnitPriceMicroLamports"] = int(priority_fee_micro_lamports)
    r = requests.post(swap_url, json=payload, timeout=20)
    _check_throttle(r, "swap")
    r.raise_for_status()
    j = r.json()
    return j.get("swapTransaction")


def list_tokens(tokens_url: str, tag: str | None = None) -> list[dict[str, Any]]:
    params = {"tags": tag} if tag else None
    r = requests.get(tokens_url, params=params, timeout=30)
    _check_throttle(r, "token list")
    r.raise_for_status()
    data = r.json() or []
    if isinstance(data, dict):
        data = data.get("tokens") or data.get("data") or []
    return [t for t in data if t.get("address")]


@dataclass
class JupiterClient:
    quote_url: str
    swap_url: str
    tokens_url: str
    wrap_unwrap_sol: bool = True
    priority_fee_micro_lamports: int | None = None

    @classmethod
    def create(cls, settings: AppSettings) -> JupiterClient:
        return cls(
            quote_url=settings.jupiter_quote_url,
            swap_url=settings.jupiter_swap_url,
            tokens_url=settings.jupiter_tokens_url,
            wrap_unwrap_sol=settings.wrap_unwrap_sol,
            priority_fee_micro_lamports=settings.priority_fee_micro_lamports,
        )

    def get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Quote:
        quote = get_quote(self.quote_url, input_mint, output_mint, amount, slippage_bps)
        logger.debug(
            "Quote {} -> {}: in={} out={} hops={}",
            input_mint[:8],
            output_mint[:8],
            quote.in_amount,
            quote.out_amount,
            " > ".join(quote.route_hops) or "-",
        )
        return quote

    def get_swap_transaction(self, quote: Quote, user_public_key: str) -> str | None:
        return get_swap_transaction(
            self.swap_url,
            quote,
            user_public_key,
            wrap_unwrap_sol=self.wrap_unwrap_sol,
            priority_fee_micro_lamports=self.priority_fee_micro_lamports,
        )

    def list_tokens(self, tag: str | None = None) -> list[dict[str, Any]]:
        return list_tokens(self.tokens_url, tag)
