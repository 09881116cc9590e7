from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from jupiter_arb_bot.config import WSOL_MINT, AppSettings
from jupiter_arb_bot.errors import StartupError


def _as_dict(resp: Any) -> dict:
    # solders responses serialize to the raw JSON-RPC envelope
    if isinstance(resp, dict):
        return resp
    return json.loads(resp.to_json())


@dataclass
class BalanceChange:
    start: int
    end: int
    decimals: int = 0

    @property
    def change(self) -> int:
        return self.end - self.start


@dataclass
class TransactionResult:
    changes: dict[str, BalanceChange] = field(default_factory=dict)
    on_chain_error: Any = None
    slot: int = 0

    def change_for(self, mint: str) -> int:
        bc = self.changes.get(mint)
        return bc.change if bc else 0


def parse_transaction_result(res: dict, owner: str) -> TransactionResult:
    """Net per-mint balance changes for ``owner`` from a getTransaction result."""
    meta = res.get("meta") or {}
    out = TransactionResult(on_chain_error=meta.get("err"), slot=int(res.get("slot") or 0))

    for p in meta.get("preTokenBalances") or []:
        if p.get("owner") != owner:
            continue
        amt = p.get("uiTokenAmount") or {}
        out.changes[p["mint"]] = BalanceChange(
            start=int(amt.get("amount") or 0),
            end=0,
            decimals=int(amt.get("decimals") or 0),
        )
    seen_post = set()
    for q in meta.get("postTokenBalances") or []:
        if q.get("owner") != owner:
            continue
        amt = q.get("uiTokenAmount") or {}
        mint = q["mint"]
        # Token account created by this tx starts at 0
        bc = out.changes.setdefault(mint, BalanceChange(start=0, end=0, decimals=int(amt.get("decimals") or 0)))
        bc.end = int(amt.get("amount") or 0)
        seen_post.add(mint)
    # Account closed by this tx ends at 0
    for mint, bc in out.changes.items():
        if mint not in seen_post:
            bc.end = 0

    # Wrapped SOL closed in the same tx shows up as native lamports on the fee payer
    if WSOL_MINT not in out.changes or out.changes[WSOL_MINT].change == 0:
        keys = ((res.get("transaction") or {}).get("message") or {}).get("accountKeys") or []
        payer = keys[0].get("pubkey") if keys and isinstance(keys[0], dict) else (keys[0] if keys else None)
        pre = meta.get("preBalances") or []
        post = meta.get("postBalances") or []
        if payer == owner and pre and post:
            out.changes[WSOL_MINT] = BalanceChange(start=int(pre[0]), end=int(post[0]), decimals=9)
    return out


@dataclass
class SolanaChain:
    client: Client
    keypair: Keypair | None
    backup_client: Client | None = None
    wrap_unwrap_sol: bool = True

    @classmethod
    def create(cls, settings: AppSettings) -> SolanaChain:
        if not settings.sol_wallet_private_key:
            raise StartupError("ARB_SOL_WALLET_PRIVATE_KEY is not set")
        import base58

        try:
            secret = base58.b58decode(settings.sol_wallet_private_key)
            kp = Keypair.from_bytes(secret)
        except Exception as e:
            raise StartupError(f"Invalid wallet secret: {e}") from e
        backup = None
        if settings.sol_rpc_backup_url and settings.sol_rpc_backup_url != settings.sol_rpc_url:
            backup = Client(settings.sol_rpc_backup_url, commitment=Confirmed)
        return cls(
            client=Client(settings.sol_rpc_url, commitment=Confirmed),
            keypair=kp,
            backup_client=backup,
            wrap_unwrap_sol=settings.wrap_unwrap_sol,
        )

    @property
    def owner(self) -> str:
        if self.keypair is None:
            raise StartupError("No wallet keypair loaded")
        return str(self.keypair.pubkey())

    def check_connection(self) -> None:
        if not self.client.is_connected():
            raise StartupError("Cannot reach Solana RPC")

    def get_token_balance(self, owner: str, mint: str) -> int:
        if self.wrap_unwrap_sol and mint == WSOL_MINT:
            # Native balance, not the wrapped SOL token account
            resp = _as_dict(self.client.get_balance(Pubkey.from_string(owner)))
            return int(((resp.get("result") or {}).get("value")) or 0)

        resp = _as_dict(
            self.client.get_token_accounts_by_owner_json_parsed(
                Pubkey.from_string(owner), TokenAccountOpts(mint=Pubkey.from_string(mint))
            )
        )
        total = 0
        for acc in (resp.get("result") or {}).get("value") or []:
            info = (((acc.get("account") or {}).get("data") or {}).get("parsed") or {}).get("info") or {}
            total += int((info.get("tokenAmount") or {}).get("amount") or 0)
        return total

    def _fetch_transaction(self, client: Client, tx_id: str) -> dict | None:
        try:
            resp = client.get_transaction(
                Signature.from_string(tx_id),
                encoding="jsonParsed",
                max_supported_transaction_version=0,
            )
        except Exception as e:
            logger.debug("getTransaction {} failed: {}", tx_id, e)
            return None
        return _as_dict(resp).get("result")

    def get_transaction_result(self, tx_id: str, owner: str) -> TransactionResult | None:
        """Look up a transaction; ``None`` means it is not visible yet."""
        res = self._fetch_transaction(self.client, tx_id)
        if not res and self.backup_client is not None:
            # Some RPCs lag behind; try the backup before giving up on this attempt
            res = self._fetch_transaction(self.backup_client, tx_id)
        if not res or not res.get("meta"):
            return None
        return parse_transaction_result(res, owner)

    def send_swap(self, swap_tx_b64: str) -> str:
        if self.keypair is None:
            raise StartupError("No wallet keypair loaded")
        raw = base64.b64decode(swap_tx_b64)
        vtx = VersionedTransaction.from_bytes(raw)
        # Reconstruct signed transaction using message + signer
        signed = VersionedTransaction(vtx.message, [self.keypair])
        resp = self.client.send_raw_transaction(
            bytes(signed), opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        )
        return str(resp.value)
