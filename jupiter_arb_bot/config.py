from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WSOL_MINT = "So11111111111111111111111111111111111111112"

MIN_POLL_INTERVAL_SEC = 3.0


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="ARB_", extra="allow")

    # Database (trade history)
    database_url: str = "sqlite+pysqlite:///./temp/arb.db"

    # Solana
    sol_rpc_url: str = "https://api.mainnet-beta.solana.com"
    sol_rpc_backup_url: str | None = "https://api.mainnet-beta.solana.com"
    sol_wallet_private_key: str | None = None  # base58 secret key
    wrap_unwrap_sol: bool = True

    # Jupiter
    jupiter_quote_url: str = "https://quote-api.jup.ag/v6/quote"
    jupiter_swap_url: str = "https://quote-api.jup.ag/v6/swap"
    jupiter_tokens_url: str = "https://tokens.jup.ag/tokens"
    token_list_tag: str | None = "verified"
    token_cache_path: str = "temp/tokens.json"

    # Strategy
    base_mint: str = WSOL_MINT
    trade_size: float = 1.0  # in display units of the base token
    trade_size_strategy: str = "fixed"  # 'fixed' | 'cumulative'
    min_profit_percent: float = 0.5
    slippage_bps: int = 100
    adaptive_slippage: bool = False
    priority_fee_micro_lamports: int = 100
    trading_enabled: bool = False

    # Polling
    poll_interval_sec: float = MIN_POLL_INTERVAL_SEC

    # Token rotation
    rotation_config: str = "config/rotation.yaml"
    rotation_interval_min: float | None = 5.0

    # Confirmation lookup
    confirm_max_attempts: int = 30
    confirm_min_backoff_sec: float = 1.0
    confirm_max_backoff_sec: float = 4.0

    # Circuit breakers
    max_balance_shortfalls: int = 5
    max_errors: int = 100

    # Provider rate limiting
    rate_limit_per_min: int = 60
    rate_limit_soft: int = 45
    rate_limit_max_delay_sec: float = 10.0
    rate_limit_cooldown_sec: float = 30.0

    # History
    store_failed_in_history: bool = True
    history_path: str = "temp/tradeHistory.json"

    # Logging
    log_level: str = "INFO"

    # --- Validators to coerce empty strings in optional envs to None ---
    @field_validator(
        "sol_rpc_backup_url",
        "sol_wallet_private_key",
        "token_list_tag",
        "rotation_interval_min",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("poll_interval_sec")
    @classmethod
    def _floor_poll_interval(cls, v: float) -> float:
        # Provider allows ~60 req/min; never poll faster than every 3s
        return max(float(v), MIN_POLL_INTERVAL_SEC)

    @field_validator("trade_size_strategy")
    @classmethod
    def _check_strategy(cls, v: str) -> str:
        v = (v or "fixed").lower()
        if v not in ("fixed", "cumulative"):
            raise ValueError(f"unknown trade size strategy: {v}")
        return v

    def rotation_mints(self) -> list[str]:
        import yaml

        path = Path(self.rotation_config)
        if not path.exists():
            return []
        data = yaml.safe_load(path.read_text()) or {}
        lst: list[str] = []
        for item in data.get("tokens", []):
            # Accept either bare mint strings or {address: ...} mappings
            addr = item.get("address") if isinstance(item, dict) else item
            if addr and addr not in lst:
                lst.append(str(addr))
        return lst
