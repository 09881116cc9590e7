import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError


def test_empty_env_coercion(monkeypatch):
    from jupiter_arb_bot.config import AppSettings

    monkeypatch.setenv("ARB_SOL_WALLET_PRIVATE_KEY", "")
    monkeypatch.setenv("ARB_ROTATION_INTERVAL_MIN", "")
    monkeypatch.setenv("ARB_SOL_RPC_BACKUP_URL", "")
    s = AppSettings()
    assert s.sol_wallet_private_key is None
    assert s.rotation_interval_min is None
    assert s.sol_rpc_backup_url is None


def test_env_prefix_and_poll_floor(monkeypatch):
    from jupiter_arb_bot.config import AppSettings

    monkeypatch.setenv("ARB_MIN_PROFIT_PERCENT", "0.8")
    monkeypatch.setenv("ARB_ADAPTIVE_SLIPPAGE", "true")
    monkeypatch.setenv("ARB_POLL_INTERVAL_SEC", "0.5")
    s = AppSettings()
    assert s.min_profit_percent == 0.8
    assert s.adaptive_slippage is True
    assert s.poll_interval_sec == 3.0
    assert AppSettings(poll_interval_sec=7).poll_interval_sec == 7.0


def test_unknown_trade_size_strategy_rejected():
    from jupiter_arb_bot.config import AppSettings

    with pytest.raises(ValidationError):
        AppSettings(trade_size_strategy="pingpong")


def test_rotation_mints_from_yaml(tmp_path):
    from jupiter_arb_bot.config import AppSettings

    rotation_yaml = tmp_path / "rotation.yaml"
    rotation_yaml.write_text(
        """
tokens:
  - address: "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
  - "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZXnKzLf"
  - address: "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
        """.strip()
    )
    s = AppSettings(rotation_config=str(rotation_yaml))
    assert s.rotation_mints() == [
        "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZXnKzLf",
    ]


def test_api_endpoints_with_sqlite(tmp_path, monkeypatch):
    # Use a file-based sqlite for persistence across connections
    db_path = tmp_path / "arb.db"
    db_url = f"sqlite+pysqlite:///{db_path}"
    monkeypatch.setenv("ARB_DATABASE_URL", db_url)

    # Import after setting env so the module picks it up
    from services.api.main import app, settings
    from jupiter_arb_bot.db import Base, TradeHistory, make_engine, make_session_factory
    from jupiter_arb_bot.models import TradeEntry

    engine = make_engine(settings.database_url)
    Base.metadata.create_all(engine)
    SessionFactory = make_session_factory(settings.database_url)

    history = TradeHistory(SessionFactory)
    history.append(
        TradeEntry(
            side="buy",
            input_token="USDC",
            output_token="USDC",
            in_amount=1_000_000,
            expected_out_amount=1_010_000,
            expected_profit_percent=1.0,
            slippage_used=120.0,
            out_amount=1_008_000,
            actual_profit_percent=0.8,
            tx_id="sig1",
        )
    )
    history.append(
        TradeEntry(
            side="buy",
            input_token="USDC",
            output_token="USDC",
            in_amount=1_000_000,
            expected_out_amount=1_010_000,
            expected_profit_percent=1.0,
            slippage_used=100.0,
            error_kind="SubmissionRejected",
            error_message="Slippage Tolerance Exceeded",
        )
    )

    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    r = client.get("/summary")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] >= 2
    assert data["success"] >= 1
    assert data["failed"] >= 1
    r = client.get("/trades")
    assert r.status_code == 200
    rows = r.json()
    assert isinstance(rows, list)
    assert rows[0]["status"] in ("success", "failed")
    r = client.get("/trades", params={"status": "failed"})
    assert all(row["status"] == "failed" for row in r.json())
