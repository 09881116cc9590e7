from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import select

from jupiter_arb_bot.analytics.metrics import get_summary
from jupiter_arb_bot.config import AppSettings
from jupiter_arb_bot.db import TradeRecord, make_session_factory, session_scope

app = FastAPI(title="Jupiter Arbitrage Bot API")
settings = AppSettings()
SessionFactory = make_session_factory(settings.database_url)


class TradeOut(BaseModel):
    id: int
    timestamp: str
    status: str
    input_token: str
    output_token: str
    in_amount: str
    expected_out_amount: str
    out_amount: str | None
    expected_profit_pct: float
    actual_profit_pct: float | None
    slippage_bps: float
    error_kind: str | None
    error: str | None
    tx_id: str | None

    @classmethod
    def from_model(cls, m: TradeRecord):
        return cls(
            id=m.id,
            timestamp=m.timestamp.isoformat(),
            status=m.status,
            input_token=m.input_token,
            output_token=m.output_token,
            in_amount=m.in_amount,
            expected_out_amount=m.expected_out_amount,
            out_amount=m.out_amount,
            expected_profit_pct=m.expected_profit_pct,
            actual_profit_pct=m.actual_profit_pct,
            slippage_bps=m.slippage_bps,
            error_kind=m.error_kind,
            error=m.error,
            tx_id=m.tx_id,
        )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/trades")
def list_trades(limit: int = 50, status: str | None = None):
    with session_scope(SessionFactory) as s:
        q = select(TradeRecord).order_by(TradeRecord.id.desc()).limit(limit)
        if status:
            q = q.where(TradeRecord.status == status)
        rows = s.execute(q).scalars().all()
        return [TradeOut.from_model(r).model_dump() for r in rows]


@app.get("/summary")
def summary():
    s = get_summary(SessionFactory)
    return s.__dict__
