from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from jupiter_arb_bot.db import TradeRecord, session_scope


@dataclass
class Summary:
    total: int
    success: int
    failed: int
    unknown: int
    avg_profit_pct: float | None


def get_summary(SessionFactory) -> Summary:
    with session_scope(SessionFactory) as s:
        total = s.scalar(select(func.count()).select_from(TradeRecord)) or 0
        success = s.scalar(select(func.count()).select_from(TradeRecord).where(TradeRecord.status == "success")) or 0
        failed = s.scalar(select(func.count()).select_from(TradeRecord).where(TradeRecord.status == "failed")) or 0
        unknown = s.scalar(select(func.count()).select_from(TradeRecord).where(TradeRecord.status == "unknown")) or 0
        avg = s.scalar(select(func.avg(TradeRecord.actual_profit_pct)).where(TradeRecord.status == "success"))
        return Summary(
            total=total,
            success=success,
            failed=failed,
            unknown=unknown,
            avg_profit_pct=float(avg) if avg is not None else None,
        )
