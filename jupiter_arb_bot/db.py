from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator

from loguru import logger
from sqlalchemy import DateTime, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from jupiter_arb_bot.models import TradeEntry


class Base(DeclarativeBase):
    pass


class TradeRecord(Base):
    __tablename__ = "trade_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, index=True)
    side: Mapped[str] = mapped_column(String(8))
    status: Mapped[str] = mapped_column(String(32), index=True)  # success|failed|unknown
    input_token: Mapped[str] = mapped_column(String(64))
    output_token: Mapped[str] = mapped_column(String(64))
    # Smallest-unit amounts can exceed 64 bits; stored as strings
    in_amount: Mapped[str] = mapped_column(String(80))
    expected_out_amount: Mapped[str] = mapped_column(String(80))
    out_amount: Mapped[str | None] = mapped_column(String(80))
    expected_profit_pct: Mapped[float] = mapped_column(Float)
    actual_profit_pct: Mapped[float | None] = mapped_column(Float)
    slippage_bps: Mapped[float] = mapped_column(Float)
    error_kind: Mapped[str | None] = mapped_column(String(32))
    error: Mapped[str | None] = mapped_column(Text)
    tx_id: Mapped[str | None] = mapped_column(String(100), index=True)
    lookup_attempts: Mapped[int] = mapped_column(Integer, default=0)

    @classmethod
    def from_entry(cls, e: TradeEntry) -> TradeRecord:
        if e.error_kind is None:
            status = "success"
        elif e.error_kind in ("Unknown", "ConfirmationTimeout"):
            status = "unknown"
        else:
            status = "failed"
        return cls(
            timestamp=e.timestamp.replace(tzinfo=None),
            side=e.side,
            status=status,
            input_token=e.input_token,
            output_token=e.output_token,
            in_amount=str(e.in_amount),
            expected_out_amount=str(e.expected_out_amount),
            out_amount=str(e.out_amount) if e.out_amount is not None else None,
            expected_profit_pct=e.expected_profit_percent,
            actual_profit_pct=e.actual_profit_percent,
            slippage_bps=e.slippage_used,
            error_kind=e.error_kind,
            error=e.error_message,
            tx_id=e.tx_id,
            lookup_attempts=e.lookup_attempts,
        )


def make_engine(database_url: str):
    if database_url.startswith("sqlite") and ":///" in database_url:
        db_file = database_url.split(":///", 1)[1]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, pool_pre_ping=True, future=True)


def make_session_factory(database_url: str):
    engine = make_engine(database_url)
    # Schema comes from Alembic; the bot service runs create_all for SQLite only
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


@contextmanager
def session_scope(SessionFactory) -> Generator[Session, None, None]:
    session: Session = SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class TradeHistory:
    """Append-only trade log; mirrored to the database when a session factory is given."""

    def __init__(self, SessionFactory=None, store_failed: bool = True):
        self.SessionFactory = SessionFactory
        self.store_failed = store_failed
        self._entries: list[TradeEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    @property
    def entries(self) -> tuple[TradeEntry, ...]:
        return tuple(self._entries)

    def append(self, entry: TradeEntry) -> None:
        if not entry.succeeded and not self.store_failed and entry.error_kind != "Unknown":
            return
        self._entries.append(entry)
        if self.SessionFactory is None:
            return
        try:
            with session_scope(self.SessionFactory) as s:
                s.add(TradeRecord.from_entry(entry))
        except Exception as e:
            logger.exception("Failed to persist trade entry: {}", e)

    def dump_json(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps([e.to_dict() for e in self._entries], indent=2))
        logger.info("Trade history saved to {} ({} entries)", p, len(self._entries))
        return p
