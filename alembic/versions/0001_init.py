from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "trade_history",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("timestamp", sa.DateTime, nullable=False, index=True),
        sa.Column("side", sa.String(8), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, index=True),
        sa.Column("input_token", sa.String(64), nullable=False),
        sa.Column("output_token", sa.String(64), nullable=False),
        sa.Column("in_amount", sa.String(80), nullable=False),
        sa.Column("expected_out_amount", sa.String(80), nullable=False),
        sa.Column("out_amount", sa.String(80)),
        sa.Column("expected_profit_pct", sa.Float, nullable=False),
        sa.Column("actual_profit_pct", sa.Float),
        sa.Column("slippage_bps", sa.Float, nullable=False),
        sa.Column("error_kind", sa.String(32)),
        sa.Column("error", sa.Text),
        sa.Column("tx_id", sa.String(100), index=True),
        sa.Column("lookup_attempts", sa.Integer, default=0),
    )


def downgrade():
    op.drop_table("trade_history")
