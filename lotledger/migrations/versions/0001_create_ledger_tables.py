"""Purchase lots, corporate-action adjustments, trade journal and fees."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect

revision = "0001_create_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None

adjustment_kind = sa.Enum("CASH_DIVIDEND", "STOCK_DIVIDEND", "STOCK_SPLIT", name="adjustment_kind")
trade_side = sa.Enum("BUY", "SELL", name="trade_side")
fee_kind = sa.Enum("DIVIDEND_TAX", name="fee_kind")


def _has_table(bind, table_name: str) -> bool:
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "purchase_lot"):
        op.create_table(
            "purchase_lot",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("owner_id", sa.String(length=64), nullable=False, index=True),
            sa.Column("account_id", sa.String(length=64), nullable=False),
            sa.Column("ticker", sa.String(length=20), nullable=False),
            sa.Column("purchase_date", sa.Date, nullable=False),
            sa.Column("quantity", sa.Integer, nullable=False),
            sa.Column("price_per_share", sa.Numeric(24, 6), nullable=False),
            sa.Column("buy_fee", sa.Numeric(24, 6), nullable=False, server_default="0"),
            sa.Column("total_cost", sa.Numeric(24, 6), nullable=False),
            sa.Column("remaining_quantity", sa.Integer, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.CheckConstraint("quantity > 0", name="ck_purchase_lot_quantity_positive"),
            sa.CheckConstraint(
                "remaining_quantity >= 0 AND remaining_quantity <= quantity",
                name="ck_purchase_lot_remaining_bounds",
            ),
            sa.Index("ix_purchase_lot_key_open", "owner_id", "account_id", "ticker", "purchase_date", "id"),
        )

    if not _has_table(bind, "corporate_action_adjustment"):
        op.create_table(
            "corporate_action_adjustment",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("owner_id", sa.String(length=64), nullable=False, index=True),
            sa.Column("account_id", sa.String(length=64), nullable=False),
            sa.Column("ticker", sa.String(length=20), nullable=False),
            sa.Column("kind", adjustment_kind, nullable=False),
            sa.Column("event_date", sa.Date, nullable=False),
            sa.Column("dividend_per_share", sa.Numeric(24, 6)),
            sa.Column("tax_rate", sa.Numeric(8, 6)),
            sa.Column("ratio", sa.Numeric(18, 8)),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
            sa.Column("description", sa.String(length=255)),
            sa.Column("external_ref", sa.String(length=128)),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(timezone=True)),
            sa.Index("ix_adjustment_key_event", "owner_id", "account_id", "ticker", "event_date"),
        )

    if not _has_table(bind, "ledger_trade"):
        op.create_table(
            "ledger_trade",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("owner_id", sa.String(length=64), nullable=False),
            sa.Column("account_id", sa.String(length=64), nullable=False),
            sa.Column("ticker", sa.String(length=20), nullable=False),
            sa.Column("side", trade_side, nullable=False),
            sa.Column("trade_date", sa.Date, nullable=False),
            sa.Column("quantity", sa.Integer, nullable=False),
            sa.Column("price", sa.Numeric(24, 6), nullable=False),
            sa.Column("fee", sa.Numeric(24, 6), nullable=False, server_default="0"),
            sa.Column("lot_id", sa.Integer),
            sa.Column("total_cost", sa.Numeric(24, 6)),
            sa.Column("tax_rate_percent", sa.Numeric(8, 4)),
            sa.Column("gross_sell_value", sa.Numeric(24, 6)),
            sa.Column("selling_tax", sa.Numeric(24, 6)),
            sa.Column("net_proceeds", sa.Numeric(24, 6)),
            sa.Column("total_cogs", sa.Numeric(24, 6)),
            sa.Column("realized_pl", sa.Numeric(24, 6)),
            sa.Column("lots_used", sa.JSON),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Index("ix_ledger_trade_owner_date", "owner_id", "trade_date", "id"),
            sa.Index("ix_ledger_trade_key", "owner_id", "account_id", "ticker"),
        )

    if not _has_table(bind, "account_fee"):
        op.create_table(
            "account_fee",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("owner_id", sa.String(length=64), nullable=False),
            sa.Column("account_id", sa.String(length=64), nullable=False),
            sa.Column("kind", fee_kind, nullable=False),
            sa.Column("amount", sa.Numeric(24, 6), nullable=False),
            sa.Column("fee_date", sa.Date, nullable=False),
            sa.Column("description", sa.String(length=255)),
            sa.Column("reference_number", sa.String(length=128)),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Index("ix_account_fee_owner_account", "owner_id", "account_id", "fee_date"),
        )


def downgrade() -> None:
    op.drop_table("account_fee")
    op.drop_table("ledger_trade")
    op.drop_table("corporate_action_adjustment")
    op.drop_table("purchase_lot")

    # Postgres keeps enum types after their tables; no-op elsewhere
    bind = op.get_bind()
    checkfirst = not op.get_context().as_sql
    for enum_type in (fee_kind, trade_side, adjustment_kind):
        enum_type.drop(bind, checkfirst=checkfirst)
