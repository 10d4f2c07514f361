"""Initial schema: users, processed_alerts, catastrophes, payouts.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("zip", sa.String(5), nullable=False, index=True),
        sa.Column("wallet_address", sa.String(64), nullable=True),
        sa.Column("policy_id", sa.String(32), nullable=False, unique=True),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "PAID", "INACTIVE", name="user_status"),
            nullable=False,
            server_default="ACTIVE",
        ),
        sa.Column("is_activated", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("balance", sa.Float, nullable=False, server_default="0"),
        sa.Column("last_payout", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payout_amount", sa.Float, nullable=True),
        sa.Column("last_alert_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_alert_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "processed_alerts",
        sa.Column("alert_id", sa.String(255), primary_key=True),
        sa.Column("severity", sa.String(32), nullable=True),
        sa.Column("area_desc", sa.Text, nullable=True),
        sa.Column(
            "processed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "catastrophes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("zip_codes", postgresql.JSON, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("amount_usd", sa.Float, nullable=False),
        sa.Column("amount_token", sa.Float, nullable=False),
        sa.Column("exchange_rate", sa.Float, nullable=False),
        sa.Column(
            "source",
            sa.Enum("admin", "agent", name="catastrophe_source"),
            nullable=False,
            server_default="admin",
        ),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("total_affected", sa.Integer, nullable=False, server_default="0"),
        sa.Column("successful_payouts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_payouts", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            index=True,
        ),
    )

    op.create_table(
        "payouts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "catastrophe_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("catastrophes.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("amount_usd", sa.Float, nullable=False),
        sa.Column("amount_token", sa.Float, nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="1"),
        sa.Column("tx_hash", sa.String(128), nullable=True),
        sa.Column("explorer_url", sa.String(255), nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("email_sent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("payouts")
    op.drop_table("catastrophes")
    op.drop_table("processed_alerts")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS catastrophe_source")
    op.execute("DROP TYPE IF EXISTS user_status")
