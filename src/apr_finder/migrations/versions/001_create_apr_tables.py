"""Create rate, alert and notification tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "apr_data"


def upgrade() -> None:
    # Schema is created by env.py before migrations run.
    op.create_table(
        "apr_current",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("asset", sa.Text, nullable=False),
        sa.Column("platform", sa.Text, nullable=False),
        sa.Column("platform_type", sa.Text, nullable=False),
        sa.Column("chain", sa.Text, nullable=False),
        sa.Column("lock_period", sa.Text, nullable=False),
        sa.Column("apr", sa.Float, nullable=False),
        sa.Column("apy", sa.Float, nullable=True),
        sa.Column("min_stake", sa.Float, nullable=True),
        sa.Column("risk_level", sa.Text, nullable=True),
        sa.Column("source", sa.Text, nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("asset", "platform", "chain", "lock_period"),
        schema=SCHEMA,
    )

    op.create_table(
        "apr_history",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("asset", sa.Text, nullable=False),
        sa.Column("platform", sa.Text, nullable=False),
        sa.Column("chain", sa.Text, nullable=False),
        sa.Column("lock_period", sa.Text, nullable=False),
        sa.Column("apr", sa.Float, nullable=False),
        sa.Column("apy", sa.Float, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_apr_history_asset_ts", "apr_history", ["asset", "timestamp"], schema=SCHEMA)

    op.create_table(
        "alerts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("asset", sa.Text, nullable=False),
        sa.Column("platform", sa.Text, nullable=False),
        sa.Column("alert_type", sa.Text, nullable=False),
        sa.Column("threshold", sa.Float, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_triggered", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("alert_type IN ('above', 'below')", name="ck_alerts_alert_type"),
        schema=SCHEMA,
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("alert_id", sa.BigInteger, nullable=True),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("data", postgresql.JSONB, nullable=False),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"], schema=SCHEMA)


def downgrade() -> None:
    op.drop_index("ix_notifications_created_at", table_name="notifications", schema=SCHEMA)
    op.drop_table("notifications", schema=SCHEMA)
    op.drop_table("alerts", schema=SCHEMA)
    op.drop_index("ix_apr_history_asset_ts", table_name="apr_history", schema=SCHEMA)
    op.drop_table("apr_history", schema=SCHEMA)
    op.drop_table("apr_current", schema=SCHEMA)
    op.execute(f"DROP SCHEMA IF EXISTS {SCHEMA}")
