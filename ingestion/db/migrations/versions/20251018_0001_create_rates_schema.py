"""Create rate, subscriber, notification and job_runs tables"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "20251018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scraping_sources",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("selector", sa.String(length=512), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("target_currency", sa.String(length=8), nullable=False, server_default="BOB"),
        sa.Column("frequency", sa.String(length=64), nullable=False, server_default="0 */2 * * *"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("rate_type", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("base_currency", sa.String(length=8), nullable=False),
        sa.Column("target_currency", sa.String(length=8), nullable=False),
        sa.Column("buy_price", sa.Float(), nullable=False),
        sa.Column("sell_price", sa.Float(), nullable=False),
        sa.Column("average_price", sa.Float(), nullable=False),
        sa.Column("spread_amount", sa.Float(), nullable=False),
        sa.Column("change_24h", sa.Float(), nullable=False, server_default="0"),
        sa.Column("change_percentage_24h", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=128), nullable=True),
        sa.UniqueConstraint("type", "base_currency", "target_currency", name="uq_exchange_rates_key"),
    )

    op.create_table(
        "exchange_rates_history",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("rate_type", sa.String(length=16), nullable=False),
        sa.Column("base_currency", sa.String(length=8), nullable=False),
        sa.Column("target_currency", sa.String(length=8), nullable=False),
        sa.Column("buy_price", sa.Float(), nullable=False),
        sa.Column("sell_price", sa.Float(), nullable=False),
        sa.Column("average_price", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index(
        "ix_exchange_rates_history_type_recorded",
        "exchange_rates_history",
        ["rate_type", "recorded_at"],
        unique=False,
    )

    op.create_table(
        "notification_subscribers",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_identifier", sa.String(length=256), nullable=True),
        sa.Column("platform", sa.String(length=16), nullable=False),
        sa.Column("push_subscription_data", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index(
        "ix_notification_subscribers_platform_active",
        "notification_subscribers",
        ["platform", "is_active"],
        unique=False,
    )

    op.create_table(
        "alert_notifications",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "subscriber_id",
            sa.String(length=64),
            sa.ForeignKey("notification_subscribers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index(
        "ix_alert_notifications_subscriber_created",
        "alert_notifications",
        ["subscriber_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("stage", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("task_name", sa.String(length=100), nullable=True),
        sa.Column("items_in", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_out", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_job_runs_stage_status", "job_runs", ["stage", "status"], unique=False)
    op.create_index("ix_job_runs_trace", "job_runs", ["trace_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_job_runs_trace", table_name="job_runs")
    op.drop_index("ix_job_runs_stage_status", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_alert_notifications_subscriber_created", table_name="alert_notifications")
    op.drop_table("alert_notifications")
    op.drop_index("ix_notification_subscribers_platform_active", table_name="notification_subscribers")
    op.drop_table("notification_subscribers")
    op.drop_index("ix_exchange_rates_history_type_recorded", table_name="exchange_rates_history")
    op.drop_table("exchange_rates_history")
    op.drop_table("exchange_rates")
    op.drop_table("scraping_sources")
