"""Create pool, contribution and payment ledger tables.

Revision ID: 002_create_pools_and_payments
Revises: 001_create_profiles_and_chips
Create Date: 2026-10-05
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002_create_pools_and_payments"
down_revision: str | None = "001_create_profiles_and_chips"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


pool_status_enum = sa.Enum(
    "active",
    "funded",
    "refunding",
    "expired",
    "canceled",
    name="pool_status",
)
contribution_status_enum = sa.Enum(
    "pending",
    "succeeded",
    "refunded",
    "failed",
    name="contribution_status",
)
pool_event_type_enum = sa.Enum(
    "pool_created",
    "pool_canceled",
    "pool_funded",
    "pool_funded_by_deadline",
    "pool_refunding_started",
    "pool_expired_and_refunded",
    "checkout_session_created",
    "contribution_succeeded",
    "contribution_refunded",
    "contribution_refund_failed",
    "charge_dispute_created",
    name="pool_event_type",
)
webhook_event_status_enum = sa.Enum(
    "received",
    "processed",
    "failed",
    name="webhook_event_status",
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "pools",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("public_code", sa.String(length=32), nullable=False),
        sa.Column("organizer_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("restaurant_name", sa.String(length=100), nullable=True),
        sa.Column("goal_amount_cents", sa.Integer(), nullable=True),
        sa.Column(
            "collected_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("tip_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", pool_status_enum, nullable=False),
        sa.Column("funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "goal_amount_cents IS NULL OR goal_amount_cents > 0",
            name="ck_pools_goal_amount_positive",
        ),
        sa.CheckConstraint(
            "collected_amount_cents >= 0",
            name="ck_pools_collected_amount_non_negative",
        ),
        sa.CheckConstraint(
            "tip_percent BETWEEN 0 AND 35",
            name="ck_pools_tip_percent_range",
        ),
        sa.ForeignKeyConstraint(
            ["organizer_id"], ["profiles.id"], name="fk_pools_organizer_id"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_code", name="uq_pools_public_code"),
    )
    op.create_index("ix_pools_status_deadline_at", "pools", ["status", "deadline_at"])

    op.create_table(
        "contributions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pool_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contributor_name", sa.String(length=80), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "platform_fee_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("status", contribution_status_enum, nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("amount_cents > 0", name="ck_contributions_amount_positive"),
        sa.CheckConstraint(
            "platform_fee_cents >= 0",
            name="ck_contributions_platform_fee_non_negative",
        ),
        sa.ForeignKeyConstraint(
            ["pool_id"],
            ["pools.id"],
            ondelete="CASCADE",
            name="fk_contributions_pool_id",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_contributions_pool_id_status", "contributions", ["pool_id", "status"]
    )

    op.create_table(
        "contribution_payments",
        sa.Column("contribution_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contributor_email", sa.String(length=320), nullable=True),
        sa.Column("stripe_checkout_session_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_charge_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_refund_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_transfer_id", sa.String(length=255), nullable=True),
        sa.Column(
            "stripe_destination_account_id", sa.String(length=255), nullable=True
        ),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(
            ["contribution_id"],
            ["contributions.id"],
            ondelete="CASCADE",
            name="fk_contribution_payments_contribution_id",
        ),
        sa.PrimaryKeyConstraint("contribution_id"),
        sa.UniqueConstraint(
            "stripe_checkout_session_id",
            name="uq_contribution_payments_checkout_session_id",
        ),
    )
    op.create_index(
        "ix_contribution_payments_stripe_payment_intent_id",
        "contribution_payments",
        ["stripe_payment_intent_id"],
    )
    op.create_index(
        "ix_contribution_payments_stripe_charge_id",
        "contribution_payments",
        ["stripe_charge_id"],
    )

    op.create_table(
        "pool_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pool_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contribution_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_type", pool_event_type_enum, nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["pool_id"],
            ["pools.id"],
            ondelete="CASCADE",
            name="fk_pool_events_pool_id",
        ),
        sa.ForeignKeyConstraint(
            ["contribution_id"],
            ["contributions.id"],
            ondelete="SET NULL",
            name="fk_pool_events_contribution_id",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pool_events_pool_id", "pool_events", ["pool_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=120), nullable=False),
        sa.Column("livemode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", webhook_event_status_enum, nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "disputes",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("contribution_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=120), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(
            ["contribution_id"],
            ["contributions.id"],
            ondelete="SET NULL",
            name="fk_disputes_contribution_id",
        ),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("disputes")
    op.drop_table("webhook_events")
    op.drop_index("ix_pool_events_pool_id", table_name="pool_events")
    op.drop_table("pool_events")
    op.drop_index(
        "ix_contribution_payments_stripe_charge_id",
        table_name="contribution_payments",
    )
    op.drop_index(
        "ix_contribution_payments_stripe_payment_intent_id",
        table_name="contribution_payments",
    )
    op.drop_table("contribution_payments")
    op.drop_index("ix_contributions_pool_id_status", table_name="contributions")
    op.drop_table("contributions")
    op.drop_index("ix_pools_status_deadline_at", table_name="pools")
    op.drop_table("pools")

    bind = op.get_bind()
    webhook_event_status_enum.drop(bind, checkfirst=True)
    pool_event_type_enum.drop(bind, checkfirst=True)
    contribution_status_enum.drop(bind, checkfirst=True)
    pool_status_enum.drop(bind, checkfirst=True)
