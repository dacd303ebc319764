"""Create profile and chip tables.

Revision ID: 001_create_profiles_and_chips
Revises:
Create Date: 2026-10-05
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_create_profiles_and_chips"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


chip_status_enum = sa.Enum(
    "pending",
    "active",
    "completed",
    "expired",
    "canceled",
    name="chip_status",
)
chip_event_type_enum = sa.Enum(
    "chip_created",
    "participant_joined",
    "participant_removed",
    "chip_activated",
    "chip_completed",
    "chip_canceled",
    "chip_expired",
    "objective_completed",
    "objective_reopened",
    name="chip_event_type",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=True),
        sa.Column("stripe_account_id", sa.String(length=64), nullable=True),
        sa.Column(
            "stripe_onboarding_complete",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "charges_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "chips",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("public_code", sa.String(length=32), nullable=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("threshold_count", sa.Integer(), nullable=False),
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "is_private", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("status", chip_status_enum, nullable=False),
        sa.Column(
            "participant_count", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("objective_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "threshold_count BETWEEN 1 AND 100",
            name="ck_chips_threshold_count_range",
        ),
        sa.CheckConstraint(
            "participant_count >= 0",
            name="ck_chips_participant_count_non_negative",
        ),
        sa.CheckConstraint(
            "objective_count >= 0",
            name="ck_chips_objective_count_non_negative",
        ),
        sa.ForeignKeyConstraint(
            ["creator_id"], ["profiles.id"], name="fk_chips_creator_id"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_code", name="uq_chips_public_code"),
    )
    op.create_index(
        "ix_chips_status_deadline_at", "chips", ["status", "deadline_at"]
    )
    op.create_index("ix_chips_creator_id_status", "chips", ["creator_id", "status"])

    op.create_table(
        "chip_participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chip_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("display_name", sa.String(length=80), nullable=False),
        sa.Column(
            "is_creator", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["chip_id"],
            ["chips.id"],
            ondelete="CASCADE",
            name="fk_chip_participants_chip_id",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["profiles.id"], name="fk_chip_participants_user_id"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_chip_participants_chip_user",
        "chip_participants",
        ["chip_id", "user_id"],
        unique=True,
    )
    op.create_index(
        "uq_chip_participants_chip_display_name_ci",
        "chip_participants",
        ["chip_id", sa.text("lower(display_name)")],
        unique=True,
    )

    op.create_table(
        "chip_objectives",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chip_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column(
            "assigned_participant_id", postgresql.UUID(as_uuid=True), nullable=True
        ),
        sa.Column(
            "completed_by_participant_id", postgresql.UUID(as_uuid=True), nullable=True
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(completed_at IS NULL AND completed_by_participant_id IS NULL) "
            "OR (completed_at IS NOT NULL "
            "AND completed_by_participant_id IS NOT NULL)",
            name="ck_chip_objectives_completion_pair",
        ),
        sa.ForeignKeyConstraint(
            ["chip_id"],
            ["chips.id"],
            ondelete="CASCADE",
            name="fk_chip_objectives_chip_id",
        ),
        sa.ForeignKeyConstraint(
            ["assigned_participant_id"],
            ["chip_participants.id"],
            name="fk_chip_objectives_assigned_participant_id",
        ),
        sa.ForeignKeyConstraint(
            ["completed_by_participant_id"],
            ["chip_participants.id"],
            name="fk_chip_objectives_completed_by_participant_id",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_chip_objectives_chip_id_sort_order",
        "chip_objectives",
        ["chip_id", "sort_order"],
    )

    op.create_table(
        "chip_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chip_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", chip_event_type_enum, nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["chip_id"],
            ["chips.id"],
            ondelete="CASCADE",
            name="fk_chip_events_chip_id",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chip_events_chip_id", "chip_events", ["chip_id"])


def downgrade() -> None:
    op.drop_index("ix_chip_events_chip_id", table_name="chip_events")
    op.drop_table("chip_events")
    op.drop_index(
        "ix_chip_objectives_chip_id_sort_order", table_name="chip_objectives"
    )
    op.drop_table("chip_objectives")
    op.drop_index(
        "uq_chip_participants_chip_display_name_ci", table_name="chip_participants"
    )
    op.drop_index("uq_chip_participants_chip_user", table_name="chip_participants")
    op.drop_table("chip_participants")
    op.drop_index("ix_chips_creator_id_status", table_name="chips")
    op.drop_index("ix_chips_status_deadline_at", table_name="chips")
    op.drop_table("chips")
    op.drop_table("profiles")

    bind = op.get_bind()
    chip_event_type_enum.drop(bind, checkfirst=True)
    chip_status_enum.drop(bind, checkfirst=True)
