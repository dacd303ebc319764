"""Funding pool ORM model."""

from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from chipin.db.base import Base
from chipin.domain.public_code import generate_public_code


class PoolStatus(enum.StrEnum):
    """Pool lifecycle states."""

    ACTIVE = "active"
    FUNDED = "funded"
    REFUNDING = "refunding"
    EXPIRED = "expired"
    CANCELED = "canceled"


class Pool(Base):
    """Money pool collecting contributions toward an optional goal."""

    __tablename__ = "pools"
    __table_args__ = (
        CheckConstraint(
            "goal_amount_cents IS NULL OR goal_amount_cents > 0",
            name="ck_pools_goal_amount_positive",
        ),
        CheckConstraint(
            "collected_amount_cents >= 0",
            name="ck_pools_collected_amount_non_negative",
        ),
        CheckConstraint(
            "tip_percent BETWEEN 0 AND 35",
            name="ck_pools_tip_percent_range",
        ),
        Index("ix_pools_status_deadline_at", "status", "deadline_at"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    public_code: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        default=generate_public_code,
    )
    organizer_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    restaurant_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    goal_amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    collected_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    tip_percent: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    deadline_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[PoolStatus] = mapped_column(
        Enum(
            PoolStatus,
            name="pool_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
        default=PoolStatus.ACTIVE,
    )
    funded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    canceled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
