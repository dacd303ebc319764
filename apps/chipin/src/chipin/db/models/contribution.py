"""Pool contribution ORM model."""

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


class ContributionStatus(enum.StrEnum):
    """Contribution payment lifecycle states."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    REFUNDED = "refunded"
    FAILED = "failed"


class Contribution(Base):
    """One contributor's payment toward a pool."""

    __tablename__ = "contributions"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_contributions_amount_positive"),
        CheckConstraint(
            "platform_fee_cents >= 0",
            name="ck_contributions_platform_fee_non_negative",
        ),
        Index("ix_contributions_pool_id_status", "pool_id", "status"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pool_id: Mapped[UUID] = mapped_column(
        ForeignKey("pools.id", ondelete="CASCADE"),
        nullable=False,
    )
    contributor_name: Mapped[str] = mapped_column(String(80), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    status: Mapped[ContributionStatus] = mapped_column(
        Enum(
            ContributionStatus,
            name="contribution_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
        default=ContributionStatus.PENDING,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
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
