"""Chip ORM model."""

from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from chipin.db.base import Base
from chipin.domain.public_code import generate_public_code


class ChipStatus(enum.StrEnum):
    """Chip lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELED = "canceled"


class Chip(Base):
    """One group commitment with a participant threshold and a deadline."""

    __tablename__ = "chips"
    __table_args__ = (
        CheckConstraint(
            "threshold_count BETWEEN 1 AND 100",
            name="ck_chips_threshold_count_range",
        ),
        CheckConstraint(
            "participant_count >= 0",
            name="ck_chips_participant_count_non_negative",
        ),
        CheckConstraint(
            "objective_count >= 0",
            name="ck_chips_objective_count_non_negative",
        ),
        Index("ix_chips_status_deadline_at", "status", "deadline_at"),
        Index("ix_chips_creator_id_status", "creator_id", "status"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    public_code: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        default=generate_public_code,
    )
    creator_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    threshold_count: Mapped[int] = mapped_column(Integer, nullable=False)
    deadline_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    is_private: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )
    status: Mapped[ChipStatus] = mapped_column(
        Enum(
            ChipStatus,
            name="chip_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
        default=ChipStatus.PENDING,
    )
    participant_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    objective_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
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
