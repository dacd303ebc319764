"""Chip objective ORM model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from chipin.db.base import Base


class ChipObjective(Base):
    """Shared checklist item; completion is a single toggle of two fields."""

    __tablename__ = "chip_objectives"
    __table_args__ = (
        CheckConstraint(
            "(completed_at IS NULL AND completed_by_participant_id IS NULL) "
            "OR (completed_at IS NOT NULL "
            "AND completed_by_participant_id IS NOT NULL)",
            name="ck_chip_objectives_completion_pair",
        ),
        Index("ix_chip_objectives_chip_id_sort_order", "chip_id", "sort_order"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    chip_id: Mapped[UUID] = mapped_column(
        ForeignKey("chips.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_participant_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("chip_participants.id"),
        nullable=True,
    )
    completed_by_participant_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("chip_participants.id"),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
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
