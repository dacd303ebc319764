"""Chip participant ORM model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from chipin.db.base import Base


class ChipParticipant(Base):
    """One committed participant; guests have no identity reference."""

    __tablename__ = "chip_participants"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    chip_id: Mapped[UUID] = mapped_column(
        ForeignKey("chips.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("profiles.id"),
        nullable=True,
    )
    display_name: Mapped[str] = mapped_column(String(80), nullable=False)
    is_creator: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


Index(
    "uq_chip_participants_chip_user",
    ChipParticipant.chip_id,
    ChipParticipant.user_id,
    unique=True,
)
Index(
    "uq_chip_participants_chip_display_name_ci",
    ChipParticipant.chip_id,
    func.lower(ChipParticipant.display_name),
    unique=True,
)
