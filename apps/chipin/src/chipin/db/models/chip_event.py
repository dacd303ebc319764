"""Chip audit event ORM model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from chipin.db.base import Base


class ChipEventType(enum.StrEnum):
    """Audit event types recorded for chips."""

    CHIP_CREATED = "chip_created"
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_REMOVED = "participant_removed"
    CHIP_ACTIVATED = "chip_activated"
    CHIP_COMPLETED = "chip_completed"
    CHIP_CANCELED = "chip_canceled"
    CHIP_EXPIRED = "chip_expired"
    OBJECTIVE_COMPLETED = "objective_completed"
    OBJECTIVE_REOPENED = "objective_reopened"


class ChipEvent(Base):
    """Append-only audit event; never used to derive current state."""

    __tablename__ = "chip_events"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    chip_id: Mapped[UUID] = mapped_column(
        ForeignKey("chips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[ChipEventType] = mapped_column(
        Enum(
            ChipEventType,
            name="chip_event_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
    )
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
