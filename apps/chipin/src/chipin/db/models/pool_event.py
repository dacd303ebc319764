"""Pool audit event ORM model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from chipin.db.base import Base


class PoolEventType(enum.StrEnum):
    """Audit event types recorded for pools."""

    POOL_CREATED = "pool_created"
    POOL_CANCELED = "pool_canceled"
    POOL_FUNDED = "pool_funded"
    POOL_FUNDED_BY_DEADLINE = "pool_funded_by_deadline"
    POOL_REFUNDING_STARTED = "pool_refunding_started"
    POOL_EXPIRED_AND_REFUNDED = "pool_expired_and_refunded"
    CHECKOUT_SESSION_CREATED = "checkout_session_created"
    CONTRIBUTION_SUCCEEDED = "contribution_succeeded"
    CONTRIBUTION_REFUNDED = "contribution_refunded"
    CONTRIBUTION_REFUND_FAILED = "contribution_refund_failed"
    CHARGE_DISPUTE_CREATED = "charge_dispute_created"


class PoolEvent(Base):
    """Append-only audit event; never used to derive current state."""

    __tablename__ = "pool_events"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pool_id: Mapped[UUID] = mapped_column(
        ForeignKey("pools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contribution_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("contributions.id", ondelete="SET NULL"),
        nullable=True,
    )
    event_type: Mapped[PoolEventType] = mapped_column(
        Enum(
            PoolEventType,
            name="pool_event_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
