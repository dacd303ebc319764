"""Schemas for pool and checkout endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.pool import Pool, PoolStatus
from chipin.domain.money import format_money, from_cents

AMOUNT_PATTERN = r"^[0-9]+(\.[0-9]{1,2})?$"


def _validate_decimal(value: str) -> str:
    try:
        Decimal(value)
    except InvalidOperation as exc:
        raise ValueError("Amount must be a decimal number.") from exc
    return value


def _format_cents(cents: int) -> str:
    return format_money(from_cents(cents))


class CreatePoolRequest(BaseModel):
    """Payload for creating a pool."""

    title: str = Field(min_length=1, max_length=100)
    restaurant_name: str | None = Field(default=None, max_length=100)
    goal_amount: str | None = Field(default=None, pattern=AMOUNT_PATTERN)
    tip_percent: int = Field(default=0, ge=0, le=35)
    deadline_minutes: int = Field(ge=5, le=180)

    @field_validator("goal_amount")
    @classmethod
    def validate_goal_amount(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_decimal(value)


class StartCheckoutRequest(BaseModel):
    """Payload for starting a contributor checkout."""

    contributor_name: str = Field(min_length=1, max_length=80)
    amount: str = Field(pattern=AMOUNT_PATTERN)

    @field_validator("contributor_name")
    @classmethod
    def validate_contributor_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Contributor name cannot be blank.")
        return trimmed

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, value: str) -> str:
        return _validate_decimal(value)


class PoolResponse(BaseModel):
    """Serialized pool returned by API."""

    id: UUID
    public_code: str
    organizer_id: str
    title: str
    restaurant_name: str | None
    goal_amount: str | None
    collected_amount: str
    tip_percent: int
    deadline_at: datetime
    status: PoolStatus
    funded_at: datetime | None
    expired_at: datetime | None
    canceled_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, pool: Pool) -> PoolResponse:
        return cls(
            id=pool.id,
            public_code=pool.public_code,
            organizer_id=pool.organizer_id,
            title=pool.title,
            restaurant_name=pool.restaurant_name,
            goal_amount=(
                _format_cents(pool.goal_amount_cents)
                if pool.goal_amount_cents is not None
                else None
            ),
            collected_amount=_format_cents(pool.collected_amount_cents),
            tip_percent=pool.tip_percent,
            deadline_at=pool.deadline_at,
            status=pool.status,
            funded_at=pool.funded_at,
            expired_at=pool.expired_at,
            canceled_at=pool.canceled_at,
            created_at=pool.created_at,
        )


class ContributionResponse(BaseModel):
    """Contribution shown on a pool page."""

    id: UUID
    contributor_name: str
    amount: str
    status: ContributionStatus
    paid_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, contribution: Contribution) -> ContributionResponse:
        return cls(
            id=contribution.id,
            contributor_name=contribution.contributor_name,
            amount=_format_cents(contribution.amount_cents),
            status=contribution.status,
            paid_at=contribution.paid_at,
            refunded_at=contribution.refunded_at,
            created_at=contribution.created_at,
        )


class PoolListResponse(BaseModel):
    """Pools the caller organizes."""

    items: list[PoolResponse]

    @classmethod
    def from_models(cls, pools: list[Pool]) -> PoolListResponse:
        return cls(items=[PoolResponse.from_model(pool) for pool in pools])


class PoolDetailResponse(BaseModel):
    """Pool page payload."""

    pool: PoolResponse
    contributions: list[ContributionResponse]


class CheckoutRedirectResponse(BaseModel):
    """Hosted checkout URL the contributor should be sent to."""

    checkout_url: str
    contribution_id: UUID
