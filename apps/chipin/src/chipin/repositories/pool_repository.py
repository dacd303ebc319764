"""Persistence operations for pools, contributions and pool events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, cast
from uuid import UUID

from sqlalchemy import CursorResult, func, select, update
from sqlalchemy.orm import Session

from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.contribution_payment import ContributionPayment
from chipin.db.models.pool import Pool, PoolStatus
from chipin.db.models.pool_event import PoolEvent, PoolEventType
from chipin.domain.status_machine import (
    CONTRIBUTION_STATUS_MACHINE,
    POOL_STATUS_MACHINE,
    SWEEPABLE_POOL_STATUSES,
)


@dataclass(slots=True, frozen=True)
class ExpiredPoolCandidate:
    """Snapshot of one pool read at the start of a sweep."""

    pool_id: UUID
    status: PoolStatus
    goal_amount_cents: int | None


@dataclass(slots=True, frozen=True)
class RefundableContribution:
    """Succeeded contribution paired with its processor payment intent."""

    contribution_id: UUID
    amount_cents: int
    payment_intent_id: str | None


class PoolRepository:
    """Repository for pools and contributions."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, pool_id: UUID) -> Pool | None:
        """Fetch pool by id."""

        return self._session.get(Pool, pool_id)

    def get_for_update(self, pool_id: UUID) -> Pool | None:
        """Fetch and lock one pool by id."""

        statement = select(Pool).where(Pool.id == pool_id).with_for_update()
        return self._session.scalar(statement)

    def get_by_public_code(self, public_code: str) -> Pool | None:
        statement = select(Pool).where(Pool.public_code == public_code)
        return self._session.scalar(statement)

    def list_for_organizer(self, organizer_id: str, *, limit: int = 50) -> list[Pool]:
        """List pools one organizer created, newest first."""

        statement = (
            select(Pool)
            .where(Pool.organizer_id == organizer_id)
            .order_by(Pool.created_at.desc(), Pool.id.desc())
            .limit(limit)
        )
        return list(self._session.scalars(statement))

    def add_pool(
        self,
        *,
        organizer_id: str,
        title: str,
        restaurant_name: str | None,
        goal_amount_cents: int | None,
        tip_percent: int,
        deadline_at: datetime,
    ) -> Pool:
        """Persist a newly created active pool."""

        now = datetime.now(tz=UTC)
        pool = Pool(
            organizer_id=organizer_id,
            title=title,
            restaurant_name=restaurant_name,
            goal_amount_cents=goal_amount_cents,
            collected_amount_cents=0,
            tip_percent=tip_percent,
            deadline_at=deadline_at,
            status=PoolStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self._session.add(pool)
        self._session.flush()
        return pool

    def transition_status(
        self,
        pool_id: UUID,
        *,
        to_status: PoolStatus,
        from_status: PoolStatus | None = None,
    ) -> bool:
        """Guarded pool status update; ``False`` means the race was lost.

        Raises:
            IllegalStatusTransition: When ``from_status`` has no edge to
                ``to_status``.
        """

        if from_status is not None:
            POOL_STATUS_MACHINE.assert_transition(from_status, to_status)
            status_guard = Pool.status == from_status
        else:
            status_guard = Pool.status.in_(
                sorted(POOL_STATUS_MACHINE.sources_for(to_status))
            )

        now = datetime.now(tz=UTC)
        values: dict[str, Any] = {"status": to_status, "updated_at": now}
        timestamp_field = POOL_STATUS_MACHINE.timestamp_field(to_status)
        if timestamp_field is not None:
            values[timestamp_field] = now

        statement = (
            update(Pool).where(Pool.id == pool_id, status_guard).values(**values)
        )
        result = cast(CursorResult[Any], self._session.execute(statement))
        return result.rowcount > 0

    def list_expiration_candidates(
        self,
        *,
        now: datetime,
        limit: int = 200,
    ) -> list[ExpiredPoolCandidate]:
        """Read active or refunding pools whose deadline already passed."""

        statement = (
            select(Pool.id, Pool.status, Pool.goal_amount_cents)
            .where(
                Pool.status.in_(sorted(SWEEPABLE_POOL_STATUSES)),
                Pool.deadline_at <= now,
            )
            .order_by(Pool.deadline_at, Pool.id)
            .limit(limit)
        )
        return [
            ExpiredPoolCandidate(
                pool_id=row.id,
                status=row.status,
                goal_amount_cents=row.goal_amount_cents,
            )
            for row in self._session.execute(statement)
        ]

    def sum_succeeded_amount(self, pool_id: UUID) -> int:
        """Sum succeeded contribution amounts straight from contribution rows."""

        total = func.coalesce(func.sum(Contribution.amount_cents), 0)
        statement = select(total).where(
            Contribution.pool_id == pool_id,
            Contribution.status == ContributionStatus.SUCCEEDED,
        )
        return int(self._session.scalar(statement) or 0)

    def write_collected_amount(self, pool_id: UUID, amount_cents: int) -> None:
        statement = (
            update(Pool)
            .where(Pool.id == pool_id)
            .values(
                collected_amount_cents=amount_cents,
                updated_at=datetime.now(tz=UTC),
            )
        )
        self._session.execute(statement)

    def add_contribution(
        self,
        *,
        pool_id: UUID,
        contributor_name: str,
        amount_cents: int,
        platform_fee_cents: int,
    ) -> Contribution:
        """Persist a pending contribution awaiting checkout."""

        now = datetime.now(tz=UTC)
        contribution = Contribution(
            pool_id=pool_id,
            contributor_name=contributor_name,
            amount_cents=amount_cents,
            platform_fee_cents=platform_fee_cents,
            status=ContributionStatus.PENDING,
            paid_at=None,
            refunded_at=None,
            created_at=now,
            updated_at=now,
        )
        self._session.add(contribution)
        self._session.flush()
        return contribution

    def get_contribution(self, contribution_id: UUID) -> Contribution | None:
        return self._session.get(Contribution, contribution_id)

    def list_contributions(
        self,
        pool_id: UUID,
        *,
        statuses: frozenset[ContributionStatus] | None = None,
    ) -> list[Contribution]:
        statement = select(Contribution).where(Contribution.pool_id == pool_id)
        if statuses is not None:
            statement = statement.where(Contribution.status.in_(sorted(statuses)))
        statement = statement.order_by(Contribution.created_at, Contribution.id)
        return list(self._session.scalars(statement))

    def list_refundable(self, pool_id: UUID) -> list[RefundableContribution]:
        """List succeeded contributions with whatever intent id is on record."""

        statement = (
            select(
                Contribution.id,
                Contribution.amount_cents,
                ContributionPayment.stripe_payment_intent_id,
            )
            .outerjoin(
                ContributionPayment,
                ContributionPayment.contribution_id == Contribution.id,
            )
            .where(
                Contribution.pool_id == pool_id,
                Contribution.status == ContributionStatus.SUCCEEDED,
            )
            .order_by(Contribution.created_at, Contribution.id)
        )
        return [
            RefundableContribution(
                contribution_id=row.id,
                amount_cents=row.amount_cents,
                payment_intent_id=row.stripe_payment_intent_id,
            )
            for row in self._session.execute(statement)
        ]

    def count_succeeded(self, pool_id: UUID) -> int:
        statement = select(func.count(Contribution.id)).where(
            Contribution.pool_id == pool_id,
            Contribution.status == ContributionStatus.SUCCEEDED,
        )
        return int(self._session.scalar(statement) or 0)

    def transition_contribution(
        self,
        contribution_id: UUID,
        *,
        to_status: ContributionStatus,
        from_status: ContributionStatus | None = None,
    ) -> bool:
        """Guarded contribution status update; ``False`` means nothing changed.

        Raises:
            IllegalStatusTransition: When ``from_status`` has no edge to
                ``to_status``.
        """

        if from_status is not None:
            CONTRIBUTION_STATUS_MACHINE.assert_transition(from_status, to_status)
            status_guard = Contribution.status == from_status
        else:
            status_guard = Contribution.status.in_(
                sorted(CONTRIBUTION_STATUS_MACHINE.sources_for(to_status))
            )

        now = datetime.now(tz=UTC)
        values: dict[str, Any] = {"status": to_status, "updated_at": now}
        timestamp_field = CONTRIBUTION_STATUS_MACHINE.timestamp_field(to_status)
        if timestamp_field is not None:
            values[timestamp_field] = now

        statement = (
            update(Contribution)
            .where(Contribution.id == contribution_id, status_guard)
            .values(**values)
        )
        result = cast(CursorResult[Any], self._session.execute(statement))
        return result.rowcount > 0

    def add_event(
        self,
        *,
        pool_id: UUID,
        event_type: PoolEventType,
        payload: dict[str, Any],
        contribution_id: UUID | None = None,
    ) -> PoolEvent:
        """Append one pool audit event."""

        event = PoolEvent(
            pool_id=pool_id,
            contribution_id=contribution_id,
            event_type=event_type,
            payload=payload,
            created_at=datetime.now(tz=UTC),
        )
        self._session.add(event)
        self._session.flush()
        return event
