"""Deadline sweeps that expire chips and settle or refund pools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from chipin.db.models.chip import ChipStatus
from chipin.db.models.chip_event import ChipEventType
from chipin.db.models.contribution import ContributionStatus
from chipin.db.models.pool import PoolStatus
from chipin.db.models.pool_event import PoolEventType
from chipin.domain.clock import utc_now
from chipin.infrastructure.payments.gateway import PaymentGateway
from chipin.repositories.chip_repository import ExpiredChipCandidate
from chipin.repositories.pool_repository import (
    ExpiredPoolCandidate,
    RefundableContribution,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SweepResult:
    """Counters for one sweep invocation."""

    checked: int
    transitioned: int


class SessionProtocol(Protocol):
    """Subset of SQLAlchemy session APIs used by the sweeper."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class ChipSweepRepositoryProtocol(Protocol):
    """Chip repository contract consumed by the sweeper."""

    def list_past_deadline(
        self,
        *,
        now: datetime,
        limit: int = 500,
    ) -> list[ExpiredChipCandidate]: ...

    def transition_status(
        self,
        chip_id: UUID,
        *,
        to_status: ChipStatus,
        from_status: ChipStatus | None = None,
    ) -> bool: ...

    def add_event(
        self,
        *,
        chip_id: UUID,
        event_type: ChipEventType,
        payload: dict[str, Any],
        actor_id: str | None = None,
    ) -> object: ...


class PoolSweepRepositoryProtocol(Protocol):
    """Pool repository contract consumed by the sweeper."""

    def list_expiration_candidates(
        self,
        *,
        now: datetime,
        limit: int = 200,
    ) -> list[ExpiredPoolCandidate]: ...

    def sum_succeeded_amount(self, pool_id: UUID) -> int: ...

    def write_collected_amount(self, pool_id: UUID, amount_cents: int) -> None: ...

    def transition_status(
        self,
        pool_id: UUID,
        *,
        to_status: PoolStatus,
        from_status: PoolStatus | None = None,
    ) -> bool: ...

    def list_refundable(self, pool_id: UUID) -> list[RefundableContribution]: ...

    def count_succeeded(self, pool_id: UUID) -> int: ...

    def transition_contribution(
        self,
        contribution_id: UUID,
        *,
        to_status: ContributionStatus,
        from_status: ContributionStatus | None = None,
    ) -> bool: ...

    def add_event(
        self,
        *,
        pool_id: UUID,
        event_type: PoolEventType,
        payload: dict[str, Any],
        contribution_id: UUID | None = None,
    ) -> object: ...


class PaymentCorrelationRepositoryProtocol(Protocol):
    """Correlation repository contract consumed by the sweeper."""

    def upsert_payment(self, contribution_id: UUID, **fields: str | None) -> object: ...


class ChipDeadlineSweeper:
    """Expires pending or active chips once their deadline passed."""

    def __init__(
        self,
        *,
        chip_repository: ChipSweepRepositoryProtocol,
        session: SessionProtocol,
    ) -> None:
        self._chip_repository = chip_repository
        self._session = session

    def sweep(self, *, now: datetime | None = None) -> SweepResult:
        """Expire every eligible chip, committing one chip at a time."""

        sweep_time = now or utc_now()
        candidates = self._chip_repository.list_past_deadline(now=sweep_time)
        transitioned = 0

        for candidate in candidates:
            try:
                changed = self._chip_repository.transition_status(
                    candidate.chip_id,
                    from_status=candidate.status,
                    to_status=ChipStatus.EXPIRED,
                )
                if changed:
                    self._chip_repository.add_event(
                        chip_id=candidate.chip_id,
                        event_type=ChipEventType.CHIP_EXPIRED,
                        payload={"from_status": candidate.status.value},
                    )
                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.exception(
                    "chip_expiration_failed",
                    extra={"chip_id": str(candidate.chip_id)},
                )
                continue

            if changed:
                transitioned += 1

        logger.info(
            "chip_sweep_finished",
            extra={"checked": len(candidates), "transitioned": transitioned},
        )
        return SweepResult(checked=len(candidates), transitioned=transitioned)


class PoolDeadlineSweeper:
    """Funds pools that met their goal and refunds the rest.

    Pools left in ``refunding`` by a failed refund are picked up again on the
    next tick; only contributions still ``succeeded`` are retried.
    """

    def __init__(
        self,
        *,
        pool_repository: PoolSweepRepositoryProtocol,
        payment_repository: PaymentCorrelationRepositoryProtocol,
        payment_gateway: PaymentGateway,
        session: SessionProtocol,
    ) -> None:
        self._pool_repository = pool_repository
        self._payment_repository = payment_repository
        self._payment_gateway = payment_gateway
        self._session = session

    def sweep(self, *, now: datetime | None = None) -> SweepResult:
        sweep_time = now or utc_now()
        candidates = self._pool_repository.list_expiration_candidates(now=sweep_time)
        transitioned = 0

        for candidate in candidates:
            try:
                done = self._process_pool(candidate)
            except Exception:
                self._session.rollback()
                logger.exception(
                    "pool_expiration_failed",
                    extra={"pool_id": str(candidate.pool_id)},
                )
                continue
            if done:
                transitioned += 1

        logger.info(
            "pool_sweep_finished",
            extra={"checked": len(candidates), "transitioned": transitioned},
        )
        return SweepResult(checked=len(candidates), transitioned=transitioned)

    def _process_pool(self, candidate: ExpiredPoolCandidate) -> bool:
        pool_id = candidate.pool_id

        if candidate.status == PoolStatus.ACTIVE:
            collected = self._pool_repository.sum_succeeded_amount(pool_id)
            self._pool_repository.write_collected_amount(pool_id, collected)
            if self._goal_met(candidate.goal_amount_cents, collected):
                changed = self._pool_repository.transition_status(
                    pool_id,
                    from_status=PoolStatus.ACTIVE,
                    to_status=PoolStatus.FUNDED,
                )
                if changed:
                    self._pool_repository.add_event(
                        pool_id=pool_id,
                        event_type=PoolEventType.POOL_FUNDED_BY_DEADLINE,
                        payload={"collected_amount_cents": collected},
                    )
                self._session.commit()
                return changed

            changed = self._pool_repository.transition_status(
                pool_id,
                from_status=PoolStatus.ACTIVE,
                to_status=PoolStatus.REFUNDING,
            )
            if not changed:
                self._session.commit()
                return False
            self._pool_repository.add_event(
                pool_id=pool_id,
                event_type=PoolEventType.POOL_REFUNDING_STARTED,
                payload={
                    "collected_amount_cents": collected,
                    "goal_amount_cents": candidate.goal_amount_cents,
                },
            )
            self._session.commit()

        all_refunded = True
        for contribution in self._pool_repository.list_refundable(pool_id):
            if not self._refund_contribution(pool_id, contribution):
                all_refunded = False

        if not all_refunded or self._pool_repository.count_succeeded(pool_id):
            return False

        changed = self._pool_repository.transition_status(
            pool_id,
            from_status=PoolStatus.REFUNDING,
            to_status=PoolStatus.EXPIRED,
        )
        if changed:
            self._pool_repository.add_event(
                pool_id=pool_id,
                event_type=PoolEventType.POOL_EXPIRED_AND_REFUNDED,
                payload={},
            )
            self._pool_repository.write_collected_amount(
                pool_id, self._pool_repository.sum_succeeded_amount(pool_id)
            )
        self._session.commit()
        if changed:
            logger.info("pool_expired_and_refunded", extra={"pool_id": str(pool_id)})
        return changed

    def _refund_contribution(
        self,
        pool_id: UUID,
        contribution: RefundableContribution,
    ) -> bool:
        if not contribution.payment_intent_id:
            logger.warning(
                "pool_refund_skipped",
                extra={
                    "pool_id": str(pool_id),
                    "contribution_id": str(contribution.contribution_id),
                    "reason": "missing_payment_intent",
                },
            )
            return False

        try:
            receipt = self._payment_gateway.create_refund(
                payment_intent_id=contribution.payment_intent_id,
                metadata={
                    "reason": "chipin_pool_expired",
                    "pool_id": str(pool_id),
                    "contribution_id": str(contribution.contribution_id),
                },
                idempotency_key=f"chipin-refund-{contribution.contribution_id}",
            )
        except Exception as exc:
            logger.warning(
                "pool_refund_failed",
                extra={
                    "pool_id": str(pool_id),
                    "contribution_id": str(contribution.contribution_id),
                    "error": str(exc),
                },
            )
            self._record_refund_failure(pool_id, contribution, exc)
            return False

        try:
            self._pool_repository.transition_contribution(
                contribution.contribution_id,
                from_status=ContributionStatus.SUCCEEDED,
                to_status=ContributionStatus.REFUNDED,
            )
            self._payment_repository.upsert_payment(
                contribution.contribution_id,
                stripe_payment_intent_id=contribution.payment_intent_id,
                stripe_refund_id=receipt.refund_id,
            )
            self._pool_repository.add_event(
                pool_id=pool_id,
                contribution_id=contribution.contribution_id,
                event_type=PoolEventType.CONTRIBUTION_REFUNDED,
                payload={"refund_id": receipt.refund_id},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.exception(
                "pool_refund_not_recorded",
                extra={
                    "pool_id": str(pool_id),
                    "contribution_id": str(contribution.contribution_id),
                    "refund_id": receipt.refund_id,
                },
            )
            return False
        return True

    def _record_refund_failure(
        self,
        pool_id: UUID,
        contribution: RefundableContribution,
        error: Exception,
    ) -> None:
        try:
            self._pool_repository.add_event(
                pool_id=pool_id,
                contribution_id=contribution.contribution_id,
                event_type=PoolEventType.CONTRIBUTION_REFUND_FAILED,
                payload={"error": str(error)},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.exception(
                "pool_refund_failure_not_recorded",
                extra={"pool_id": str(pool_id)},
            )

    @staticmethod
    def _goal_met(goal_amount_cents: int | None, collected_amount_cents: int) -> bool:
        if goal_amount_cents is None:
            return collected_amount_cents > 0
        return collected_amount_cents >= goal_amount_cents
