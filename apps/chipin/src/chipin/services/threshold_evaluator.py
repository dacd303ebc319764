"""Recompute aggregates from source rows and auto-activate when thresholds are met."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from chipin.db.models.chip import Chip, ChipStatus
from chipin.db.models.chip_event import ChipEventType
from chipin.db.models.pool import Pool, PoolStatus
from chipin.db.models.pool_event import PoolEventType

logger = logging.getLogger(__name__)


class ChipAggregateRepositoryProtocol(Protocol):
    """Chip repository contract consumed by the evaluator."""

    def get(self, chip_id: UUID) -> Chip | None: ...

    def count_participants(self, chip_id: UUID) -> int: ...

    def count_objectives(self, chip_id: UUID) -> int: ...

    def write_counts(
        self,
        chip_id: UUID,
        *,
        participant_count: int,
        objective_count: int,
    ) -> None: ...

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


class PoolAggregateRepositoryProtocol(Protocol):
    """Pool repository contract consumed by the evaluator."""

    def get(self, pool_id: UUID) -> Pool | None: ...

    def sum_succeeded_amount(self, pool_id: UUID) -> int: ...

    def write_collected_amount(self, pool_id: UUID, amount_cents: int) -> None: ...

    def transition_status(
        self,
        pool_id: UUID,
        *,
        to_status: PoolStatus,
        from_status: PoolStatus | None = None,
    ) -> bool: ...

    def add_event(
        self,
        *,
        pool_id: UUID,
        event_type: PoolEventType,
        payload: dict[str, Any],
        contribution_id: UUID | None = None,
    ) -> object: ...


@dataclass(slots=True, frozen=True)
class ChipEvaluation:
    """Fresh chip aggregates and whether this call activated the chip."""

    participant_count: int
    objective_count: int
    activated: bool


@dataclass(slots=True, frozen=True)
class PoolEvaluation:
    """Fresh pool aggregate and whether this call funded the pool."""

    collected_amount_cents: int
    funded: bool
    status: PoolStatus


class ChipThresholdEvaluator:
    """Keeps chip counters honest and activates chips that reach threshold.

    Runs inside the caller's transaction and never commits. Calling it twice
    without an intervening join is a no-op the second time because the
    pending -> active update no longer matches.
    """

    def __init__(self, *, chip_repository: ChipAggregateRepositoryProtocol) -> None:
        self._chip_repository = chip_repository

    def evaluate_chip(self, chip_id: UUID) -> ChipEvaluation:
        chip = self._chip_repository.get(chip_id)
        if chip is None:
            msg = f"Chip {chip_id} does not exist."
            raise LookupError(msg)

        participant_count = self._chip_repository.count_participants(chip_id)
        objective_count = self._chip_repository.count_objectives(chip_id)
        self._chip_repository.write_counts(
            chip_id,
            participant_count=participant_count,
            objective_count=objective_count,
        )

        activated = False
        if participant_count >= chip.threshold_count:
            activated = self._chip_repository.transition_status(
                chip_id,
                from_status=ChipStatus.PENDING,
                to_status=ChipStatus.ACTIVE,
            )
        if activated:
            self._chip_repository.add_event(
                chip_id=chip_id,
                event_type=ChipEventType.CHIP_ACTIVATED,
                payload={
                    "participant_count": participant_count,
                    "threshold_count": chip.threshold_count,
                },
            )
            logger.info(
                "chip_activated",
                extra={
                    "chip_id": str(chip_id),
                    "participant_count": participant_count,
                },
            )

        return ChipEvaluation(
            participant_count=participant_count,
            objective_count=objective_count,
            activated=activated,
        )


class PoolThresholdEvaluator:
    """Re-sums succeeded contributions and funds pools that meet their goal."""

    def __init__(self, *, pool_repository: PoolAggregateRepositoryProtocol) -> None:
        self._pool_repository = pool_repository

    def evaluate_pool(self, pool_id: UUID) -> PoolEvaluation:
        pool = self._pool_repository.get(pool_id)
        if pool is None:
            msg = f"Pool {pool_id} does not exist."
            raise LookupError(msg)

        collected = self._pool_repository.sum_succeeded_amount(pool_id)
        self._pool_repository.write_collected_amount(pool_id, collected)

        # Pools without a goal only resolve at the deadline sweep.
        funded = False
        goal = pool.goal_amount_cents
        if goal is not None and collected >= goal:
            funded = self._pool_repository.transition_status(
                pool_id,
                from_status=PoolStatus.ACTIVE,
                to_status=PoolStatus.FUNDED,
            )
        if funded:
            self._pool_repository.add_event(
                pool_id=pool_id,
                event_type=PoolEventType.POOL_FUNDED,
                payload={
                    "collected_amount_cents": collected,
                    "goal_amount_cents": goal,
                },
            )
            logger.info(
                "pool_funded",
                extra={"pool_id": str(pool_id), "collected_amount_cents": collected},
            )

        return PoolEvaluation(
            collected_amount_cents=collected,
            funded=funded,
            status=PoolStatus.FUNDED if funded else pool.status,
        )
