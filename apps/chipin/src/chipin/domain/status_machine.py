"""Legal status transitions for chips, pools and contributions.

Each machine lists the edges a status may follow and the timestamp column
stamped when a row enters a status. Repositories consult these tables before
issuing guarded updates, so an illegal edge is a programming error while a
lost race is simply an update that matched zero rows.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from chipin.db.models.chip import ChipStatus
from chipin.db.models.contribution import ContributionStatus
from chipin.db.models.pool import PoolStatus

StatusT = TypeVar("StatusT", bound=StrEnum)


class IllegalStatusTransition(ValueError):
    """Raised when code asks for an edge the machine does not allow."""


@dataclass(slots=True, frozen=True)
class StatusMachine(Generic[StatusT]):
    """Transition table plus per-status timestamp columns."""

    name: str
    edges: Mapping[StatusT, frozenset[StatusT]]
    timestamp_fields: Mapping[StatusT, str]

    def can_transition(self, from_status: StatusT, to_status: StatusT) -> bool:
        return to_status in self.edges.get(from_status, frozenset())

    def assert_transition(self, from_status: StatusT, to_status: StatusT) -> None:
        if not self.can_transition(from_status, to_status):
            msg = f"Illegal {self.name} transition: {from_status} -> {to_status}"
            raise IllegalStatusTransition(msg)

    def is_terminal(self, status: StatusT) -> bool:
        return not self.edges.get(status)

    def sources_for(self, to_status: StatusT) -> frozenset[StatusT]:
        """Return every status with a legal edge into ``to_status``."""

        return frozenset(
            status for status, targets in self.edges.items() if to_status in targets
        )

    def timestamp_field(self, to_status: StatusT) -> str | None:
        return self.timestamp_fields.get(to_status)


CHIP_STATUS_MACHINE: StatusMachine[ChipStatus] = StatusMachine(
    name="chip",
    edges={
        ChipStatus.PENDING: frozenset(
            {ChipStatus.ACTIVE, ChipStatus.EXPIRED, ChipStatus.CANCELED}
        ),
        ChipStatus.ACTIVE: frozenset(
            {ChipStatus.COMPLETED, ChipStatus.EXPIRED, ChipStatus.CANCELED}
        ),
        ChipStatus.COMPLETED: frozenset(),
        ChipStatus.EXPIRED: frozenset(),
        ChipStatus.CANCELED: frozenset(),
    },
    timestamp_fields={
        ChipStatus.ACTIVE: "activated_at",
        ChipStatus.COMPLETED: "completed_at",
        ChipStatus.EXPIRED: "expired_at",
        ChipStatus.CANCELED: "canceled_at",
    },
)

POOL_STATUS_MACHINE: StatusMachine[PoolStatus] = StatusMachine(
    name="pool",
    edges={
        PoolStatus.ACTIVE: frozenset(
            {PoolStatus.FUNDED, PoolStatus.REFUNDING, PoolStatus.CANCELED}
        ),
        PoolStatus.REFUNDING: frozenset({PoolStatus.EXPIRED}),
        PoolStatus.FUNDED: frozenset(),
        PoolStatus.EXPIRED: frozenset(),
        PoolStatus.CANCELED: frozenset(),
    },
    timestamp_fields={
        PoolStatus.FUNDED: "funded_at",
        PoolStatus.EXPIRED: "expired_at",
        PoolStatus.CANCELED: "canceled_at",
    },
)

CONTRIBUTION_STATUS_MACHINE: StatusMachine[ContributionStatus] = StatusMachine(
    name="contribution",
    edges={
        ContributionStatus.PENDING: frozenset(
            {ContributionStatus.SUCCEEDED, ContributionStatus.FAILED}
        ),
        ContributionStatus.SUCCEEDED: frozenset({ContributionStatus.REFUNDED}),
        ContributionStatus.REFUNDED: frozenset(),
        ContributionStatus.FAILED: frozenset(),
    },
    timestamp_fields={
        ContributionStatus.SUCCEEDED: "paid_at",
        ContributionStatus.REFUNDED: "refunded_at",
    },
)

OPEN_CHIP_STATUSES = frozenset({ChipStatus.PENDING, ChipStatus.ACTIVE})
SWEEPABLE_POOL_STATUSES = frozenset({PoolStatus.ACTIVE, PoolStatus.REFUNDING})
