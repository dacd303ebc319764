import pytest

from chipin.db.models.chip import ChipStatus
from chipin.db.models.contribution import ContributionStatus
from chipin.db.models.pool import PoolStatus
from chipin.domain.status_machine import (
    CHIP_STATUS_MACHINE,
    CONTRIBUTION_STATUS_MACHINE,
    POOL_STATUS_MACHINE,
    IllegalStatusTransition,
)


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [
        (ChipStatus.PENDING, ChipStatus.ACTIVE),
        (ChipStatus.PENDING, ChipStatus.EXPIRED),
        (ChipStatus.PENDING, ChipStatus.CANCELED),
        (ChipStatus.ACTIVE, ChipStatus.COMPLETED),
        (ChipStatus.ACTIVE, ChipStatus.EXPIRED),
        (ChipStatus.ACTIVE, ChipStatus.CANCELED),
    ],
)
def test_chip_machine_allows_documented_edges(
    from_status: ChipStatus, to_status: ChipStatus
) -> None:
    assert CHIP_STATUS_MACHINE.can_transition(from_status, to_status)


def test_chip_machine_rejects_completing_pending_chip() -> None:
    assert not CHIP_STATUS_MACHINE.can_transition(
        ChipStatus.PENDING, ChipStatus.COMPLETED
    )
    with pytest.raises(IllegalStatusTransition):
        CHIP_STATUS_MACHINE.assert_transition(ChipStatus.PENDING, ChipStatus.COMPLETED)


@pytest.mark.parametrize(
    "status", [ChipStatus.COMPLETED, ChipStatus.EXPIRED, ChipStatus.CANCELED]
)
def test_chip_terminal_states_have_no_exits(status: ChipStatus) -> None:
    assert CHIP_STATUS_MACHINE.is_terminal(status)
    assert not CHIP_STATUS_MACHINE.can_transition(status, ChipStatus.ACTIVE)


def test_chip_sources_for_expired_are_open_states() -> None:
    assert CHIP_STATUS_MACHINE.sources_for(ChipStatus.EXPIRED) == frozenset(
        {ChipStatus.PENDING, ChipStatus.ACTIVE}
    )


def test_pool_refunding_only_leads_to_expired() -> None:
    assert POOL_STATUS_MACHINE.can_transition(PoolStatus.REFUNDING, PoolStatus.EXPIRED)
    assert not POOL_STATUS_MACHINE.can_transition(
        PoolStatus.REFUNDING, PoolStatus.FUNDED
    )
    assert not POOL_STATUS_MACHINE.can_transition(PoolStatus.ACTIVE, PoolStatus.EXPIRED)


def test_refunded_contribution_never_goes_back_to_succeeded() -> None:
    assert not CONTRIBUTION_STATUS_MACHINE.can_transition(
        ContributionStatus.REFUNDED, ContributionStatus.SUCCEEDED
    )
    assert CONTRIBUTION_STATUS_MACHINE.timestamp_field(
        ContributionStatus.SUCCEEDED
    ) == "paid_at"
