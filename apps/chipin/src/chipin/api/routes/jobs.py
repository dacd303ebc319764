"""Scheduler-triggered deadline sweep routes."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header

from chipin.api.dependencies import (
    get_chip_deadline_sweeper,
    get_pool_deadline_sweeper,
)
from chipin.api.schemas.jobs import SweepResponse
from chipin.core.settings import Settings, get_settings
from chipin.domain.errors import InvalidCronSecretError
from chipin.services.deadline_sweeper import ChipDeadlineSweeper, PoolDeadlineSweeper

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def require_cron_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Reject calls that do not carry the shared scheduler secret."""

    expected = settings.cron_shared_secret
    if not expected or not x_cron_secret:
        raise InvalidCronSecretError()
    if not hmac.compare_digest(x_cron_secret.encode(), expected.encode()):
        raise InvalidCronSecretError()


@router.post(
    "/expire-chips",
    response_model=SweepResponse,
    dependencies=[Depends(require_cron_secret)],
    responses={401: {"description": "Missing or invalid cron secret"}},
)
def expire_chips(
    sweeper: Annotated[ChipDeadlineSweeper, Depends(get_chip_deadline_sweeper)],
) -> SweepResponse:
    """Expire chips whose deadline passed."""

    result = sweeper.sweep()
    return SweepResponse(checked=result.checked, transitioned=result.transitioned)


@router.post(
    "/expire-pools",
    response_model=SweepResponse,
    dependencies=[Depends(require_cron_secret)],
    responses={401: {"description": "Missing or invalid cron secret"}},
)
def expire_pools(
    sweeper: Annotated[PoolDeadlineSweeper, Depends(get_pool_deadline_sweeper)],
) -> SweepResponse:
    """Fund or refund pools whose deadline passed."""

    result = sweeper.sweep()
    return SweepResponse(checked=result.checked, transitioned=result.transitioned)
