"""Pool and checkout routes."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from chipin.api.dependencies import get_pool_service
from chipin.api.identity import get_optional_identity
from chipin.api.schemas.pools import (
    CheckoutRedirectResponse,
    ContributionResponse,
    CreatePoolRequest,
    PoolDetailResponse,
    PoolListResponse,
    PoolResponse,
    StartCheckoutRequest,
)
from chipin.domain.errors import compose_error_message
from chipin.domain.identity import Identity
from chipin.domain.money import parse_money
from chipin.services.pool_service import (
    CheckoutRedirect,
    CreatePoolInput,
    PoolService,
    StartCheckoutInput,
)

router = APIRouter(prefix="/pools", tags=["Pools"])

IdentityDep = Annotated[Identity | None, Depends(get_optional_identity)]
PoolServiceDep = Annotated[PoolService, Depends(get_pool_service)]


@router.post(
    "",
    response_model=PoolResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid payload"},
        401: {"description": "Sign-in required"},
        409: {"description": "Payouts not connected"},
    },
)
def create_pool(
    payload: CreatePoolRequest,
    identity: IdentityDep,
    service: PoolServiceDep,
) -> PoolResponse:
    """Create an active pool for the calling organizer."""

    pool = service.create_pool(
        identity,
        CreatePoolInput(
            title=payload.title,
            restaurant_name=payload.restaurant_name,
            goal_amount=(
                parse_money(payload.goal_amount) if payload.goal_amount else None
            ),
            tip_percent=payload.tip_percent,
            deadline_minutes=payload.deadline_minutes,
        ),
    )
    return PoolResponse.from_model(pool)


@router.get(
    "",
    response_model=PoolListResponse,
    responses={401: {"description": "Sign-in required"}},
)
def list_my_pools(identity: IdentityDep, service: PoolServiceDep) -> PoolListResponse:
    """List pools the caller organizes, newest first."""

    return PoolListResponse.from_models(service.list_my_pools(identity))


@router.get(
    "/{public_code}",
    response_model=PoolDetailResponse,
    responses={404: {"description": "Pool not found"}},
)
def get_pool(public_code: str, service: PoolServiceDep) -> PoolDetailResponse:
    """Return a pool with its paid and refunded contributions."""

    details = service.get_pool(public_code)
    return PoolDetailResponse(
        pool=PoolResponse.from_model(details.pool),
        contributions=[
            ContributionResponse.from_model(item) for item in details.contributions
        ],
    )


@router.post(
    "/{public_code}/checkout",
    response_model=CheckoutRedirectResponse,
    responses={
        400: {"description": "Invalid payload"},
        404: {"description": "Pool not found"},
        409: {"description": "Pool is not accepting contributions"},
        502: {"description": "Payment processor error"},
    },
)
def start_checkout(
    public_code: str,
    payload: StartCheckoutRequest,
    service: PoolServiceDep,
) -> CheckoutRedirectResponse | JSONResponse:
    """Start a hosted checkout for one contribution."""

    outcome = service.start_checkout(
        StartCheckoutInput(
            public_code=public_code,
            contributor_name=payload.contributor_name,
            amount=Decimal(payload.amount),
        )
    )
    if isinstance(outcome, CheckoutRedirect):
        return CheckoutRedirectResponse(
            checkout_url=outcome.url,
            contribution_id=outcome.contribution_id,
        )

    details: dict[str, str] = {"reason": outcome.reason}
    if outcome.pool_status is not None:
        details["pool_status"] = outcome.pool_status.value
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "code": "POOL_UNAVAILABLE",
            "message": compose_error_message(
                cause="This pool is not accepting contributions.",
                action="Check the pool status before paying.",
            ),
            "details": details,
        },
    )


@router.post(
    "/{public_code}/cancel",
    response_model=PoolResponse,
    responses={
        403: {"description": "Only the organizer can cancel the pool"},
        409: {"description": "Pool is not active"},
    },
)
def cancel_pool(
    public_code: str,
    identity: IdentityDep,
    service: PoolServiceDep,
) -> PoolResponse:
    """Organizer cancels an active pool."""

    return PoolResponse.from_model(service.cancel_pool(identity, public_code))
