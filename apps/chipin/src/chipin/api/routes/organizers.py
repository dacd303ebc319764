"""Organizer payout onboarding routes."""

from __future__ import annotations

from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends

from chipin.api.dependencies import get_organizer_service
from chipin.api.identity import get_optional_identity
from chipin.api.schemas.organizers import OnboardingResponse
from chipin.core.settings import Settings, get_settings
from chipin.domain.identity import Identity
from chipin.services.organizer_service import OnboardingRedirect, OrganizerService

router = APIRouter(prefix="/organizers", tags=["Organizers"])


@router.post(
    "/me/payouts/onboarding",
    response_model=OnboardingResponse,
    responses={401: {"description": "Sign-in required"}},
)
def start_payout_onboarding(
    identity: Annotated[Identity | None, Depends(get_optional_identity)],
    service: Annotated[OrganizerService, Depends(get_organizer_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OnboardingResponse:
    """Return the payout onboarding link, or where to show the failure."""

    outcome = service.start_onboarding(identity)
    if isinstance(outcome, OnboardingRedirect):
        return OnboardingResponse(outcome="redirect", url=outcome.url)
    return OnboardingResponse(
        outcome="failed",
        url=(
            f"{settings.public_app_url}/onboarding/stripe"
            f"?error={quote(outcome.reason)}"
        ),
        reason=outcome.reason,
    )
