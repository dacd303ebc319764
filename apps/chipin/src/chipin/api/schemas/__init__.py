"""API request and response schemas."""

from chipin.api.schemas.chips import (
    ChipDetailResponse,
    ChipListResponse,
    ChipResponse,
    CreateChipRequest,
    JoinChipRequest,
    JoinChipResponse,
    ToggleObjectiveRequest,
    ToggleObjectiveResponse,
)
from chipin.api.schemas.jobs import SweepResponse, WebhookAckResponse
from chipin.api.schemas.organizers import OnboardingResponse
from chipin.api.schemas.pools import (
    CheckoutRedirectResponse,
    CreatePoolRequest,
    PoolDetailResponse,
    PoolResponse,
    StartCheckoutRequest,
)

__all__ = [
    "CheckoutRedirectResponse",
    "ChipDetailResponse",
    "ChipListResponse",
    "ChipResponse",
    "CreateChipRequest",
    "CreatePoolRequest",
    "JoinChipRequest",
    "JoinChipResponse",
    "OnboardingResponse",
    "PoolDetailResponse",
    "PoolResponse",
    "StartCheckoutRequest",
    "SweepResponse",
    "ToggleObjectiveRequest",
    "ToggleObjectiveResponse",
    "WebhookAckResponse",
]
