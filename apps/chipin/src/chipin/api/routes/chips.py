"""Chip routes."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from chipin.api.dependencies import get_chip_service
from chipin.api.identity import get_optional_identity
from chipin.api.schemas.chips import (
    ChipDetailResponse,
    ChipListResponse,
    ChipResponse,
    CompletionResponse,
    CreateChipRequest,
    JoinChipRequest,
    JoinChipResponse,
    ObjectiveResponse,
    ParticipantResponse,
    ToggleObjectiveRequest,
    ToggleObjectiveResponse,
)
from chipin.domain.identity import Identity
from chipin.services.chip_service import (
    ChipDetails,
    ChipService,
    CreateChipInput,
    JoinChipInput,
    ObjectiveInput,
    ToggleObjectiveInput,
)

router = APIRouter(prefix="/chips", tags=["Chips"])

IdentityDep = Annotated[Identity | None, Depends(get_optional_identity)]
ChipServiceDep = Annotated[ChipService, Depends(get_chip_service)]


def _detail_response(details: ChipDetails) -> ChipDetailResponse:
    return ChipDetailResponse(
        chip=ChipResponse.from_model(details.chip),
        participants=[
            ParticipantResponse.from_model(item) for item in details.participants
        ],
        objectives=[ObjectiveResponse.from_model(item) for item in details.objectives],
        completion=CompletionResponse.from_rollup(details.rollup),
    )


@router.post(
    "",
    response_model=ChipResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid payload"},
        401: {"description": "Sign-in required"},
        409: {"description": "Open chip limit reached"},
    },
)
def create_chip(
    payload: CreateChipRequest,
    identity: IdentityDep,
    service: ChipServiceDep,
) -> ChipResponse:
    """Create a chip owned by the caller."""

    chip = service.create_chip(
        identity,
        CreateChipInput(
            title=payload.title,
            description=payload.description,
            threshold_count=payload.threshold_count,
            deadline_at=payload.deadline_at,
            is_private=payload.is_private,
            objectives=tuple(
                ObjectiveInput(title=item.title, description=item.description)
                for item in payload.objectives
            ),
        ),
    )
    return ChipResponse.from_model(chip)


@router.get("", response_model=ChipListResponse)
def list_my_chips(identity: IdentityDep, service: ChipServiceDep) -> ChipListResponse:
    """List chips the caller created or joined."""

    return ChipListResponse.from_models(service.list_my_chips(identity))


@router.get(
    "/{public_code}",
    response_model=ChipDetailResponse,
    responses={404: {"description": "Chip not found"}},
)
def get_chip(public_code: str, service: ChipServiceDep) -> ChipDetailResponse:
    """Return a chip with participants, objectives and completion."""

    return _detail_response(service.get_chip(public_code))


@router.post(
    "/{public_code}/join",
    response_model=JoinChipResponse,
    responses={
        404: {"description": "Chip not found"},
        409: {"description": "Chip closed, full or name taken"},
    },
)
def join_chip(
    public_code: str,
    identity: IdentityDep,
    service: ChipServiceDep,
    payload: Annotated[JoinChipRequest | None, Body()] = None,
) -> JoinChipResponse:
    """Join a chip as the signed-in user or as a named guest."""

    result = service.join_chip(
        identity,
        JoinChipInput(
            public_code=public_code,
            display_name=payload.display_name if payload else None,
        ),
    )
    return JoinChipResponse(
        chip=ChipResponse.from_model(result.chip),
        participant=ParticipantResponse.from_model(result.participant),
        created=result.created,
    )


@router.delete(
    "/{public_code}/participants/{participant_id}",
    response_model=ChipResponse,
    responses={
        403: {"description": "Only the owner can remove participants"},
        404: {"description": "Chip or participant not found"},
    },
)
def remove_participant(
    public_code: str,
    participant_id: UUID,
    identity: IdentityDep,
    service: ChipServiceDep,
) -> ChipResponse:
    """Remove a non-creator participant from the chip."""

    chip = service.remove_participant(
        identity,
        public_code=public_code,
        participant_id=participant_id,
    )
    return ChipResponse.from_model(chip)


@router.post(
    "/{public_code}/objectives/{objective_id}/toggle",
    response_model=ToggleObjectiveResponse,
    responses={
        403: {"description": "Caller is not a participant"},
        404: {"description": "Chip or objective not found"},
        409: {"description": "Chip closed"},
    },
)
def toggle_objective(
    public_code: str,
    objective_id: UUID,
    identity: IdentityDep,
    service: ChipServiceDep,
    payload: Annotated[ToggleObjectiveRequest | None, Body()] = None,
) -> ToggleObjectiveResponse:
    """Mark an objective done, or reopen it when already done."""

    result = service.toggle_objective(
        identity,
        ToggleObjectiveInput(
            public_code=public_code,
            objective_id=objective_id,
            guest_name=payload.guest_name if payload else None,
        ),
    )
    return ToggleObjectiveResponse(
        objective=ObjectiveResponse.from_model(result.objective),
        completion=CompletionResponse.from_rollup(result.rollup),
    )


@router.post(
    "/{public_code}/complete",
    response_model=ChipResponse,
    responses={
        403: {"description": "Only the owner can complete the chip"},
        409: {"description": "Chip is not active"},
    },
)
def complete_chip(
    public_code: str,
    identity: IdentityDep,
    service: ChipServiceDep,
) -> ChipResponse:
    """Owner marks an active chip completed."""

    return ChipResponse.from_model(service.complete_chip(identity, public_code))


@router.post(
    "/{public_code}/cancel",
    response_model=ChipResponse,
    responses={
        403: {"description": "Only the owner can cancel the chip"},
        409: {"description": "Chip already closed"},
    },
)
def cancel_chip(
    public_code: str,
    identity: IdentityDep,
    service: ChipServiceDep,
) -> ChipResponse:
    """Owner cancels a pending or active chip."""

    return ChipResponse.from_model(service.cancel_chip(identity, public_code))
