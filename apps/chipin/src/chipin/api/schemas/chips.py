"""Schemas for chip endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from chipin.db.models.chip import Chip, ChipStatus
from chipin.db.models.chip_objective import ChipObjective
from chipin.db.models.chip_participant import ChipParticipant
from chipin.repositories.chip_repository import CompletionRollup


class ObjectiveRequest(BaseModel):
    """Checklist item supplied at chip creation."""

    title: str = Field(max_length=120)
    description: str | None = Field(default=None, max_length=600)


class CreateChipRequest(BaseModel):
    """Payload for creating a chip."""

    title: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=600)
    threshold_count: int = Field(ge=1, le=100)
    deadline_at: datetime
    is_private: bool = False
    objectives: list[ObjectiveRequest] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Title cannot be blank.")
        return trimmed


class JoinChipRequest(BaseModel):
    """Payload for joining a chip; guests must send a display name."""

    display_name: str | None = Field(default=None, max_length=80)


class ToggleObjectiveRequest(BaseModel):
    """Optional guest name used to resolve the acting participant."""

    guest_name: str | None = Field(default=None, max_length=80)


class ChipResponse(BaseModel):
    """Serialized chip returned by API."""

    id: UUID
    public_code: str
    creator_id: str
    title: str
    description: str | None
    threshold_count: int
    participant_count: int
    objective_count: int
    deadline_at: datetime
    is_private: bool
    status: ChipStatus
    activated_at: datetime | None
    completed_at: datetime | None
    expired_at: datetime | None
    canceled_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, chip: Chip) -> ChipResponse:
        return cls(
            id=chip.id,
            public_code=chip.public_code,
            creator_id=chip.creator_id,
            title=chip.title,
            description=chip.description,
            threshold_count=chip.threshold_count,
            participant_count=chip.participant_count,
            objective_count=chip.objective_count,
            deadline_at=chip.deadline_at,
            is_private=chip.is_private,
            status=chip.status,
            activated_at=chip.activated_at,
            completed_at=chip.completed_at,
            expired_at=chip.expired_at,
            canceled_at=chip.canceled_at,
            created_at=chip.created_at,
        )


class ParticipantResponse(BaseModel):
    """Chip participant representation."""

    id: UUID
    user_id: str | None
    display_name: str
    is_creator: bool
    joined_at: datetime

    @classmethod
    def from_model(cls, participant: ChipParticipant) -> ParticipantResponse:
        return cls(
            id=participant.id,
            user_id=participant.user_id,
            display_name=participant.display_name,
            is_creator=participant.is_creator,
            joined_at=participant.joined_at,
        )


class ObjectiveResponse(BaseModel):
    """Chip objective representation."""

    id: UUID
    title: str
    description: str | None
    sort_order: int
    assigned_participant_id: UUID | None
    completed_by_participant_id: UUID | None
    completed_at: datetime | None
    is_completed: bool

    @classmethod
    def from_model(cls, objective: ChipObjective) -> ObjectiveResponse:
        return cls(
            id=objective.id,
            title=objective.title,
            description=objective.description,
            sort_order=objective.sort_order,
            assigned_participant_id=objective.assigned_participant_id,
            completed_by_participant_id=objective.completed_by_participant_id,
            completed_at=objective.completed_at,
            is_completed=objective.completed_at is not None,
        )


class CompletionResponse(BaseModel):
    """Completed versus total objectives."""

    completed: int
    total: int

    @classmethod
    def from_rollup(cls, rollup: CompletionRollup) -> CompletionResponse:
        return cls(completed=rollup.completed, total=rollup.total)


class ChipDetailResponse(BaseModel):
    """Chip page payload."""

    chip: ChipResponse
    participants: list[ParticipantResponse]
    objectives: list[ObjectiveResponse]
    completion: CompletionResponse


class ChipListResponse(BaseModel):
    """Chips the caller owns or joined."""

    items: list[ChipResponse]

    @classmethod
    def from_models(cls, chips: list[Chip]) -> ChipListResponse:
        return cls(items=[ChipResponse.from_model(chip) for chip in chips])


class JoinChipResponse(BaseModel):
    """Join outcome; ``created`` is false when the caller had already joined."""

    chip: ChipResponse
    participant: ParticipantResponse
    created: bool


class ToggleObjectiveResponse(BaseModel):
    """Objective after toggling plus the chip-wide completion."""

    objective: ObjectiveResponse
    completion: CompletionResponse
