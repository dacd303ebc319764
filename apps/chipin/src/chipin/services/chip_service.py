"""Chip service layer: creation, joins, objective toggles and owner actions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from chipin.db.models.chip import Chip, ChipStatus
from chipin.db.models.chip_event import ChipEventType
from chipin.db.models.chip_objective import ChipObjective
from chipin.db.models.chip_participant import ChipParticipant
from chipin.db.models.profile import Profile
from chipin.domain.clock import ensure_utc, utc_now
from chipin.domain.errors import (
    AuthenticationRequiredError,
    ChipClosedError,
    ChipFullError,
    ChipNotFoundError,
    DuplicateParticipantNameError,
    ForbiddenActionError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    ObjectiveNotFoundError,
    OpenChipLimitReachedError,
    ParticipantNotFoundError,
    compose_error_message,
)
from chipin.domain.identity import Identity
from chipin.domain.status_machine import CHIP_STATUS_MACHINE, OPEN_CHIP_STATUSES
from chipin.repositories.chip_repository import CompletionRollup
from chipin.services.threshold_evaluator import ChipEvaluation

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 600
DISPLAY_NAME_MAX_LENGTH = 80
THRESHOLD_MIN = 1
THRESHOLD_MAX = 100
DEADLINE_MIN = timedelta(minutes=15)
DEADLINE_MAX = timedelta(days=7)


class SessionProtocol(Protocol):
    """Subset of SQLAlchemy session APIs used by chip service."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def refresh(self, instance: object) -> None: ...


class ProfileRepositoryProtocol(Protocol):
    """Profile repository contract consumed by chip service."""

    def ensure(self, *, user_id: str, full_name: str | None) -> Profile: ...

    def lock(self, user_id: str) -> Profile | None: ...


class ChipEvaluatorProtocol(Protocol):
    """Threshold evaluator contract consumed by chip service."""

    def evaluate_chip(self, chip_id: UUID) -> ChipEvaluation: ...


class ChipRepositoryProtocol(Protocol):
    """Chip repository contract consumed by chip service."""

    def get_for_update(self, chip_id: UUID) -> Chip | None: ...

    def get_by_public_code(self, public_code: str) -> Chip | None: ...

    def list_for_user(self, user_id: str, *, limit: int = 50) -> list[Chip]: ...

    def count_open_for_creator(self, creator_id: str) -> int: ...

    def count_participants(self, chip_id: UUID) -> int: ...

    def add_chip(
        self,
        *,
        creator_id: str,
        title: str,
        description: str | None,
        threshold_count: int,
        deadline_at: datetime,
        is_private: bool,
    ) -> Chip: ...

    def transition_status(
        self,
        chip_id: UUID,
        *,
        to_status: ChipStatus,
        from_status: ChipStatus | None = None,
    ) -> bool: ...

    def list_participants(self, chip_id: UUID) -> list[ChipParticipant]: ...

    def get_participant(
        self,
        *,
        chip_id: UUID,
        participant_id: UUID,
    ) -> ChipParticipant | None: ...

    def find_participant_by_user(
        self,
        *,
        chip_id: UUID,
        user_id: str,
    ) -> ChipParticipant | None: ...

    def find_participant_by_name(
        self,
        *,
        chip_id: UUID,
        display_name: str,
    ) -> ChipParticipant | None: ...

    def find_creator_participant(self, chip_id: UUID) -> ChipParticipant | None: ...

    def add_participant_if_missing(
        self,
        *,
        chip_id: UUID,
        user_id: str | None,
        display_name: str,
        is_creator: bool = False,
    ) -> tuple[ChipParticipant, bool]: ...

    def remove_participant(self, participant: ChipParticipant) -> None: ...

    def add_objectives(
        self,
        *,
        chip_id: UUID,
        items: Sequence[tuple[str, str | None]],
        assigned_participant_id: UUID | None,
        created_by: str | None,
    ) -> list[ChipObjective]: ...

    def list_objectives(self, chip_id: UUID) -> list[ChipObjective]: ...

    def get_objective_for_update(
        self,
        *,
        chip_id: UUID,
        objective_id: UUID,
    ) -> ChipObjective | None: ...

    def set_objective_completion(
        self,
        objective: ChipObjective,
        *,
        completed_by_participant_id: UUID | None,
    ) -> ChipObjective: ...

    def completion_rollup(self, chip_id: UUID) -> CompletionRollup: ...

    def add_event(
        self,
        *,
        chip_id: UUID,
        event_type: ChipEventType,
        payload: dict[str, Any],
        actor_id: str | None = None,
    ) -> object: ...


@dataclass(slots=True, frozen=True)
class ObjectiveInput:
    """One checklist item supplied at chip creation."""

    title: str
    description: str | None = None


@dataclass(slots=True, frozen=True)
class CreateChipInput:
    """Input model for chip creation."""

    title: str
    threshold_count: int
    deadline_at: datetime
    description: str | None = None
    is_private: bool = False
    objectives: tuple[ObjectiveInput, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class JoinChipInput:
    """Input model for joining a chip as a user or a guest."""

    public_code: str
    display_name: str | None = None


@dataclass(slots=True, frozen=True)
class ToggleObjectiveInput:
    """Input model for toggling one objective."""

    public_code: str
    objective_id: UUID
    guest_name: str | None = None


@dataclass(slots=True, frozen=True)
class ChipDetails:
    """Chip with its participants, objectives and completion rollup."""

    chip: Chip
    participants: list[ChipParticipant]
    objectives: list[ChipObjective]
    rollup: CompletionRollup


@dataclass(slots=True, frozen=True)
class JoinResult:
    """Participant row for the caller and whether this call created it."""

    chip: Chip
    participant: ChipParticipant
    created: bool


@dataclass(slots=True, frozen=True)
class ToggleResult:
    """Objective after the toggle plus the chip-wide rollup."""

    objective: ChipObjective
    rollup: CompletionRollup


class ChipService:
    """Coordinates chip use cases."""

    def __init__(
        self,
        *,
        chip_repository: ChipRepositoryProtocol,
        profile_repository: ProfileRepositoryProtocol,
        evaluator: ChipEvaluatorProtocol,
        session: SessionProtocol,
        free_open_chip_limit: int = 1,
        max_objectives_per_chip: int = 5,
    ) -> None:
        self._chip_repository = chip_repository
        self._profile_repository = profile_repository
        self._evaluator = evaluator
        self._session = session
        self._free_open_chip_limit = free_open_chip_limit
        self._max_objectives_per_chip = max_objectives_per_chip

    def create_chip(self, identity: Identity | None, payload: CreateChipInput) -> Chip:
        """Create a chip, seed its creator and objectives, then evaluate it."""

        owner = self._require_identity(identity)
        title = self._validate_title(payload.title)
        description = self._validate_description(payload.description)
        self._validate_threshold(payload.threshold_count)
        deadline_at = self._validate_deadline(payload.deadline_at)
        objectives = self._validate_objectives(payload.objectives)

        try:
            self._profile_repository.ensure(
                user_id=owner.user_id, full_name=owner.name
            )
            self._profile_repository.lock(owner.user_id)
            open_count = self._chip_repository.count_open_for_creator(owner.user_id)
            if open_count >= self._free_open_chip_limit:
                raise OpenChipLimitReachedError(
                    details={
                        "open_chips": open_count,
                        "limit": self._free_open_chip_limit,
                    }
                )

            chip = self._chip_repository.add_chip(
                creator_id=owner.user_id,
                title=title,
                description=description,
                threshold_count=payload.threshold_count,
                deadline_at=deadline_at,
                is_private=payload.is_private,
            )
            creator, _ = self._chip_repository.add_participant_if_missing(
                chip_id=chip.id,
                user_id=owner.user_id,
                display_name=owner.display_name[:DISPLAY_NAME_MAX_LENGTH],
                is_creator=True,
            )
            self._chip_repository.add_objectives(
                chip_id=chip.id,
                items=objectives,
                assigned_participant_id=creator.id,
                created_by=owner.user_id,
            )
            evaluation = self._evaluator.evaluate_chip(chip.id)
            self._chip_repository.add_event(
                chip_id=chip.id,
                event_type=ChipEventType.CHIP_CREATED,
                actor_id=owner.user_id,
                payload={
                    "threshold_count": payload.threshold_count,
                    "objective_count": evaluation.objective_count,
                },
            )
            self._session.commit()
            self._session.refresh(chip)
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "chip_created",
            extra={
                "chip_id": str(chip.id),
                "creator_id": owner.user_id,
                "threshold_count": chip.threshold_count,
                "activated": evaluation.activated,
            },
        )
        return chip

    def get_chip(self, public_code: str) -> ChipDetails:
        """Load one chip with everything needed to render it."""

        chip = self._get_chip_or_raise(public_code)
        return ChipDetails(
            chip=chip,
            participants=self._chip_repository.list_participants(chip.id),
            objectives=self._chip_repository.list_objectives(chip.id),
            rollup=self._chip_repository.completion_rollup(chip.id),
        )

    def list_my_chips(self, identity: Identity | None) -> list[Chip]:
        user = self._require_identity(identity)
        return self._chip_repository.list_for_user(user.user_id)

    def join_chip(
        self,
        identity: Identity | None,
        payload: JoinChipInput,
    ) -> JoinResult:
        """Join a chip, coalescing repeated joins onto the existing row."""

        raw_name = payload.display_name
        if not (raw_name and raw_name.strip()) and identity is not None:
            raw_name = identity.display_name
        display_name = self._validate_display_name(raw_name)

        found = self._get_chip_or_raise(payload.public_code)
        try:
            chip = self._chip_repository.get_for_update(found.id)
            if chip is None:
                raise ChipNotFoundError()
            self._ensure_open(chip)

            existing = self._find_existing_participant(
                chip=chip,
                identity=identity,
                display_name=display_name,
            )
            if existing is not None:
                self._session.commit()
                return JoinResult(chip=chip, participant=existing, created=False)

            participant_count = self._chip_repository.count_participants(chip.id)
            if participant_count >= chip.threshold_count:
                raise ChipFullError(
                    details={
                        "participant_count": participant_count,
                        "threshold_count": chip.threshold_count,
                    }
                )

            user_id = identity.user_id if identity is not None else None
            if identity is not None:
                self._profile_repository.ensure(
                    user_id=identity.user_id, full_name=identity.name
                )
            try:
                participant, created = (
                    self._chip_repository.add_participant_if_missing(
                        chip_id=chip.id,
                        user_id=user_id,
                        display_name=display_name,
                    )
                )
            except IntegrityError as exc:
                raise DuplicateParticipantNameError(
                    details={"display_name": display_name}
                ) from exc

            evaluation = self._evaluator.evaluate_chip(chip.id)
            if created:
                self._chip_repository.add_event(
                    chip_id=chip.id,
                    event_type=ChipEventType.PARTICIPANT_JOINED,
                    actor_id=user_id,
                    payload={
                        "participant_id": str(participant.id),
                        "display_name": participant.display_name,
                        "guest": user_id is None,
                    },
                )
            self._session.commit()
            self._session.refresh(chip)
        except Exception:
            self._session.rollback()
            raise

        if created:
            logger.info(
                "participant_joined",
                extra={
                    "chip_id": str(chip.id),
                    "participant_id": str(participant.id),
                    "participant_count": evaluation.participant_count,
                },
            )
        return JoinResult(chip=chip, participant=participant, created=created)

    def remove_participant(
        self,
        identity: Identity | None,
        *,
        public_code: str,
        participant_id: UUID,
    ) -> Chip:
        """Owner-only removal of a non-creator participant."""

        found = self._get_chip_or_raise(public_code)
        owner = self._require_owner(identity, found)
        try:
            chip = self._chip_repository.get_for_update(found.id)
            if chip is None:
                raise ChipNotFoundError()
            self._ensure_open(chip)
            participant = self._chip_repository.get_participant(
                chip_id=chip.id, participant_id=participant_id
            )
            if participant is None:
                raise ParticipantNotFoundError()
            if participant.is_creator:
                raise InvalidRequestError(
                    message=compose_error_message(
                        cause="The chip creator cannot be removed.",
                        action="Cancel the chip instead.",
                    )
                )

            display_name = participant.display_name
            self._chip_repository.remove_participant(participant)
            self._evaluator.evaluate_chip(chip.id)
            self._chip_repository.add_event(
                chip_id=chip.id,
                event_type=ChipEventType.PARTICIPANT_REMOVED,
                actor_id=owner.user_id,
                payload={
                    "participant_id": str(participant_id),
                    "display_name": display_name,
                },
            )
            self._session.commit()
            self._session.refresh(chip)
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "participant_removed",
            extra={"chip_id": str(chip.id), "participant_id": str(participant_id)},
        )
        return chip

    def toggle_objective(
        self,
        identity: Identity | None,
        payload: ToggleObjectiveInput,
    ) -> ToggleResult:
        """Flip one objective between done and not done for the whole chip."""

        found = self._get_chip_or_raise(payload.public_code)
        try:
            chip = self._chip_repository.get_for_update(found.id)
            if chip is None:
                raise ChipNotFoundError()
            self._ensure_open(chip)

            actor = self._resolve_actor(
                chip=chip,
                identity=identity,
                guest_name=payload.guest_name,
            )
            objective = self._chip_repository.get_objective_for_update(
                chip_id=chip.id, objective_id=payload.objective_id
            )
            if objective is None:
                raise ObjectiveNotFoundError()

            completing = objective.completed_by_participant_id is None
            self._chip_repository.set_objective_completion(
                objective,
                completed_by_participant_id=actor.id if completing else None,
            )
            self._chip_repository.add_event(
                chip_id=chip.id,
                event_type=(
                    ChipEventType.OBJECTIVE_COMPLETED
                    if completing
                    else ChipEventType.OBJECTIVE_REOPENED
                ),
                actor_id=identity.user_id if identity is not None else None,
                payload={
                    "objective_id": str(objective.id),
                    "participant_id": str(actor.id),
                },
            )
            rollup = self._chip_repository.completion_rollup(chip.id)
            self._session.commit()
            self._session.refresh(objective)
        except Exception:
            self._session.rollback()
            raise

        return ToggleResult(objective=objective, rollup=rollup)

    def complete_chip(self, identity: Identity | None, public_code: str) -> Chip:
        """Owner marks an active chip as completed."""

        return self._owner_transition(
            identity,
            public_code=public_code,
            to_status=ChipStatus.COMPLETED,
            event_type=ChipEventType.CHIP_COMPLETED,
        )

    def cancel_chip(self, identity: Identity | None, public_code: str) -> Chip:
        """Owner cancels a pending or active chip."""

        return self._owner_transition(
            identity,
            public_code=public_code,
            to_status=ChipStatus.CANCELED,
            event_type=ChipEventType.CHIP_CANCELED,
        )

    def _owner_transition(
        self,
        identity: Identity | None,
        *,
        public_code: str,
        to_status: ChipStatus,
        event_type: ChipEventType,
    ) -> Chip:
        chip = self._get_chip_or_raise(public_code)
        owner = self._require_owner(identity, chip)
        from_status = chip.status
        if not CHIP_STATUS_MACHINE.can_transition(from_status, to_status):
            raise InvalidStatusTransitionError(
                details={
                    "current_status": from_status.value,
                    "requested_status": to_status.value,
                }
            )

        try:
            changed = self._chip_repository.transition_status(
                chip.id, from_status=from_status, to_status=to_status
            )
            if changed:
                self._chip_repository.add_event(
                    chip_id=chip.id,
                    event_type=event_type,
                    actor_id=owner.user_id,
                    payload={"from_status": from_status.value},
                )
            self._session.commit()
            self._session.refresh(chip)
        except Exception:
            self._session.rollback()
            raise

        if changed:
            logger.info(
                "chip_status_changed",
                extra={
                    "chip_id": str(chip.id),
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                },
            )
        return chip

    def _find_existing_participant(
        self,
        *,
        chip: Chip,
        identity: Identity | None,
        display_name: str,
    ) -> ChipParticipant | None:
        by_name = self._chip_repository.find_participant_by_name(
            chip_id=chip.id, display_name=display_name
        )
        if identity is not None:
            by_user = self._chip_repository.find_participant_by_user(
                chip_id=chip.id, user_id=identity.user_id
            )
            if by_user is not None:
                return by_user
            if by_name is not None:
                raise DuplicateParticipantNameError(
                    details={"display_name": display_name}
                )
            return None

        if by_name is not None and by_name.user_id is not None:
            raise DuplicateParticipantNameError(details={"display_name": display_name})
        return by_name

    def _resolve_actor(
        self,
        *,
        chip: Chip,
        identity: Identity | None,
        guest_name: str | None,
    ) -> ChipParticipant:
        if identity is not None:
            participant = self._chip_repository.find_participant_by_user(
                chip_id=chip.id, user_id=identity.user_id
            )
            if participant is not None:
                return participant

        fallback_name = identity.name if identity is not None else None
        name = (guest_name or fallback_name or "").strip()
        if name:
            guest = self._chip_repository.find_participant_by_name(
                chip_id=chip.id, display_name=name
            )
            # Guests are recognised by name alone.
            if guest is not None and guest.user_id is None:
                return guest

        if identity is not None and identity.user_id == chip.creator_id:
            creator = self._chip_repository.find_creator_participant(chip.id)
            if creator is not None:
                return creator

        raise ForbiddenActionError(
            message=compose_error_message(
                cause="Only participants of this chip can update objectives.",
                action="Join the chip first and retry.",
            )
        )

    def _get_chip_or_raise(self, public_code: str) -> Chip:
        chip = self._chip_repository.get_by_public_code(public_code.strip())
        if chip is None:
            raise ChipNotFoundError(details={"public_code": public_code})
        return chip

    @staticmethod
    def _ensure_open(chip: Chip) -> None:
        if chip.status not in OPEN_CHIP_STATUSES:
            raise ChipClosedError(details={"status": chip.status.value})

    @staticmethod
    def _require_identity(identity: Identity | None) -> Identity:
        if identity is None:
            raise AuthenticationRequiredError()
        return identity

    def _require_owner(self, identity: Identity | None, chip: Chip) -> Identity:
        user = self._require_identity(identity)
        if user.user_id != chip.creator_id:
            raise ForbiddenActionError(
                message=compose_error_message(
                    cause="Only the chip owner can perform this action.",
                    action="Ask the chip owner to do it.",
                )
            )
        return user

    @staticmethod
    def _validate_title(value: str) -> str:
        title = value.strip()
        if not title or len(title) > TITLE_MAX_LENGTH:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=f"title must have 1 to {TITLE_MAX_LENGTH} characters.",
                    action="Adjust the chip title and retry.",
                )
            )
        return title

    @staticmethod
    def _validate_description(value: str | None) -> str | None:
        description = (value or "").strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        f"description must have at most {DESCRIPTION_MAX_LENGTH} "
                        "characters."
                    ),
                    action="Shorten the description and retry.",
                )
            )
        return description or None

    @staticmethod
    def _validate_threshold(value: int) -> None:
        if not THRESHOLD_MIN <= value <= THRESHOLD_MAX:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        f"threshold_count must be between {THRESHOLD_MIN} and "
                        f"{THRESHOLD_MAX}."
                    ),
                    action="Pick a participant threshold inside the range.",
                )
            )

    @staticmethod
    def _validate_deadline(value: datetime) -> datetime:
        deadline_at = ensure_utc(value)
        window = deadline_at - utc_now()
        if window < DEADLINE_MIN or window > DEADLINE_MAX:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="deadline_at must be 15 minutes to 7 days from now.",
                    action="Pick a deadline inside the allowed window.",
                )
            )
        return deadline_at

    def _validate_objectives(
        self, objectives: Sequence[ObjectiveInput]
    ) -> list[tuple[str, str | None]]:
        items: list[tuple[str, str | None]] = []
        for objective in objectives:
            title = objective.title.strip()
            if not title:
                continue
            if len(title) > TITLE_MAX_LENGTH:
                raise InvalidRequestError(
                    message=compose_error_message(
                        cause=(
                            "objective titles must have at most "
                            f"{TITLE_MAX_LENGTH} characters."
                        ),
                        action="Shorten the objective title and retry.",
                    )
                )
            description = (objective.description or "").strip() or None
            items.append((title, description))

        if len(items) > self._max_objectives_per_chip:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        f"A chip can hold at most {self._max_objectives_per_chip} "
                        "objectives."
                    ),
                    action="Remove some objectives and retry.",
                ),
                details={"objectives": len(items)},
            )
        return items

    @staticmethod
    def _validate_display_name(value: str | None) -> str:
        name = (value or "").strip()
        if not name or len(name) > DISPLAY_NAME_MAX_LENGTH:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        "display_name must have 1 to "
                        f"{DISPLAY_NAME_MAX_LENGTH} characters."
                    ),
                    action="Enter the name other participants will see.",
                )
            )
        return name
