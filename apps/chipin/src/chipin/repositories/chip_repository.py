"""Persistence operations for chips, participants, objectives and events."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, cast
from uuid import UUID

from sqlalchemy import CursorResult, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chipin.db.models.chip import Chip, ChipStatus
from chipin.db.models.chip_event import ChipEvent, ChipEventType
from chipin.db.models.chip_objective import ChipObjective
from chipin.db.models.chip_participant import ChipParticipant
from chipin.domain.status_machine import CHIP_STATUS_MACHINE, OPEN_CHIP_STATUSES


@dataclass(slots=True, frozen=True)
class ExpiredChipCandidate:
    """Snapshot of one chip read at the start of a sweep."""

    chip_id: UUID
    status: ChipStatus


@dataclass(slots=True, frozen=True)
class CompletionRollup:
    """Completed versus total objectives for one chip."""

    completed: int
    total: int


class ChipRepository:
    """Repository for chips and their child rows."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, chip_id: UUID) -> Chip | None:
        """Fetch chip by id."""

        return self._session.get(Chip, chip_id)

    def get_for_update(self, chip_id: UUID) -> Chip | None:
        """Fetch and lock one chip by id."""

        statement = select(Chip).where(Chip.id == chip_id).with_for_update()
        return self._session.scalar(statement)

    def get_by_public_code(self, public_code: str) -> Chip | None:
        statement = select(Chip).where(Chip.public_code == public_code)
        return self._session.scalar(statement)

    def list_for_user(self, user_id: str, *, limit: int = 50) -> list[Chip]:
        """List chips owned by or joined by one identity, newest first."""

        joined = select(ChipParticipant.chip_id).where(
            ChipParticipant.user_id == user_id
        )
        statement = (
            select(Chip)
            .where(or_(Chip.creator_id == user_id, Chip.id.in_(joined)))
            .order_by(Chip.created_at.desc(), Chip.id.desc())
            .limit(limit)
        )
        return list(self._session.scalars(statement))

    def count_open_for_creator(self, creator_id: str) -> int:
        statement = select(func.count(Chip.id)).where(
            Chip.creator_id == creator_id,
            Chip.status.in_(sorted(OPEN_CHIP_STATUSES)),
        )
        return int(self._session.scalar(statement) or 0)

    def add_chip(
        self,
        *,
        creator_id: str,
        title: str,
        description: str | None,
        threshold_count: int,
        deadline_at: datetime,
        is_private: bool,
    ) -> Chip:
        """Persist a newly created pending chip."""

        now = datetime.now(tz=UTC)
        chip = Chip(
            creator_id=creator_id,
            title=title,
            description=description,
            threshold_count=threshold_count,
            deadline_at=deadline_at,
            is_private=is_private,
            status=ChipStatus.PENDING,
            participant_count=0,
            objective_count=0,
            created_at=now,
            updated_at=now,
        )
        self._session.add(chip)
        self._session.flush()
        return chip

    def transition_status(
        self,
        chip_id: UUID,
        *,
        to_status: ChipStatus,
        from_status: ChipStatus | None = None,
    ) -> bool:
        """Move one chip to ``to_status`` and report whether a row changed.

        With ``from_status`` the update only matches while the stored status is
        still that value. Without it the update matches any status that has a
        legal edge into ``to_status``. Zero matched rows means another writer
        won the race.

        Raises:
            IllegalStatusTransition: When ``from_status`` has no edge to
                ``to_status``.
        """

        if from_status is not None:
            CHIP_STATUS_MACHINE.assert_transition(from_status, to_status)
            status_guard = Chip.status == from_status
        else:
            status_guard = Chip.status.in_(
                sorted(CHIP_STATUS_MACHINE.sources_for(to_status))
            )

        now = datetime.now(tz=UTC)
        values: dict[str, Any] = {"status": to_status, "updated_at": now}
        timestamp_field = CHIP_STATUS_MACHINE.timestamp_field(to_status)
        if timestamp_field is not None:
            values[timestamp_field] = now

        statement = (
            update(Chip).where(Chip.id == chip_id, status_guard).values(**values)
        )
        result = cast(CursorResult[Any], self._session.execute(statement))
        return result.rowcount > 0

    def list_past_deadline(
        self,
        *,
        now: datetime,
        limit: int = 500,
    ) -> list[ExpiredChipCandidate]:
        """Read pending or active chips whose deadline already passed."""

        statement = (
            select(Chip.id, Chip.status)
            .where(
                Chip.status.in_(sorted(OPEN_CHIP_STATUSES)),
                Chip.deadline_at <= now,
            )
            .order_by(Chip.deadline_at, Chip.id)
            .limit(limit)
        )
        return [
            ExpiredChipCandidate(chip_id=row.id, status=row.status)
            for row in self._session.execute(statement)
        ]

    def count_participants(self, chip_id: UUID) -> int:
        statement = select(func.count(ChipParticipant.id)).where(
            ChipParticipant.chip_id == chip_id
        )
        return int(self._session.scalar(statement) or 0)

    def count_objectives(self, chip_id: UUID) -> int:
        statement = select(func.count(ChipObjective.id)).where(
            ChipObjective.chip_id == chip_id
        )
        return int(self._session.scalar(statement) or 0)

    def write_counts(
        self,
        chip_id: UUID,
        *,
        participant_count: int,
        objective_count: int,
    ) -> None:
        """Overwrite denormalized counters with freshly recounted values."""

        statement = (
            update(Chip)
            .where(Chip.id == chip_id)
            .values(
                participant_count=participant_count,
                objective_count=objective_count,
                updated_at=datetime.now(tz=UTC),
            )
        )
        self._session.execute(statement)

    def list_participants(self, chip_id: UUID) -> list[ChipParticipant]:
        statement = (
            select(ChipParticipant)
            .where(ChipParticipant.chip_id == chip_id)
            .order_by(ChipParticipant.joined_at, ChipParticipant.id)
        )
        return list(self._session.scalars(statement))

    def get_participant(
        self,
        *,
        chip_id: UUID,
        participant_id: UUID,
    ) -> ChipParticipant | None:
        statement = select(ChipParticipant).where(
            ChipParticipant.chip_id == chip_id,
            ChipParticipant.id == participant_id,
        )
        return self._session.scalar(statement)

    def find_participant_by_user(
        self,
        *,
        chip_id: UUID,
        user_id: str,
    ) -> ChipParticipant | None:
        statement = select(ChipParticipant).where(
            ChipParticipant.chip_id == chip_id,
            ChipParticipant.user_id == user_id,
        )
        return self._session.scalar(statement)

    def find_participant_by_name(
        self,
        *,
        chip_id: UUID,
        display_name: str,
    ) -> ChipParticipant | None:
        """Find a participant by display name, ignoring case."""

        statement = select(ChipParticipant).where(
            ChipParticipant.chip_id == chip_id,
            func.lower(ChipParticipant.display_name) == display_name.lower(),
        )
        return self._session.scalar(statement)

    def find_creator_participant(self, chip_id: UUID) -> ChipParticipant | None:
        statement = select(ChipParticipant).where(
            ChipParticipant.chip_id == chip_id,
            ChipParticipant.is_creator.is_(True),
        )
        return self._session.scalar(statement)

    def add_participant_if_missing(
        self,
        *,
        chip_id: UUID,
        user_id: str | None,
        display_name: str,
        is_creator: bool = False,
    ) -> tuple[ChipParticipant, bool]:
        """Insert a participant, coalescing onto a row that won a racing insert.

        The unique indexes on (chip, identity) and (chip, lower(name)) are the
        arbiter. When the insert collides, the existing row for the same
        identity, or the same guest name, is returned with ``False``.

        Raises:
            IntegrityError: When the collision is with a row that belongs to
                somebody else, e.g. a signed-in user taking a guest's name.
        """

        duplicate_error: IntegrityError | None = None
        with self._session.begin_nested():
            participant = ChipParticipant(
                chip_id=chip_id,
                user_id=user_id,
                display_name=display_name,
                is_creator=is_creator,
                joined_at=datetime.now(tz=UTC),
            )
            self._session.add(participant)
            try:
                self._session.flush()
                return participant, True
            except IntegrityError as exc:
                duplicate_error = exc

        if user_id is not None:
            existing = self.find_participant_by_user(chip_id=chip_id, user_id=user_id)
        else:
            existing = self.find_participant_by_name(
                chip_id=chip_id, display_name=display_name
            )
            if existing is not None and existing.user_id is not None:
                existing = None
        if existing is None:
            if duplicate_error is not None:
                raise duplicate_error
            msg = "Failed to load participant after idempotent insert attempt."
            raise RuntimeError(msg)
        return existing, False

    def remove_participant(self, participant: ChipParticipant) -> None:
        """Delete one participant after detaching objectives that reference it."""

        self._session.execute(
            update(ChipObjective)
            .where(ChipObjective.completed_by_participant_id == participant.id)
            .values(completed_by_participant_id=None, completed_at=None)
        )
        self._session.execute(
            update(ChipObjective)
            .where(ChipObjective.assigned_participant_id == participant.id)
            .values(assigned_participant_id=None)
        )
        self._session.delete(participant)
        self._session.flush()

    def add_objectives(
        self,
        *,
        chip_id: UUID,
        items: Sequence[tuple[str, str | None]],
        assigned_participant_id: UUID | None,
        created_by: str | None,
    ) -> list[ChipObjective]:
        """Seed objectives in the given order."""

        now = datetime.now(tz=UTC)
        objectives = [
            ChipObjective(
                chip_id=chip_id,
                title=title,
                description=description,
                sort_order=index,
                assigned_participant_id=assigned_participant_id,
                completed_by_participant_id=None,
                completed_at=None,
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
            for index, (title, description) in enumerate(items)
        ]
        self._session.add_all(objectives)
        self._session.flush()
        return objectives

    def list_objectives(self, chip_id: UUID) -> list[ChipObjective]:
        statement = (
            select(ChipObjective)
            .where(ChipObjective.chip_id == chip_id)
            .order_by(ChipObjective.sort_order, ChipObjective.id)
        )
        return list(self._session.scalars(statement))

    def get_objective_for_update(
        self,
        *,
        chip_id: UUID,
        objective_id: UUID,
    ) -> ChipObjective | None:
        """Fetch and lock one objective scoped to its chip."""

        statement = (
            select(ChipObjective)
            .where(
                ChipObjective.chip_id == chip_id,
                ChipObjective.id == objective_id,
            )
            .with_for_update()
        )
        return self._session.scalar(statement)

    def set_objective_completion(
        self,
        objective: ChipObjective,
        *,
        completed_by_participant_id: UUID | None,
    ) -> ChipObjective:
        """Set or clear the completer and completion time together."""

        now = datetime.now(tz=UTC)
        objective.completed_by_participant_id = completed_by_participant_id
        objective.completed_at = now if completed_by_participant_id else None
        objective.updated_at = now
        self._session.flush()
        return objective

    def completion_rollup(self, chip_id: UUID) -> CompletionRollup:
        statement = select(
            func.count(ChipObjective.id),
            func.count(ChipObjective.completed_at),
        ).where(ChipObjective.chip_id == chip_id)
        total, completed = self._session.execute(statement).one()
        return CompletionRollup(completed=int(completed or 0), total=int(total or 0))

    def add_event(
        self,
        *,
        chip_id: UUID,
        event_type: ChipEventType,
        payload: dict[str, Any],
        actor_id: str | None = None,
    ) -> ChipEvent:
        """Append one chip audit event."""

        event = ChipEvent(
            chip_id=chip_id,
            event_type=event_type,
            actor_id=actor_id,
            payload=payload,
            created_at=datetime.now(tz=UTC),
        )
        self._session.add(event)
        self._session.flush()
        return event
