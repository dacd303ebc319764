"""End-to-end chip flows over HTTP with an in-memory database."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from chipin.db.models.chip import Chip
from chipin.db.models.chip_event import ChipEvent, ChipEventType

CRON_HEADERS = {"x-cron-secret": "cron-test-secret"}
OWNER = {"x-user-id": "owner-1", "x-user-name": "Olivia"}


def _create_chip(
    client: TestClient, headers: dict[str, str] = OWNER, **overrides: Any
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Beach cleanup",
        "threshold_count": 3,
        "deadline_at": (datetime.now(tz=UTC) + timedelta(days=1)).isoformat(),
        "objectives": [{"title": "Bring gloves"}, {"title": "Book the van"}],
    }
    payload.update(overrides)
    response = client.post("/v1/chips", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


def _move_deadline_to_past(
    session_factory: sessionmaker[Session], public_code: str
) -> None:
    with session_factory() as session:
        session.execute(
            update(Chip)
            .where(Chip.public_code == public_code)
            .values(deadline_at=datetime.now(tz=UTC) - timedelta(minutes=1))
        )
        session.commit()


def _event_counts(
    session_factory: sessionmaker[Session], public_code: str
) -> Counter[ChipEventType]:
    with session_factory() as session:
        events = session.scalars(
            select(ChipEvent)
            .join(Chip, Chip.id == ChipEvent.chip_id)
            .where(Chip.public_code == public_code)
        )
        return Counter(event.event_type for event in events)


def test_chip_activates_at_threshold_and_completes(
    client: TestClient, sqlite_session_factory: sessionmaker[Session]
) -> None:
    chip = _create_chip(client)
    code = chip["public_code"]

    member = client.post(
        f"/v1/chips/{code}/join",
        headers={"x-user-id": "user-2", "x-user-name": "Ben"},
    )
    assert member.status_code == 200
    assert member.json()["chip"]["status"] == "pending"
    assert member.json()["chip"]["participant_count"] == 2

    guest = client.post(f"/v1/chips/{code}/join", json={"display_name": "Gabe"})
    assert guest.status_code == 200
    assert guest.json()["created"] is True
    assert guest.json()["chip"]["status"] == "active"
    assert guest.json()["chip"]["activated_at"] is not None

    detail = client.get(f"/v1/chips/{code}").json()
    objective_id = detail["objectives"][0]["id"]
    toggled = client.post(
        f"/v1/chips/{code}/objectives/{objective_id}/toggle",
        json={"guest_name": "gabe"},
    )
    assert toggled.status_code == 200
    assert toggled.json()["objective"]["is_completed"] is True
    assert toggled.json()["completion"] == {"completed": 1, "total": 2}

    completed = client.post(f"/v1/chips/{code}/complete", headers=OWNER)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    late = client.post(f"/v1/chips/{code}/join", json={"display_name": "Late"})
    assert late.status_code == 409
    assert late.json()["code"] == "CHIP_CLOSED"

    assert _event_counts(sqlite_session_factory, code) == Counter(
        {
            ChipEventType.CHIP_CREATED: 1,
            ChipEventType.PARTICIPANT_JOINED: 2,
            ChipEventType.CHIP_ACTIVATED: 1,
            ChipEventType.OBJECTIVE_COMPLETED: 1,
            ChipEventType.CHIP_COMPLETED: 1,
        }
    )


def test_removing_participant_does_not_deactivate_chip(client: TestClient) -> None:
    chip = _create_chip(client, threshold_count=2)
    code = chip["public_code"]
    joined = client.post(f"/v1/chips/{code}/join", json={"display_name": "Gabe"})
    assert joined.json()["chip"]["status"] == "active"

    participant_id = joined.json()["participant"]["id"]
    removed = client.delete(
        f"/v1/chips/{code}/participants/{participant_id}", headers=OWNER
    )

    assert removed.status_code == 200
    detail = client.get(f"/v1/chips/{code}").json()
    assert detail["chip"]["status"] == "active"
    assert detail["chip"]["participant_count"] == 1


def test_expire_job_moves_open_chips_past_deadline_to_expired(
    client: TestClient, sqlite_session_factory: sessionmaker[Session]
) -> None:
    owners = [{"x-user-id": f"owner-{index}"} for index in range(4)]
    pending = _create_chip(client, owners[0])
    active = _create_chip(client, owners[1], threshold_count=1, title="Solo run")
    future = _create_chip(client, owners[2], title="Next week")
    canceled = _create_chip(client, owners[3], title="Called off")
    client.post(f"/v1/chips/{canceled['public_code']}/cancel", headers=owners[3])
    for chip in (pending, active, canceled):
        _move_deadline_to_past(sqlite_session_factory, chip["public_code"])

    first = client.post("/v1/jobs/expire-chips", headers=CRON_HEADERS)
    second = client.post("/v1/jobs/expire-chips", headers=CRON_HEADERS)

    assert first.json() == {"checked": 2, "transitioned": 2}
    assert second.json() == {"checked": 0, "transitioned": 0}

    def status_of(chip: dict[str, Any]) -> str:
        body = client.get(f"/v1/chips/{chip['public_code']}").json()
        return str(body["chip"]["status"])

    assert status_of(pending) == "expired"
    assert status_of(active) == "expired"
    assert status_of(future) == "pending"
    assert status_of(canceled) == "canceled"
