"""Contract tests for chip endpoints."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi.testclient import TestClient


def user_headers(user_id: str, name: str | None = None) -> dict[str, str]:
    headers = {"x-user-id": user_id}
    if name:
        headers["x-user-name"] = name
    return headers


def chip_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Morning run club",
        "description": "Five kilometers before work",
        "threshold_count": 3,
        "deadline_at": (datetime.now(tz=UTC) + timedelta(days=2)).isoformat(),
        "objectives": [{"title": "Pick a route"}, {"title": "Bring water"}],
    }
    payload.update(overrides)
    return payload


def create_chip(client: TestClient, **overrides: Any) -> dict[str, Any]:
    response = client.post(
        "/v1/chips",
        json=chip_payload(**overrides),
        headers=user_headers("owner-1", "Olivia"),
    )
    assert response.status_code == 201
    return response.json()


def test_create_chip_returns_201_with_seeded_creator(client: TestClient) -> None:
    body = create_chip(client)

    assert body["status"] == "pending"
    assert body["participant_count"] == 1
    assert body["objective_count"] == 2
    assert body["creator_id"] == "owner-1"
    assert len(body["public_code"]) > 0


def test_create_chip_requires_identity(client: TestClient) -> None:
    response = client.post("/v1/chips", json=chip_payload())

    assert response.status_code == 401
    assert response.json()["code"] == "AUTHENTICATION_REQUIRED"


def test_create_chip_returns_400_for_out_of_range_threshold(
    client: TestClient,
) -> None:
    response = client.post(
        "/v1/chips",
        json=chip_payload(threshold_count=0),
        headers=user_headers("owner-1"),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_create_chip_returns_400_for_deadline_too_close(client: TestClient) -> None:
    response = client.post(
        "/v1/chips",
        json=chip_payload(
            deadline_at=(datetime.now(tz=UTC) + timedelta(minutes=5)).isoformat()
        ),
        headers=user_headers("owner-1"),
    )

    assert response.status_code == 400


def test_create_chip_rejects_too_many_objectives(client: TestClient) -> None:
    response = client.post(
        "/v1/chips",
        json=chip_payload(objectives=[{"title": f"Step {n}"} for n in range(6)]),
        headers=user_headers("owner-1"),
    )

    assert response.status_code == 400
    assert response.json()["details"] == {"objectives": 6}


def test_create_chip_enforces_open_chip_limit(client: TestClient) -> None:
    create_chip(client)

    response = client.post(
        "/v1/chips",
        json=chip_payload(title="Second chip"),
        headers=user_headers("owner-1"),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "OPEN_CHIP_LIMIT_REACHED"


def test_get_chip_returns_participants_objectives_and_completion(
    client: TestClient,
) -> None:
    chip = create_chip(client)

    response = client.get(f"/v1/chips/{chip['public_code']}")

    assert response.status_code == 200
    body = response.json()
    assert body["chip"]["id"] == chip["id"]
    assert [item["display_name"] for item in body["participants"]] == ["Olivia"]
    assert body["participants"][0]["is_creator"] is True
    assert [item["title"] for item in body["objectives"]] == [
        "Pick a route",
        "Bring water",
    ]
    assert body["completion"] == {"completed": 0, "total": 2}


def test_get_chip_returns_404_for_unknown_code(client: TestClient) -> None:
    response = client.get("/v1/chips/doesnotexist")

    assert response.status_code == 404
    assert response.json()["code"] == "CHIP_NOT_FOUND"


def test_list_my_chips_includes_owned_and_joined(client: TestClient) -> None:
    chip = create_chip(client)
    client.post(
        f"/v1/chips/{chip['public_code']}/join",
        headers=user_headers("member-1", "Mia"),
    )

    owner_list = client.get("/v1/chips", headers=user_headers("owner-1"))
    member_list = client.get("/v1/chips", headers=user_headers("member-1"))
    stranger_list = client.get("/v1/chips", headers=user_headers("stranger"))

    assert [item["id"] for item in owner_list.json()["items"]] == [chip["id"]]
    assert [item["id"] for item in member_list.json()["items"]] == [chip["id"]]
    assert stranger_list.json()["items"] == []


def test_join_chip_as_guest_and_repeat_is_idempotent(client: TestClient) -> None:
    chip = create_chip(client)

    first = client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "Gabe"},
    )
    second = client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "gabe"},
    )

    assert first.status_code == 200
    assert first.json()["created"] is True
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["participant"]["id"] == first.json()["participant"]["id"]
    assert second.json()["chip"]["participant_count"] == 2


def test_join_chip_guest_without_name_returns_400(client: TestClient) -> None:
    chip = create_chip(client)

    response = client.post(f"/v1/chips/{chip['public_code']}/join")

    assert response.status_code == 400


def test_join_chip_guest_cannot_take_registered_name(client: TestClient) -> None:
    chip = create_chip(client)

    response = client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "OLIVIA"},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_PARTICIPANT_NAME"


def test_join_chip_returns_409_when_full(client: TestClient) -> None:
    chip = create_chip(client, threshold_count=2)
    client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "Gabe"},
    )

    response = client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "Hana"},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "CHIP_FULL"


def test_remove_participant_is_owner_only(client: TestClient) -> None:
    chip = create_chip(client)
    joined = client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "Gabe"},
    ).json()
    participant_id = joined["participant"]["id"]

    forbidden = client.delete(
        f"/v1/chips/{chip['public_code']}/participants/{participant_id}",
        headers=user_headers("member-9"),
    )
    removed = client.delete(
        f"/v1/chips/{chip['public_code']}/participants/{participant_id}",
        headers=user_headers("owner-1"),
    )

    assert forbidden.status_code == 403
    assert removed.status_code == 200
    assert removed.json()["participant_count"] == 1


def test_remove_participant_rejects_creator_row(client: TestClient) -> None:
    chip = create_chip(client)
    detail = client.get(f"/v1/chips/{chip['public_code']}").json()
    creator_id = detail["participants"][0]["id"]

    response = client.delete(
        f"/v1/chips/{chip['public_code']}/participants/{creator_id}",
        headers=user_headers("owner-1"),
    )

    assert response.status_code == 400


def test_toggle_objective_flips_completion(client: TestClient) -> None:
    chip = create_chip(client)
    detail = client.get(f"/v1/chips/{chip['public_code']}").json()
    objective_id = detail["objectives"][0]["id"]
    url = f"/v1/chips/{chip['public_code']}/objectives/{objective_id}/toggle"

    done = client.post(url, headers=user_headers("owner-1"))
    reopened = client.post(url, headers=user_headers("owner-1"))

    assert done.status_code == 200
    assert done.json()["objective"]["is_completed"] is True
    assert done.json()["completion"] == {"completed": 1, "total": 2}
    assert reopened.json()["objective"]["is_completed"] is False
    assert reopened.json()["objective"]["completed_by_participant_id"] is None
    assert reopened.json()["completion"] == {"completed": 0, "total": 2}


def test_toggle_objective_rejects_non_participant(client: TestClient) -> None:
    chip = create_chip(client)
    detail = client.get(f"/v1/chips/{chip['public_code']}").json()
    objective_id = detail["objectives"][0]["id"]

    response = client.post(
        f"/v1/chips/{chip['public_code']}/objectives/{objective_id}/toggle",
        headers=user_headers("stranger", "Stan"),
    )

    assert response.status_code == 403


def test_complete_chip_requires_active_status(client: TestClient) -> None:
    chip = create_chip(client)

    response = client.post(
        f"/v1/chips/{chip['public_code']}/complete",
        headers=user_headers("owner-1"),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATUS_TRANSITION"


def test_cancel_chip_then_join_returns_409(client: TestClient) -> None:
    chip = create_chip(client)

    canceled = client.post(
        f"/v1/chips/{chip['public_code']}/cancel",
        headers=user_headers("owner-1"),
    )
    join = client.post(
        f"/v1/chips/{chip['public_code']}/join",
        json={"display_name": "Gabe"},
    )

    assert canceled.status_code == 200
    assert canceled.json()["status"] == "canceled"
    assert canceled.json()["canceled_at"] is not None
    assert join.status_code == 409
    assert join.json()["code"] == "CHIP_CLOSED"
