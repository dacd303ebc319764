"""Contract tests for pool, checkout and onboarding endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.contribution_payment import ContributionPayment
from chipin.db.models.profile import Profile

if TYPE_CHECKING:
    from conftest import FakePaymentGateway


def organizer_headers(user_id: str = "org-1") -> dict[str, str]:
    return {"x-user-id": user_id, "x-user-name": "Omar"}


def seed_connected_organizer(session: Session, user_id: str = "org-1") -> None:
    session.add(
        Profile(
            id=user_id,
            full_name="Omar",
            stripe_account_id=f"acct_{user_id}",
            stripe_onboarding_complete=True,
            charges_enabled=True,
            payouts_enabled=True,
        )
    )
    session.commit()


@pytest.fixture
def organizer(sqlite_session_factory: sessionmaker[Session]) -> str:
    with sqlite_session_factory() as session:
        seed_connected_organizer(session)
    return "org-1"


def create_pool(client: TestClient, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Friday tacos",
        "restaurant_name": "Taqueria Uno",
        "goal_amount": "40.00",
        "tip_percent": 15,
        "deadline_minutes": 60,
    }
    payload.update(overrides)
    response = client.post("/v1/pools", json=payload, headers=organizer_headers())
    assert response.status_code == 201
    return response.json()


def test_create_pool_returns_201(client: TestClient, organizer: str) -> None:
    body = create_pool(client)

    assert body["organizer_id"] == organizer
    assert body["status"] == "active"
    assert body["goal_amount"] == "40.00"
    assert body["collected_amount"] == "0.00"
    assert body["tip_percent"] == 15


def test_create_pool_treats_zero_goal_as_none(
    client: TestClient, organizer: str
) -> None:
    body = create_pool(client, goal_amount="0.00")

    assert body["goal_amount"] is None


def test_create_pool_requires_connected_payouts(client: TestClient) -> None:
    response = client.post(
        "/v1/pools",
        json={"title": "Tacos", "deadline_minutes": 60},
        headers=organizer_headers("fresh-user"),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "PAYOUTS_NOT_CONNECTED"


def test_create_pool_rejects_deadline_out_of_range(
    client: TestClient, organizer: str
) -> None:
    response = client.post(
        "/v1/pools",
        json={"title": "Tacos", "deadline_minutes": 181},
        headers=organizer_headers(),
    )

    assert response.status_code == 400


def test_get_pool_returns_404_for_unknown_code(client: TestClient) -> None:
    response = client.get("/v1/pools/nope")

    assert response.status_code == 404
    assert response.json()["code"] == "POOL_NOT_FOUND"


def test_list_pools_returns_only_the_callers_pools(
    client: TestClient,
    organizer: str,
    sqlite_session_factory: sessionmaker[Session],
) -> None:
    with sqlite_session_factory() as session:
        seed_connected_organizer(session, "org-2")
    create_pool(client, title="Friday tacos")
    create_pool(client, title="Sunday brunch")
    other = client.post(
        "/v1/pools",
        json={"title": "Someone else", "deadline_minutes": 30},
        headers=organizer_headers("org-2"),
    )
    assert other.status_code == 201

    response = client.get("/v1/pools", headers=organizer_headers())

    assert response.status_code == 200
    items = response.json()["items"]
    assert {item["title"] for item in items} == {"Friday tacos", "Sunday brunch"}
    assert {item["organizer_id"] for item in items} == {organizer}


def test_list_pools_requires_identity(client: TestClient) -> None:
    response = client.get("/v1/pools")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTHENTICATION_REQUIRED"


def test_start_checkout_returns_redirect_and_pending_contribution(
    client: TestClient,
    organizer: str,
    payment_gateway: FakePaymentGateway,
    sqlite_session_factory: sessionmaker[Session],
) -> None:
    pool = create_pool(client)

    response = client.post(
        f"/v1/pools/{pool['public_code']}/checkout",
        json={"contributor_name": "Cara", "amount": "12.50"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["checkout_url"] == "https://checkout.stripe.test/cs_test_1"

    request = payment_gateway.checkout_requests[0]
    assert request.amount_cents == 1250
    assert request.application_fee_cents == 63
    assert request.destination_account_id == f"acct_{organizer}"
    assert request.statement_descriptor_suffix == "FRIDAY TACOS"
    assert request.metadata["contribution_id"] == body["contribution_id"]
    assert request.cancel_url == f"https://chipin.test/join/{pool['public_code']}"

    with sqlite_session_factory() as session:
        contribution = session.scalars(select(Contribution)).one()
        payment = session.get(ContributionPayment, contribution.id)
    assert contribution.status == ContributionStatus.PENDING
    assert payment is not None
    assert payment.stripe_checkout_session_id == "cs_test_1"


def test_start_checkout_returns_409_when_pool_canceled(
    client: TestClient, organizer: str
) -> None:
    pool = create_pool(client)
    client.post(f"/v1/pools/{pool['public_code']}/cancel", headers=organizer_headers())

    response = client.post(
        f"/v1/pools/{pool['public_code']}/checkout",
        json={"contributor_name": "Cara", "amount": "12.50"},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "POOL_UNAVAILABLE"
    assert response.json()["details"] == {
        "reason": "pool_closed",
        "pool_status": "canceled",
    }


def test_start_checkout_rejects_amount_over_limit(
    client: TestClient, organizer: str
) -> None:
    pool = create_pool(client)

    response = client.post(
        f"/v1/pools/{pool['public_code']}/checkout",
        json={"contributor_name": "Cara", "amount": "500.01"},
    )

    assert response.status_code == 400


def test_start_checkout_reports_unconfigured_payments(
    client: TestClient,
    organizer: str,
    payment_gateway: FakePaymentGateway,
) -> None:
    pool = create_pool(client)
    payment_gateway.configured = False

    response = client.post(
        f"/v1/pools/{pool['public_code']}/checkout",
        json={"contributor_name": "Cara", "amount": "10.00"},
    )

    assert response.status_code == 409
    assert response.json()["details"] == {"reason": "payments_unavailable"}


def test_cancel_pool_is_organizer_only(client: TestClient, organizer: str) -> None:
    pool = create_pool(client)

    forbidden = client.post(
        f"/v1/pools/{pool['public_code']}/cancel",
        headers={"x-user-id": "someone-else"},
    )
    canceled = client.post(
        f"/v1/pools/{pool['public_code']}/cancel", headers=organizer_headers()
    )
    again = client.post(
        f"/v1/pools/{pool['public_code']}/cancel", headers=organizer_headers()
    )

    assert forbidden.status_code == 403
    assert canceled.status_code == 200
    assert canceled.json()["status"] == "canceled"
    assert again.status_code == 409


def test_onboarding_creates_account_and_returns_link(
    client: TestClient,
    payment_gateway: FakePaymentGateway,
) -> None:
    response = client.post(
        "/v1/organizers/me/payouts/onboarding",
        headers={"x-user-id": "org-2", "x-user-email": "org2@example.com"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "outcome": "redirect",
        "url": "https://connect.stripe.test/setup/acct_org-2",
        "reason": None,
    }
    assert payment_gateway.created_account_ids == ["acct_org-2"]


def test_onboarding_failure_is_reported_as_result(
    client: TestClient,
    payment_gateway: FakePaymentGateway,
) -> None:
    payment_gateway.provider_failure_reason = "stripe-invalid-key"

    response = client.post(
        "/v1/organizers/me/payouts/onboarding",
        headers={"x-user-id": "org-2"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "outcome": "failed",
        "url": "https://chipin.test/onboarding/stripe?error=stripe-invalid-key",
        "reason": "stripe-invalid-key",
    }


def test_onboarding_requires_identity(client: TestClient) -> None:
    response = client.post("/v1/organizers/me/payouts/onboarding")

    assert response.status_code == 401
