"""Unit tests for pool service."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest

from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.pool import Pool, PoolStatus
from chipin.db.models.pool_event import PoolEventType
from chipin.db.models.profile import Profile
from chipin.domain.errors import (
    AuthenticationRequiredError,
    ForbiddenActionError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    PayoutsNotConnectedError,
    PoolNotFoundError,
)
from chipin.domain.identity import Identity
from chipin.infrastructure.payments.gateway import CheckoutRequest, CheckoutSession
from chipin.services.pool_service import (
    CheckoutRedirect,
    CreatePoolInput,
    PoolService,
    PoolUnavailable,
    StartCheckoutInput,
    statement_descriptor_suffix,
)

ORGANIZER = Identity(user_id="org-1", name="Olivia")


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rolled_back = False

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rolled_back = True

    def refresh(self, instance: object) -> None:
        _ = instance


class FakeProfileRepository:
    def __init__(self, *profiles: Profile) -> None:
        self.profiles = {profile.id: profile for profile in profiles}

    def get(self, user_id: str) -> Profile | None:
        return self.profiles.get(user_id)

    def ensure(self, *, user_id: str, full_name: str | None) -> Profile:
        if user_id not in self.profiles:
            self.profiles[user_id] = Profile(
                id=user_id,
                full_name=full_name,
                stripe_account_id=None,
                stripe_onboarding_complete=False,
                charges_enabled=False,
                payouts_enabled=False,
            )
        return self.profiles[user_id]


class FakePoolRepository:
    def __init__(self) -> None:
        self.pools: dict[str, Pool] = {}
        self.contributions: list[Contribution] = []
        self.event_types: list[PoolEventType] = []

    def seed(self, **overrides: Any) -> Pool:
        values: dict[str, Any] = {
            "id": uuid4(),
            "public_code": "tacos123",
            "organizer_id": ORGANIZER.user_id,
            "title": "Friday tacos!",
            "restaurant_name": "Taqueria",
            "goal_amount_cents": 5_000,
            "collected_amount_cents": 0,
            "tip_percent": 15,
            "deadline_at": datetime.now(tz=UTC) + timedelta(minutes=30),
            "status": PoolStatus.ACTIVE,
        }
        values.update(overrides)
        pool = Pool(**values)
        self.pools[pool.public_code] = pool
        return pool

    def get_by_public_code(self, public_code: str) -> Pool | None:
        return self.pools.get(public_code)

    def list_for_organizer(self, organizer_id: str, *, limit: int = 50) -> list[Pool]:
        owned = [
            pool for pool in self.pools.values() if pool.organizer_id == organizer_id
        ]
        return owned[:limit]

    def add_pool(
        self,
        *,
        organizer_id: str,
        title: str,
        restaurant_name: str | None,
        goal_amount_cents: int | None,
        tip_percent: int,
        deadline_at: datetime,
    ) -> Pool:
        return self.seed(
            public_code=f"pool{len(self.pools)}",
            organizer_id=organizer_id,
            title=title,
            restaurant_name=restaurant_name,
            goal_amount_cents=goal_amount_cents,
            tip_percent=tip_percent,
            deadline_at=deadline_at,
        )

    def transition_status(
        self,
        pool_id: UUID,
        *,
        to_status: PoolStatus,
        from_status: PoolStatus | None = None,
    ) -> bool:
        for pool in self.pools.values():
            if pool.id == pool_id:
                if from_status is not None and pool.status != from_status:
                    return False
                pool.status = to_status
                return True
        return False

    def add_contribution(
        self,
        *,
        pool_id: UUID,
        contributor_name: str,
        amount_cents: int,
        platform_fee_cents: int,
    ) -> Contribution:
        contribution = Contribution(
            id=uuid4(),
            pool_id=pool_id,
            contributor_name=contributor_name,
            amount_cents=amount_cents,
            platform_fee_cents=platform_fee_cents,
            status=ContributionStatus.PENDING,
        )
        self.contributions.append(contribution)
        return contribution

    def list_contributions(
        self,
        pool_id: UUID,
        *,
        statuses: frozenset[ContributionStatus] | None = None,
    ) -> list[Contribution]:
        return [
            item
            for item in self.contributions
            if item.pool_id == pool_id and (statuses is None or item.status in statuses)
        ]

    def add_event(
        self,
        *,
        pool_id: UUID,
        event_type: PoolEventType,
        payload: dict[str, Any],
        contribution_id: UUID | None = None,
    ) -> object:
        _ = pool_id, payload, contribution_id
        self.event_types.append(event_type)
        return object()


class FakePaymentRepository:
    def __init__(self) -> None:
        self.payments: dict[UUID, dict[str, str | None]] = {}

    def upsert_payment(self, contribution_id: UUID, **fields: str | None) -> object:
        self.payments.setdefault(contribution_id, {}).update(fields)
        return object()


class FakeCheckoutGateway:
    def __init__(self, *, configured: bool = True) -> None:
        self.configured = configured
        self.requests: list[CheckoutRequest] = []

    def is_configured(self) -> bool:
        return self.configured

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        self.requests.append(request)
        return CheckoutSession(session_id="cs_test_1", url="https://pay.test/cs_1")


def _naive_utc_minutes_ago(minutes: int) -> datetime:
    return datetime.now(tz=UTC).replace(tzinfo=None) - timedelta(minutes=minutes)


def _connected_profile(user_id: str = ORGANIZER.user_id) -> Profile:
    return Profile(
        id=user_id,
        full_name="Olivia",
        stripe_account_id="acct_org",
        stripe_onboarding_complete=True,
        charges_enabled=True,
        payouts_enabled=True,
    )


def _service(
    *,
    pools: FakePoolRepository | None = None,
    profiles: FakeProfileRepository | None = None,
    payments: FakePaymentRepository | None = None,
    gateway: FakeCheckoutGateway | None = None,
    session: FakeSession | None = None,
) -> PoolService:
    return PoolService(
        pool_repository=pools or FakePoolRepository(),
        profile_repository=profiles or FakeProfileRepository(_connected_profile()),
        payment_repository=payments or FakePaymentRepository(),
        payment_gateway=gateway or FakeCheckoutGateway(),  # type: ignore[arg-type]
        session=session or FakeSession(),
        app_url="https://chipin.test/",
        platform_fee_bps=500,
    )


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Friday tacos!", "FRIDAY TACOS"),
        ("  Team   lunch  ", "TEAM LUNCH"),
        ("A very long pool title here", "A VERY LONG POOL"),
        ("!!!", "CHIPIN"),
    ],
)
def test_statement_descriptor_suffix(title: str, expected: str) -> None:
    assert statement_descriptor_suffix(title) == expected


def test_create_pool_converts_goal_and_records_event() -> None:
    pools = FakePoolRepository()
    session = FakeSession()

    pool = _service(pools=pools, session=session).create_pool(
        ORGANIZER,
        CreatePoolInput(
            title="  Friday tacos ",
            deadline_minutes=45,
            restaurant_name="  ",
            goal_amount=Decimal("80.50"),
            tip_percent=18,
        ),
    )

    assert pool.title == "Friday tacos"
    assert pool.restaurant_name is None
    assert pool.goal_amount_cents == 8_050
    assert pool.tip_percent == 18
    assert pools.event_types == [PoolEventType.POOL_CREATED]
    assert session.commits == 1


def test_create_pool_treats_zero_goal_as_no_goal() -> None:
    pool = _service().create_pool(
        ORGANIZER,
        CreatePoolInput(title="Lunch", deadline_minutes=30, goal_amount=Decimal("0")),
    )

    assert pool.goal_amount_cents is None


def test_create_pool_requires_identity() -> None:
    with pytest.raises(AuthenticationRequiredError):
        _service().create_pool(None, CreatePoolInput(title="x", deadline_minutes=30))


@pytest.mark.parametrize(
    "payload",
    [
        CreatePoolInput(title="   ", deadline_minutes=30),
        CreatePoolInput(title="x" * 101, deadline_minutes=30),
        CreatePoolInput(title="Lunch", deadline_minutes=4),
        CreatePoolInput(title="Lunch", deadline_minutes=181),
        CreatePoolInput(title="Lunch", deadline_minutes=30, tip_percent=36),
        CreatePoolInput(title="Lunch", deadline_minutes=30, goal_amount=Decimal("-1")),
    ],
)
def test_create_pool_rejects_invalid_input(payload: CreatePoolInput) -> None:
    with pytest.raises(InvalidRequestError):
        _service().create_pool(ORGANIZER, payload)


def test_create_pool_requires_connected_payouts() -> None:
    session = FakeSession()
    service = _service(profiles=FakeProfileRepository(), session=session)

    with pytest.raises(PayoutsNotConnectedError):
        service.create_pool(ORGANIZER, CreatePoolInput(title="x", deadline_minutes=30))

    assert session.rolled_back is True


def test_start_checkout_builds_destination_charge() -> None:
    pools = FakePoolRepository()
    pool = pools.seed()
    payments = FakePaymentRepository()
    gateway = FakeCheckoutGateway()

    outcome = _service(pools=pools, payments=payments, gateway=gateway).start_checkout(
        StartCheckoutInput(
            public_code=" tacos123 ",
            contributor_name=" Sam ",
            amount=Decimal("12.50"),
        )
    )

    assert isinstance(outcome, CheckoutRedirect)
    assert outcome.url == "https://pay.test/cs_1"
    [request] = gateway.requests
    assert request.amount_cents == 1_250
    assert request.application_fee_cents == 63
    assert request.destination_account_id == "acct_org"
    assert request.product_name == "ChipIn: Friday tacos!"
    assert request.product_description == "Taqueria"
    assert request.statement_descriptor_suffix == "FRIDAY TACOS"
    assert request.success_url == (
        "https://chipin.test/join/tacos123/success?session_id={CHECKOUT_SESSION_ID}"
    )
    assert request.cancel_url == "https://chipin.test/join/tacos123"
    assert request.metadata == {
        "pool_id": str(pool.id),
        "pool_public_code": "tacos123",
        "contribution_id": str(outcome.contribution_id),
    }
    [contribution] = pools.contributions
    assert contribution.contributor_name == "Sam"
    assert contribution.status == ContributionStatus.PENDING
    assert payments.payments[contribution.id] == {
        "stripe_checkout_session_id": "cs_test_1",
        "stripe_destination_account_id": "acct_org",
    }
    assert pools.event_types == [PoolEventType.CHECKOUT_SESSION_CREATED]


def test_start_checkout_reports_unconfigured_processor() -> None:
    outcome = _service(gateway=FakeCheckoutGateway(configured=False)).start_checkout(
        StartCheckoutInput(
            public_code="missing", contributor_name="Sam", amount=Decimal("5")
        )
    )

    assert outcome == PoolUnavailable(reason="payments_unavailable")


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"status": PoolStatus.FUNDED}, "pool_closed"),
        ({"status": PoolStatus.CANCELED}, "pool_closed"),
        (
            {"deadline_at": datetime.now(tz=UTC) - timedelta(minutes=1)},
            "deadline_passed",
        ),
        (
            {"deadline_at": _naive_utc_minutes_ago(1)},
            "deadline_passed",
        ),
    ],
)
def test_start_checkout_returns_unavailable_for_closed_pools(
    overrides: dict[str, Any], reason: str
) -> None:
    pools = FakePoolRepository()
    pool = pools.seed(**overrides)
    gateway = FakeCheckoutGateway()

    outcome = _service(pools=pools, gateway=gateway).start_checkout(
        StartCheckoutInput(
            public_code="tacos123", contributor_name="Sam", amount=Decimal("5")
        )
    )

    assert outcome == PoolUnavailable(reason=reason, pool_status=pool.status)
    assert gateway.requests == []
    assert pools.contributions == []


def test_start_checkout_requires_connected_organizer() -> None:
    pools = FakePoolRepository()
    pools.seed()
    profile = _connected_profile()
    profile.payouts_enabled = False

    outcome = _service(
        pools=pools, profiles=FakeProfileRepository(profile)
    ).start_checkout(
        StartCheckoutInput(
            public_code="tacos123", contributor_name="Sam", amount=Decimal("5")
        )
    )

    assert isinstance(outcome, PoolUnavailable)
    assert outcome.reason == "organizer_not_connected"


@pytest.mark.parametrize(
    ("name", "amount"),
    [
        ("", Decimal("5")),
        ("x" * 81, Decimal("5")),
        ("Sam", Decimal("0")),
        ("Sam", Decimal("500.01")),
    ],
)
def test_start_checkout_rejects_invalid_input(name: str, amount: Decimal) -> None:
    pools = FakePoolRepository()
    pools.seed()

    with pytest.raises(InvalidRequestError):
        _service(pools=pools).start_checkout(
            StartCheckoutInput(
                public_code="tacos123", contributor_name=name, amount=amount
            )
        )


def test_get_pool_hides_pending_contributions() -> None:
    pools = FakePoolRepository()
    pool = pools.seed()
    paid = pools.add_contribution(
        pool_id=pool.id, contributor_name="Paid", amount_cents=100, platform_fee_cents=5
    )
    paid.status = ContributionStatus.SUCCEEDED
    pools.add_contribution(
        pool_id=pool.id, contributor_name="Open", amount_cents=100, platform_fee_cents=5
    )

    details = _service(pools=pools).get_pool("tacos123")

    assert details.pool is pool
    assert [item.contributor_name for item in details.contributions] == ["Paid"]


def test_get_pool_raises_for_unknown_code() -> None:
    with pytest.raises(PoolNotFoundError):
        _service().get_pool("nope")


def test_list_my_pools_returns_organizer_pools_only() -> None:
    pools = FakePoolRepository()
    mine = pools.seed()
    pools.seed(public_code="other1", organizer_id="org-2")

    assert _service(pools=pools).list_my_pools(ORGANIZER) == [mine]


def test_list_my_pools_requires_identity() -> None:
    with pytest.raises(AuthenticationRequiredError):
        _service().list_my_pools(None)


def test_cancel_pool_by_organizer() -> None:
    pools = FakePoolRepository()
    pools.seed()

    pool = _service(pools=pools).cancel_pool(ORGANIZER, "tacos123")

    assert pool.status == PoolStatus.CANCELED
    assert pools.event_types == [PoolEventType.POOL_CANCELED]


def test_cancel_pool_rejects_other_users() -> None:
    pools = FakePoolRepository()
    pools.seed()

    with pytest.raises(ForbiddenActionError):
        _service(pools=pools).cancel_pool(Identity(user_id="intruder"), "tacos123")


def test_cancel_pool_rejects_settled_pools() -> None:
    pools = FakePoolRepository()
    pools.seed(status=PoolStatus.FUNDED)

    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        _service(pools=pools).cancel_pool(ORGANIZER, "tacos123")

    assert exc_info.value.details == {
        "current_status": "funded",
        "requested_status": "canceled",
    }
