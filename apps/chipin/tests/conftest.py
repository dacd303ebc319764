from __future__ import annotations

import hashlib
import hmac
import json
import time
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from chipin.api.app import create_app
from chipin.api.dependencies import get_payment_gateway
from chipin.core.settings import Settings, get_settings
from chipin.db.base import Base, import_orm_models
from chipin.db.session import get_db_session
from chipin.domain.errors import PaymentProviderError
from chipin.infrastructure.payments.gateway import (
    CheckoutRequest,
    CheckoutSession,
    ConnectedAccount,
    RefundReceipt,
)
from chipin.infrastructure.payments.stripe_gateway import StripePaymentGateway

WEBHOOK_SECRET = "whsec_test_secret"
CRON_SECRET = "cron-test-secret"
APP_URL = "https://chipin.test"


class FakePaymentGateway:
    """In-memory processor double; webhook signatures use the real verifier."""

    def __init__(self, *, webhook_secret: str = WEBHOOK_SECRET) -> None:
        self.configured = True
        self.checkout_requests: list[CheckoutRequest] = []
        self.refunded_intents: list[str] = []
        self.failing_refund_intents: set[str] = set()
        self.latest_charges: dict[str, str] = {}
        self.accounts: dict[str, ConnectedAccount] = {}
        self.created_account_ids: list[str] = []
        self.provider_failure_reason: str | None = None
        self._verifier = StripePaymentGateway(
            secret_key="", webhook_secret=webhook_secret
        )

    def is_configured(self) -> bool:
        return self.configured

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        return self._verifier.verify_webhook(payload, signature)

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        self.checkout_requests.append(request)
        session_id = f"cs_test_{len(self.checkout_requests)}"
        return CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.stripe.test/{session_id}",
        )

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> RefundReceipt:
        _ = metadata, idempotency_key
        if payment_intent_id in self.failing_refund_intents:
            raise PaymentProviderError(details={"reason": "stripe-api"})
        self.refunded_intents.append(payment_intent_id)
        return RefundReceipt(refund_id=f"re_{payment_intent_id}")

    def retrieve_latest_charge_id(self, payment_intent_id: str) -> str | None:
        return self.latest_charges.get(payment_intent_id, f"ch_{payment_intent_id}")

    def create_connected_account(
        self,
        *,
        email: str | None,
        user_id: str,
    ) -> ConnectedAccount:
        _ = email
        if self.provider_failure_reason is not None:
            raise PaymentProviderError(
                details={"reason": self.provider_failure_reason}
            )
        account = ConnectedAccount(
            account_id=f"acct_{user_id}",
            details_submitted=False,
            charges_enabled=False,
            payouts_enabled=False,
        )
        self.accounts[account.account_id] = account
        self.created_account_ids.append(account.account_id)
        return account

    def retrieve_account(self, account_id: str) -> ConnectedAccount:
        return self.accounts[account_id]

    def create_onboarding_link(
        self,
        *,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        _ = refresh_url, return_url
        return f"https://connect.stripe.test/setup/{account_id}"

    def complete_onboarding(self, account_id: str) -> None:
        self.accounts[account_id] = ConnectedAccount(
            account_id=account_id,
            details_submitted=True,
            charges_enabled=True,
            payouts_enabled=True,
        )


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    """Build a ``stripe-signature`` header value for a raw body."""

    timestamp = int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def sqlite_session_factory() -> Generator[sessionmaker[Session], None, None]:
    import_orm_models()
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, _: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    factory = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        Base.metadata.drop_all(engine)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+pysqlite:///:memory:",
        APP_URL=APP_URL,
        CRON_SHARED_SECRET=CRON_SECRET,
        STRIPE_SECRET_KEY="sk_test_fake",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
    )


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def client(
    sqlite_session_factory: sessionmaker[Session],
    settings: Settings,
    payment_gateway: FakePaymentGateway,
) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db_session() -> Generator[Session, None, None]:
        with sqlite_session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def post_webhook(client: TestClient) -> Callable[..., Any]:
    """Post a signed processor event to the webhook endpoint."""

    def _post(event_payload: dict[str, Any], *, signature: str | None = None) -> Any:
        body = json.dumps(event_payload)
        return client.post(
            "/v1/webhooks/stripe",
            content=body,
            headers={
                "content-type": "application/json",
                "stripe-signature": signature or sign_stripe_payload(body),
            },
        )

    return _post
