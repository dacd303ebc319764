from __future__ import annotations

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from typing import Any

import pytest
import stripe

from chipin.domain.errors import (
    InvalidWebhookSignatureError,
    PaymentProviderError,
    PaymentsUnavailableError,
)
from chipin.infrastructure.payments.stripe_gateway import (
    StripePaymentGateway,
    classify_provider_failure,
)

SECRET = "whsec_unit"


def signed_header(body: str, secret: str = SECRET) -> str:
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def build_gateway(secret_key: str = "sk_test_123") -> StripePaymentGateway:
    return StripePaymentGateway(secret_key=secret_key, webhook_secret=SECRET)


@pytest.mark.parametrize(
    ("message", "reason"),
    [
        ("Accept the responsibilities of managing losses", "platform-profile"),
        ("Invalid API Key provided: sk_test_****", "stripe-invalid-key"),
        ("A test mode key was used for a live request", "stripe-mode-mismatch"),
        ("Sign up for Connect before creating accounts", "stripe-connect-config"),
        ("Something else went wrong", "stripe-api"),
    ],
)
def test_classify_provider_failure(message: str, reason: str) -> None:
    assert classify_provider_failure(message) == reason


@pytest.mark.parametrize(
    ("secret_key", "configured"),
    [
        ("sk_test_abc", True),
        ("rk_live_abc", True),
        ("", False),
        ("pk_test_abc", False),
    ],
)
def test_is_configured_requires_secret_key_prefix(
    secret_key: str, configured: bool
) -> None:
    assert build_gateway(secret_key).is_configured() is configured


def test_verify_webhook_returns_decoded_event() -> None:
    body = json.dumps({"id": "evt_1", "type": "charge.refunded"})

    event = build_gateway().verify_webhook(body.encode(), signed_header(body))

    assert event["id"] == "evt_1"


def test_verify_webhook_rejects_tampered_body() -> None:
    body = json.dumps({"id": "evt_1"})
    header = signed_header(body)

    with pytest.raises(InvalidWebhookSignatureError):
        build_gateway().verify_webhook(b'{"id": "evt_2"}', header)


def test_verify_webhook_rejects_missing_signature() -> None:
    with pytest.raises(InvalidWebhookSignatureError):
        build_gateway().verify_webhook(b"{}", "")


def test_verify_webhook_rejects_body_that_is_not_utf8() -> None:
    with pytest.raises(InvalidWebhookSignatureError):
        build_gateway().verify_webhook(b"\xff\xfe{}", "t=1,v1=deadbeef")


def test_verify_webhook_rejects_body_without_event_id() -> None:
    body = json.dumps({"type": "charge.refunded"})

    with pytest.raises(InvalidWebhookSignatureError):
        build_gateway().verify_webhook(body.encode(), signed_header(body))


def test_calls_pass_explicit_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_create(**kwargs: Any) -> SimpleNamespace:
        captured.update(kwargs)
        return SimpleNamespace(id="re_1")

    monkeypatch.setattr(stripe.Refund, "create", fake_create)

    receipt = build_gateway().create_refund(
        payment_intent_id="pi_1",
        metadata={"pool_id": "p"},
        idempotency_key="chipin-refund-c1",
    )

    assert receipt.refund_id == "re_1"
    assert captured["api_key"] == "sk_test_123"
    assert captured["payment_intent"] == "pi_1"
    assert captured["idempotency_key"] == "chipin-refund-c1"


def test_latest_charge_accepts_expanded_object(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fake_retrieve(intent_id: str, **_: Any) -> SimpleNamespace:
        return SimpleNamespace(latest_charge=SimpleNamespace(id=f"ch_{intent_id}"))

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)

    assert build_gateway().retrieve_latest_charge_id("pi_9") == "ch_pi_9"


def test_processor_errors_are_wrapped_with_reason(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def failing_create(**_: Any) -> None:
        raise stripe.AuthenticationError("Invalid API Key provided: sk_test_****")

    monkeypatch.setattr(stripe.Refund, "create", failing_create)

    with pytest.raises(PaymentProviderError) as exc_info:
        build_gateway().create_refund(
            payment_intent_id="pi_1", metadata={}, idempotency_key="k1"
        )

    assert exc_info.value.details == {"reason": "stripe-invalid-key"}


def test_unconfigured_gateway_refuses_calls() -> None:
    with pytest.raises(PaymentsUnavailableError):
        build_gateway("").create_refund(
            payment_intent_id="pi_1", metadata={}, idempotency_key="k1"
        )
