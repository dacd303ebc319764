"""Stripe adapter implementing the payment gateway port."""

from __future__ import annotations

import json
import logging
from typing import Any

import stripe

from chipin.domain.errors import (
    InvalidWebhookSignatureError,
    PaymentProviderError,
    PaymentsUnavailableError,
    compose_error_message,
)
from chipin.infrastructure.payments.gateway import (
    CheckoutRequest,
    CheckoutSession,
    ConnectedAccount,
    RefundReceipt,
)

logger = logging.getLogger(__name__)

_USABLE_KEY_PREFIXES = ("sk_test_", "sk_live_", "rk_test_", "rk_live_")

_FAILURE_REASONS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("responsibilities of managing losses",), "platform-profile"),
    (("invalid api key",), "stripe-invalid-key"),
    (("test mode key", "live mode key"), "stripe-mode-mismatch"),
    (("connect",), "stripe-connect-config"),
)


def classify_provider_failure(message: str) -> str:
    """Map a processor error message onto a stable failure reason code."""

    lowered = message.lower()
    for needles, reason in _FAILURE_REASONS:
        if any(needle in lowered for needle in needles):
            return reason
    return "stripe-api"


class StripePaymentGateway:
    """Calls Stripe with an explicit API key instead of the module-global one."""

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        webhook_tolerance_seconds: int = 300,
        currency: str = "usd",
    ) -> None:
        self._secret_key = secret_key.strip()
        self._webhook_secret = webhook_secret
        self._webhook_tolerance_seconds = webhook_tolerance_seconds
        self._currency = currency

    def is_configured(self) -> bool:
        return self._secret_key.startswith(_USABLE_KEY_PREFIXES)

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        if not signature or not self._webhook_secret:
            raise InvalidWebhookSignatureError()

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning("webhook_body_not_utf8", extra={"error": str(exc)})
            raise InvalidWebhookSignatureError(
                message=compose_error_message(
                    cause="The webhook body is not valid UTF-8.",
                    action="Deliver the original event payload unchanged.",
                )
            ) from exc

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                self._webhook_tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("webhook_signature_rejected", extra={"error": str(exc)})
            raise InvalidWebhookSignatureError() from exc

        try:
            event = json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvalidWebhookSignatureError(
                message=compose_error_message(
                    cause="The webhook body is not valid JSON.",
                    action="Deliver the original event payload unchanged.",
                )
            ) from exc
        if not isinstance(event, dict) or not event.get("id"):
            raise InvalidWebhookSignatureError(
                message=compose_error_message(
                    cause="The webhook body is not a processor event.",
                    action="Deliver the original event payload unchanged.",
                )
            )
        return event

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        session = self._call(
            stripe.checkout.Session.create,
            mode="payment",
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": self._currency,
                        "unit_amount": request.amount_cents,
                        "product_data": {
                            "name": request.product_name,
                            "description": request.product_description,
                        },
                    },
                }
            ],
            payment_intent_data={
                "application_fee_amount": request.application_fee_cents,
                "transfer_data": {"destination": request.destination_account_id},
                "statement_descriptor_suffix": request.statement_descriptor_suffix,
                "metadata": request.metadata,
            },
            metadata=request.metadata,
            submit_type="pay",
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> RefundReceipt:
        refund = self._call(
            stripe.Refund.create,
            payment_intent=payment_intent_id,
            reason="requested_by_customer",
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        return RefundReceipt(refund_id=refund.id)

    def retrieve_latest_charge_id(self, payment_intent_id: str) -> str | None:
        intent = self._call(stripe.PaymentIntent.retrieve, payment_intent_id)
        latest_charge = intent.latest_charge
        if latest_charge is None or isinstance(latest_charge, str):
            return latest_charge
        return str(latest_charge.id)

    def create_connected_account(
        self,
        *,
        email: str | None,
        user_id: str,
    ) -> ConnectedAccount:
        params: dict[str, Any] = {
            "type": "express",
            "country": "US",
            "capabilities": {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "business_type": "individual",
            "metadata": {"chipin_user_id": user_id},
        }
        if email:
            params["email"] = email
        account = self._call(stripe.Account.create, **params)
        return self._to_connected_account(account)

    def retrieve_account(self, account_id: str) -> ConnectedAccount:
        account = self._call(stripe.Account.retrieve, account_id)
        return self._to_connected_account(account)

    def create_onboarding_link(
        self,
        *,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        link = self._call(
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
        return str(link.url)

    def _call(self, operation: Any, *args: Any, **kwargs: Any) -> Any:
        if not self.is_configured():
            raise PaymentsUnavailableError()
        try:
            return operation(*args, api_key=self._secret_key, **kwargs)
        except stripe.StripeError as exc:
            message = exc.user_message or str(exc)
            reason = classify_provider_failure(str(exc))
            logger.warning(
                "stripe_request_failed",
                extra={"reason": reason, "error": str(exc)},
            )
            raise PaymentProviderError(
                message=compose_error_message(
                    cause=f"The payment processor rejected the request: {message}",
                    action="Retry the operation in a few moments.",
                ),
                details={"reason": reason},
            ) from exc

    @staticmethod
    def _to_connected_account(account: Any) -> ConnectedAccount:
        return ConnectedAccount(
            account_id=str(account.id),
            details_submitted=bool(account.details_submitted),
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
        )
