"""Payment processor port consumed by pool, organizer and reconciler services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    """Hosted checkout parameters for one pending contribution."""

    amount_cents: int
    application_fee_cents: int
    destination_account_id: str
    product_name: str
    product_description: str
    statement_descriptor_suffix: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    """Processor checkout session reference returned to the caller."""

    session_id: str
    url: str | None


@dataclass(frozen=True, slots=True)
class RefundReceipt:
    """Processor refund reference."""

    refund_id: str


@dataclass(frozen=True, slots=True)
class ConnectedAccount:
    """Snapshot of an organizer's connected payout account."""

    account_id: str
    details_submitted: bool
    charges_enabled: bool
    payouts_enabled: bool


class PaymentGateway(Protocol):
    """Minimum processor surface used by the application."""

    def is_configured(self) -> bool:
        """Return whether usable API credentials are present."""

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Check the signature header and return the decoded event."""

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a hosted checkout session and return its redirect URL."""

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> RefundReceipt:
        """Refund the full amount captured by one payment intent."""

    def retrieve_latest_charge_id(self, payment_intent_id: str) -> str | None:
        """Return the charge id most recently attached to a payment intent."""

    def create_connected_account(
        self,
        *,
        email: str | None,
        user_id: str,
    ) -> ConnectedAccount:
        """Create an express connected account for an organizer."""

    def retrieve_account(self, account_id: str) -> ConnectedAccount:
        """Fetch the current onboarding state of a connected account."""

    def create_onboarding_link(
        self,
        *,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        """Create an onboarding link and return its URL."""
