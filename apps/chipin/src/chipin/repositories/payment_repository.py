"""Persistence for processor correlation rows, disputes and the webhook ledger."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chipin.db.models.contribution import Contribution
from chipin.db.models.contribution_payment import ContributionPayment
from chipin.db.models.dispute import Dispute
from chipin.db.models.webhook_event import WebhookEvent, WebhookEventStatus

_CORRELATION_FIELDS = (
    "contributor_email",
    "stripe_checkout_session_id",
    "stripe_payment_intent_id",
    "stripe_charge_id",
    "stripe_refund_id",
    "stripe_transfer_id",
    "stripe_destination_account_id",
)


class WebhookClaim(enum.StrEnum):
    """Outcome of trying to take ownership of one webhook event id."""

    CLAIMED = "claimed"
    DUPLICATE = "duplicate"


class PaymentRepository:
    """Repository for payment correlation data and webhook deduplication."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_payment(self, contribution_id: UUID) -> ContributionPayment | None:
        return self._session.get(ContributionPayment, contribution_id)

    def upsert_payment(
        self,
        contribution_id: UUID,
        **fields: str | None,
    ) -> ContributionPayment:
        """Create or widen the correlation row for one contribution.

        Non-null values overwrite stored ones; ``None`` never clears a field.
        """

        unknown = set(fields) - set(_CORRELATION_FIELDS)
        if unknown:
            msg = f"Unknown correlation fields: {sorted(unknown)}"
            raise ValueError(msg)

        payment = self.get_payment(contribution_id)
        if payment is None:
            with self._session.begin_nested():
                payment = ContributionPayment(contribution_id=contribution_id)
                self._session.add(payment)
                try:
                    self._session.flush()
                except IntegrityError:
                    payment = None
            if payment is None:
                payment = self.get_payment(contribution_id)
                if payment is None:
                    msg = "Failed to load correlation row after upsert attempt."
                    raise RuntimeError(msg)

        for name, value in fields.items():
            if value is not None:
                setattr(payment, name, value)
        payment.updated_at = datetime.now(tz=UTC)
        self._session.flush()
        return payment

    def find_contribution_by_checkout_session(
        self, session_id: str
    ) -> Contribution | None:
        return self._find_contribution(
            ContributionPayment.stripe_checkout_session_id == session_id
        )

    def find_contribution_by_payment_intent(
        self, payment_intent_id: str
    ) -> Contribution | None:
        return self._find_contribution(
            ContributionPayment.stripe_payment_intent_id == payment_intent_id
        )

    def find_contribution_by_charge(self, charge_id: str) -> Contribution | None:
        return self._find_contribution(
            ContributionPayment.stripe_charge_id == charge_id
        )

    def upsert_dispute(
        self,
        *,
        dispute_id: str,
        contribution_id: UUID | None,
        amount_cents: int,
        reason: str | None,
        status: str,
        payload: dict[str, Any],
    ) -> Dispute:
        """Store the latest snapshot of one dispute, keeping a known contribution."""

        now = datetime.now(tz=UTC)
        dispute = self._session.get(Dispute, dispute_id)
        if dispute is None:
            dispute = Dispute(id=dispute_id, created_at=now)
            self._session.add(dispute)
        if contribution_id is not None:
            dispute.contribution_id = contribution_id
        dispute.amount_cents = amount_cents
        dispute.reason = reason
        dispute.status = status
        dispute.payload = payload
        dispute.updated_at = now
        self._session.flush()
        return dispute

    def claim_webhook_event(
        self,
        *,
        event_id: str,
        event_type: str,
        livemode: bool,
        payload: dict[str, Any],
    ) -> WebhookClaim:
        """Insert the ledger row or re-claim one left behind by a failed attempt.

        Runs inside the caller's transaction, so the claim only becomes durable
        together with the event's effects.
        """

        with self._session.begin_nested():
            event = WebhookEvent(
                id=event_id,
                type=event_type,
                livemode=livemode,
                payload=payload,
                status=WebhookEventStatus.RECEIVED,
                attempt_count=1,
                received_at=datetime.now(tz=UTC),
            )
            self._session.add(event)
            try:
                self._session.flush()
                return WebhookClaim.CLAIMED
            except IntegrityError:
                pass

        existing = self._get_webhook_event_for_update(event_id)
        if existing is None:
            msg = "Failed to load webhook event after idempotent insert attempt."
            raise RuntimeError(msg)
        if existing.status == WebhookEventStatus.PROCESSED:
            return WebhookClaim.DUPLICATE

        existing.status = WebhookEventStatus.RECEIVED
        existing.attempt_count += 1
        existing.processing_error = None
        self._session.flush()
        return WebhookClaim.CLAIMED

    def mark_webhook_processed(self, event_id: str) -> None:
        event = self._session.get(WebhookEvent, event_id)
        if event is None:
            return
        event.status = WebhookEventStatus.PROCESSED
        event.processed_at = datetime.now(tz=UTC)
        event.processing_error = None
        self._session.flush()

    def record_webhook_failure(
        self,
        *,
        event_id: str,
        event_type: str,
        livemode: bool,
        payload: dict[str, Any],
        error: str,
    ) -> WebhookEvent:
        """Persist a failed attempt after the effects were rolled back."""

        event = self._session.get(WebhookEvent, event_id)
        if event is None:
            event = WebhookEvent(
                id=event_id,
                type=event_type,
                livemode=livemode,
                payload=payload,
                attempt_count=1,
                received_at=datetime.now(tz=UTC),
            )
            self._session.add(event)
        else:
            event.attempt_count += 1
        event.status = WebhookEventStatus.FAILED
        event.processing_error = error
        self._session.flush()
        return event

    def get_webhook_event(self, event_id: str) -> WebhookEvent | None:
        return self._session.get(WebhookEvent, event_id)

    def _get_webhook_event_for_update(self, event_id: str) -> WebhookEvent | None:
        statement = (
            select(WebhookEvent)
            .where(WebhookEvent.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalar(statement)

    def _find_contribution(self, criterion: Any) -> Contribution | None:
        statement = (
            select(Contribution)
            .join(
                ContributionPayment,
                ContributionPayment.contribution_id == Contribution.id,
            )
            .where(criterion)
            .limit(1)
        )
        return self._session.scalar(statement)
