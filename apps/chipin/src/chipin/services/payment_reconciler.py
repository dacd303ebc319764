"""Apply verified payment-processor webhook events exactly once."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.pool import PoolStatus
from chipin.db.models.pool_event import PoolEventType
from chipin.domain.errors import WebhookProcessingError, compose_error_message
from chipin.infrastructure.payments.gateway import PaymentGateway
from chipin.repositories.payment_repository import WebhookClaim
from chipin.services.threshold_evaluator import PoolEvaluation

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHARGE_REFUNDED = "charge.refunded"
DISPUTE_CREATED = "charge.dispute.created"
CLOSED_POOL_STATUSES = frozenset({PoolStatus.EXPIRED, PoolStatus.CANCELED})


class SessionProtocol(Protocol):
    """Subset of SQLAlchemy session APIs used by the reconciler."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class PaymentRepositoryProtocol(Protocol):
    """Payment repository contract consumed by the reconciler."""

    def claim_webhook_event(
        self,
        *,
        event_id: str,
        event_type: str,
        livemode: bool,
        payload: dict[str, Any],
    ) -> WebhookClaim: ...

    def mark_webhook_processed(self, event_id: str) -> None: ...

    def record_webhook_failure(
        self,
        *,
        event_id: str,
        event_type: str,
        livemode: bool,
        payload: dict[str, Any],
        error: str,
    ) -> object: ...

    def upsert_payment(self, contribution_id: UUID, **fields: str | None) -> object: ...

    def find_contribution_by_checkout_session(
        self, session_id: str
    ) -> Contribution | None: ...

    def find_contribution_by_payment_intent(
        self, payment_intent_id: str
    ) -> Contribution | None: ...

    def find_contribution_by_charge(self, charge_id: str) -> Contribution | None: ...

    def upsert_dispute(
        self,
        *,
        dispute_id: str,
        contribution_id: UUID | None,
        amount_cents: int,
        reason: str | None,
        status: str,
        payload: dict[str, Any],
    ) -> object: ...


class PoolRepositoryProtocol(Protocol):
    """Pool repository contract consumed by the reconciler."""

    def get_contribution(self, contribution_id: UUID) -> Contribution | None: ...

    def transition_contribution(
        self,
        contribution_id: UUID,
        *,
        to_status: ContributionStatus,
        from_status: ContributionStatus | None = None,
    ) -> bool: ...

    def add_event(
        self,
        *,
        pool_id: UUID,
        event_type: PoolEventType,
        payload: dict[str, Any],
        contribution_id: UUID | None = None,
    ) -> object: ...


class PoolEvaluatorProtocol(Protocol):
    """Threshold evaluator contract consumed by the reconciler."""

    def evaluate_pool(self, pool_id: UUID) -> PoolEvaluation: ...


@dataclass(slots=True, frozen=True)
class ReconcileResult:
    """Acknowledgement returned to the processor."""

    event_id: str
    event_type: str
    duplicate: bool


def _object_id(value: Any) -> str | None:
    """Return an id from either a bare id string or an expanded object."""

    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        identifier = value.get("id")
        return str(identifier) if identifier else None
    return None


def _parse_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class PaymentReconciler:
    """Deduplicates processor events and dispatches them by type.

    The ledger claim, the domain effects and the ``processed`` mark commit in
    one transaction. A failure rolls all of it back and records the attempt
    as ``failed`` so the processor's redelivery is processed again.
    """

    def __init__(
        self,
        *,
        payment_repository: PaymentRepositoryProtocol,
        pool_repository: PoolRepositoryProtocol,
        evaluator: PoolEvaluatorProtocol,
        payment_gateway: PaymentGateway,
        session: SessionProtocol,
    ) -> None:
        self._payment_repository = payment_repository
        self._pool_repository = pool_repository
        self._evaluator = evaluator
        self._payment_gateway = payment_gateway
        self._session = session
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            CHECKOUT_COMPLETED: self._handle_checkout_completed,
            CHARGE_REFUNDED: self._handle_charge_refunded,
            DISPUTE_CREATED: self._handle_dispute_created,
        }

    def reconcile(self, event: dict[str, Any]) -> ReconcileResult:
        """Apply one verified event, or acknowledge it as a duplicate."""

        event_id = str(event["id"])
        event_type = str(event.get("type", ""))
        livemode = bool(event.get("livemode", False))

        try:
            claim = self._payment_repository.claim_webhook_event(
                event_id=event_id,
                event_type=event_type,
                livemode=livemode,
                payload=event,
            )
            if claim == WebhookClaim.DUPLICATE:
                self._session.rollback()
                logger.info(
                    "webhook_duplicate",
                    extra={"event_id": event_id, "event_type": event_type},
                )
                return ReconcileResult(
                    event_id=event_id, event_type=event_type, duplicate=True
                )

            handler = self._handlers.get(event_type)
            if handler is not None:
                data_object = event.get("data", {}).get("object", {}) or {}
                handler(data_object)
            self._payment_repository.mark_webhook_processed(event_id)
            self._session.commit()
        except Exception as exc:
            self._session.rollback()
            logger.exception(
                "webhook_processing_failed",
                extra={"event_id": event_id, "event_type": event_type},
            )
            self._record_failure(
                event_id=event_id,
                event_type=event_type,
                livemode=livemode,
                payload=event,
                error=str(exc) or exc.__class__.__name__,
            )
            raise WebhookProcessingError(
                message=compose_error_message(
                    cause=f"Webhook event {event_id} could not be applied.",
                    action="The processor will redeliver the event.",
                ),
                details={"event_id": event_id, "event_type": event_type},
            ) from exc

        logger.info(
            "webhook_processed",
            extra={"event_id": event_id, "event_type": event_type},
        )
        return ReconcileResult(
            event_id=event_id, event_type=event_type, duplicate=False
        )

    def _handle_checkout_completed(self, session_object: dict[str, Any]) -> None:
        session_id = _object_id(session_object.get("id"))
        metadata = session_object.get("metadata") or {}
        contribution: Contribution | None = None
        contribution_id = _parse_uuid(metadata.get("contribution_id"))
        if contribution_id is not None:
            contribution = self._pool_repository.get_contribution(contribution_id)
        if contribution is None and session_id:
            contribution = (
                self._payment_repository.find_contribution_by_checkout_session(
                    session_id
                )
            )
        if contribution is None:
            logger.warning(
                "webhook_contribution_not_found",
                extra={"checkout_session_id": session_id},
            )
            return

        payment_intent_id = _object_id(session_object.get("payment_intent"))
        charge_id = None
        if payment_intent_id:
            charge_id = self._payment_gateway.retrieve_latest_charge_id(
                payment_intent_id
            )

        customer_details = session_object.get("customer_details") or {}
        email = customer_details.get("email") or session_object.get("customer_email")

        changed = self._pool_repository.transition_contribution(
            contribution.id,
            from_status=ContributionStatus.PENDING,
            to_status=ContributionStatus.SUCCEEDED,
        )
        self._payment_repository.upsert_payment(
            contribution.id,
            contributor_email=email,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            stripe_charge_id=charge_id,
        )
        if not changed:
            return

        self._pool_repository.add_event(
            pool_id=contribution.pool_id,
            contribution_id=contribution.id,
            event_type=PoolEventType.CONTRIBUTION_SUCCEEDED,
            payload={"checkout_session_id": session_id},
        )
        evaluation = self._evaluator.evaluate_pool(contribution.pool_id)
        if evaluation.status in CLOSED_POOL_STATUSES:
            # Closed pools are never swept again; refund by hand.
            logger.warning(
                "contribution_succeeded_on_closed_pool",
                extra={
                    "pool_id": str(contribution.pool_id),
                    "contribution_id": str(contribution.id),
                    "pool_status": evaluation.status.value,
                },
            )

    def _handle_charge_refunded(self, charge: dict[str, Any]) -> None:
        charge_id = _object_id(charge.get("id"))
        payment_intent_id = _object_id(charge.get("payment_intent"))

        contribution: Contribution | None = None
        if payment_intent_id:
            contribution = self._payment_repository.find_contribution_by_payment_intent(
                payment_intent_id
            )
        if contribution is None and charge_id:
            contribution = self._payment_repository.find_contribution_by_charge(
                charge_id
            )
        if contribution is None:
            logger.warning(
                "webhook_contribution_not_found",
                extra={"charge_id": charge_id, "payment_intent_id": payment_intent_id},
            )
            return

        refunds = (charge.get("refunds") or {}).get("data") or []
        refund_id = _object_id(refunds[0]) if refunds else None

        changed = self._pool_repository.transition_contribution(
            contribution.id,
            from_status=ContributionStatus.SUCCEEDED,
            to_status=ContributionStatus.REFUNDED,
        )
        self._payment_repository.upsert_payment(
            contribution.id,
            stripe_charge_id=charge_id,
            stripe_payment_intent_id=payment_intent_id,
            stripe_refund_id=refund_id,
        )
        if not changed:
            return

        self._pool_repository.add_event(
            pool_id=contribution.pool_id,
            contribution_id=contribution.id,
            event_type=PoolEventType.CONTRIBUTION_REFUNDED,
            payload={"charge_id": charge_id},
        )
        self._evaluator.evaluate_pool(contribution.pool_id)

    def _handle_dispute_created(self, dispute: dict[str, Any]) -> None:
        dispute_id = _object_id(dispute.get("id"))
        if dispute_id is None:
            msg = "Dispute event does not carry a dispute id."
            raise ValueError(msg)

        charge_id = _object_id(dispute.get("charge"))
        contribution = (
            self._payment_repository.find_contribution_by_charge(charge_id)
            if charge_id
            else None
        )
        self._payment_repository.upsert_dispute(
            dispute_id=dispute_id,
            contribution_id=contribution.id if contribution is not None else None,
            amount_cents=int(dispute.get("amount") or 0),
            reason=dispute.get("reason"),
            status=str(dispute.get("status") or "unknown"),
            payload=dispute,
        )
        if contribution is None:
            return

        self._pool_repository.add_event(
            pool_id=contribution.pool_id,
            contribution_id=contribution.id,
            event_type=PoolEventType.CHARGE_DISPUTE_CREATED,
            payload={"dispute_id": dispute_id},
        )

    def _record_failure(self, **kwargs: Any) -> None:
        try:
            self._payment_repository.record_webhook_failure(**kwargs)
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.exception(
                "webhook_failure_not_recorded",
                extra={"event_id": kwargs.get("event_id")},
            )
