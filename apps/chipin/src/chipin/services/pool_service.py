"""Pool service layer: creation, checkout start and cancellation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.pool import Pool, PoolStatus
from chipin.db.models.pool_event import PoolEventType
from chipin.db.models.profile import Profile
from chipin.domain.clock import ensure_utc, utc_now
from chipin.domain.errors import (
    AuthenticationRequiredError,
    ForbiddenActionError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    PayoutsNotConnectedError,
    PoolNotFoundError,
    compose_error_message,
)
from chipin.domain.identity import Identity
from chipin.domain.money import platform_fee_cents, to_cents
from chipin.domain.status_machine import POOL_STATUS_MACHINE
from chipin.infrastructure.payments.gateway import CheckoutRequest, PaymentGateway

logger = logging.getLogger(__name__)

POOL_TITLE_MAX_LENGTH = 100
RESTAURANT_NAME_MAX_LENGTH = 100
CONTRIBUTOR_NAME_MAX_LENGTH = 80
TIP_PERCENT_MAX = 35
DEADLINE_MINUTES_MIN = 5
DEADLINE_MINUTES_MAX = 180
MAX_CONTRIBUTION = Decimal("500.00")
VISIBLE_CONTRIBUTION_STATUSES = frozenset(
    {ContributionStatus.SUCCEEDED, ContributionStatus.REFUNDED}
)


class SessionProtocol(Protocol):
    """Subset of SQLAlchemy session APIs used by pool service."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def refresh(self, instance: object) -> None: ...


class ProfileRepositoryProtocol(Protocol):
    """Profile repository contract consumed by pool service."""

    def get(self, user_id: str) -> Profile | None: ...

    def ensure(self, *, user_id: str, full_name: str | None) -> Profile: ...


class PoolRepositoryProtocol(Protocol):
    """Pool repository contract consumed by pool service."""

    def get_by_public_code(self, public_code: str) -> Pool | None: ...

    def list_for_organizer(
        self, organizer_id: str, *, limit: int = 50
    ) -> list[Pool]: ...

    def add_pool(
        self,
        *,
        organizer_id: str,
        title: str,
        restaurant_name: str | None,
        goal_amount_cents: int | None,
        tip_percent: int,
        deadline_at: datetime,
    ) -> Pool: ...

    def transition_status(
        self,
        pool_id: UUID,
        *,
        to_status: PoolStatus,
        from_status: PoolStatus | None = None,
    ) -> bool: ...

    def add_contribution(
        self,
        *,
        pool_id: UUID,
        contributor_name: str,
        amount_cents: int,
        platform_fee_cents: int,
    ) -> Contribution: ...

    def list_contributions(
        self,
        pool_id: UUID,
        *,
        statuses: frozenset[ContributionStatus] | None = None,
    ) -> list[Contribution]: ...

    def add_event(
        self,
        *,
        pool_id: UUID,
        event_type: PoolEventType,
        payload: dict[str, Any],
        contribution_id: UUID | None = None,
    ) -> object: ...


class PaymentCorrelationRepositoryProtocol(Protocol):
    """Correlation repository contract consumed by pool service."""

    def upsert_payment(self, contribution_id: UUID, **fields: str | None) -> object: ...


@dataclass(slots=True, frozen=True)
class CreatePoolInput:
    """Input model for pool creation."""

    title: str
    deadline_minutes: int
    restaurant_name: str | None = None
    goal_amount: Decimal | None = None
    tip_percent: int = 0


@dataclass(slots=True, frozen=True)
class StartCheckoutInput:
    """Input model for starting a contributor checkout."""

    public_code: str
    contributor_name: str
    amount: Decimal


@dataclass(slots=True, frozen=True)
class PoolDetails:
    """Pool with the contributions visible on its public page."""

    pool: Pool
    contributions: list[Contribution]


@dataclass(slots=True, frozen=True)
class CheckoutRedirect:
    """Checkout was created; send the contributor to the processor."""

    url: str
    contribution_id: UUID


@dataclass(slots=True, frozen=True)
class PoolUnavailable:
    """The pool cannot take contributions right now."""

    reason: str
    pool_status: PoolStatus | None = None


CheckoutOutcome = CheckoutRedirect | PoolUnavailable


def statement_descriptor_suffix(title: str) -> str:
    """Derive a card statement suffix from a pool title."""

    cleaned = re.sub(r"[^a-zA-Z0-9 ]", "", title)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:16].strip().upper() or "CHIPIN"


class PoolService:
    """Coordinates pool use cases."""

    def __init__(
        self,
        *,
        pool_repository: PoolRepositoryProtocol,
        profile_repository: ProfileRepositoryProtocol,
        payment_repository: PaymentCorrelationRepositoryProtocol,
        payment_gateway: PaymentGateway,
        session: SessionProtocol,
        app_url: str,
        platform_fee_bps: int,
    ) -> None:
        self._pool_repository = pool_repository
        self._profile_repository = profile_repository
        self._payment_repository = payment_repository
        self._payment_gateway = payment_gateway
        self._session = session
        self._app_url = app_url.rstrip("/")
        self._platform_fee_bps = platform_fee_bps

    def create_pool(self, identity: Identity | None, payload: CreatePoolInput) -> Pool:
        """Create an active pool for an organizer with connected payouts."""

        if identity is None:
            raise AuthenticationRequiredError()

        title = payload.title.strip()
        if not title or len(title) > POOL_TITLE_MAX_LENGTH:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=f"title must have 1 to {POOL_TITLE_MAX_LENGTH} characters.",
                    action="Adjust the pool title and retry.",
                )
            )
        restaurant_name = (payload.restaurant_name or "").strip() or None
        if restaurant_name and len(restaurant_name) > RESTAURANT_NAME_MAX_LENGTH:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        "restaurant_name must have at most "
                        f"{RESTAURANT_NAME_MAX_LENGTH} characters."
                    ),
                    action="Shorten the restaurant name and retry.",
                )
            )
        if not DEADLINE_MINUTES_MIN <= payload.deadline_minutes <= DEADLINE_MINUTES_MAX:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        f"deadline_minutes must be between {DEADLINE_MINUTES_MIN} "
                        f"and {DEADLINE_MINUTES_MAX}."
                    ),
                    action="Pick a deadline inside the allowed window.",
                )
            )
        if not 0 <= payload.tip_percent <= TIP_PERCENT_MAX:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=f"tip_percent must be between 0 and {TIP_PERCENT_MAX}.",
                    action="Adjust the tip percentage and retry.",
                )
            )
        goal_amount_cents: int | None = None
        if payload.goal_amount is not None:
            if payload.goal_amount < 0:
                raise InvalidRequestError(
                    message=compose_error_message(
                        cause="goal_amount cannot be negative.",
                        action="Use zero for no goal or a positive amount.",
                    )
                )
            goal_amount_cents = to_cents(payload.goal_amount) or None

        try:
            profile = self._profile_repository.ensure(
                user_id=identity.user_id, full_name=identity.name
            )
            if not profile.payouts_connected:
                raise PayoutsNotConnectedError()

            pool = self._pool_repository.add_pool(
                organizer_id=identity.user_id,
                title=title,
                restaurant_name=restaurant_name,
                goal_amount_cents=goal_amount_cents,
                tip_percent=payload.tip_percent,
                deadline_at=utc_now() + timedelta(minutes=payload.deadline_minutes),
            )
            self._pool_repository.add_event(
                pool_id=pool.id,
                event_type=PoolEventType.POOL_CREATED,
                payload={"by": identity.user_id},
            )
            self._session.commit()
            self._session.refresh(pool)
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "pool_created",
            extra={"pool_id": str(pool.id), "organizer_id": identity.user_id},
        )
        return pool

    def list_my_pools(self, identity: Identity | None) -> list[Pool]:
        if identity is None:
            raise AuthenticationRequiredError()
        return self._pool_repository.list_for_organizer(identity.user_id)

    def get_pool(self, public_code: str) -> PoolDetails:
        pool = self._get_pool_or_raise(public_code)
        return PoolDetails(
            pool=pool,
            contributions=self._pool_repository.list_contributions(
                pool.id, statuses=VISIBLE_CONTRIBUTION_STATUSES
            ),
        )

    def start_checkout(self, payload: StartCheckoutInput) -> CheckoutOutcome:
        """Record a pending contribution and open a hosted checkout for it.

        Expected refusals come back as ``PoolUnavailable``; exceptions are
        reserved for invalid input and processor failures.
        """

        contributor_name = payload.contributor_name.strip()
        if not contributor_name or len(contributor_name) > CONTRIBUTOR_NAME_MAX_LENGTH:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        "contributor_name must have 1 to "
                        f"{CONTRIBUTOR_NAME_MAX_LENGTH} characters."
                    ),
                    action="Enter the name shown to the organizer.",
                )
            )
        if payload.amount <= 0 or payload.amount > MAX_CONTRIBUTION:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        "amount must be greater than 0 and at most "
                        f"{MAX_CONTRIBUTION}."
                    ),
                    action="Adjust the contribution amount and retry.",
                )
            )

        if not self._payment_gateway.is_configured():
            return PoolUnavailable(reason="payments_unavailable")

        pool = self._get_pool_or_raise(payload.public_code)
        if pool.status != PoolStatus.ACTIVE:
            return PoolUnavailable(reason="pool_closed", pool_status=pool.status)
        if ensure_utc(pool.deadline_at) <= utc_now():
            return PoolUnavailable(reason="deadline_passed", pool_status=pool.status)
        organizer = self._profile_repository.get(pool.organizer_id)
        if (
            organizer is None
            or not organizer.payouts_connected
            or organizer.stripe_account_id is None
        ):
            return PoolUnavailable(
                reason="organizer_not_connected", pool_status=pool.status
            )
        destination_account_id = organizer.stripe_account_id

        amount_cents = to_cents(payload.amount)
        try:
            contribution = self._pool_repository.add_contribution(
                pool_id=pool.id,
                contributor_name=contributor_name,
                amount_cents=amount_cents,
                platform_fee_cents=platform_fee_cents(
                    amount_cents, self._platform_fee_bps
                ),
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        metadata = {
            "pool_id": str(pool.id),
            "pool_public_code": pool.public_code,
            "contribution_id": str(contribution.id),
        }
        checkout = self._payment_gateway.create_checkout_session(
            CheckoutRequest(
                amount_cents=amount_cents,
                application_fee_cents=contribution.platform_fee_cents,
                destination_account_id=destination_account_id,
                product_name=f"ChipIn: {pool.title}",
                product_description=(
                    pool.restaurant_name or "Shared food pool contribution"
                ),
                statement_descriptor_suffix=statement_descriptor_suffix(pool.title),
                success_url=(
                    f"{self._app_url}/join/{pool.public_code}/success"
                    "?session_id={CHECKOUT_SESSION_ID}"
                ),
                cancel_url=f"{self._app_url}/join/{pool.public_code}",
                metadata=metadata,
            )
        )

        try:
            self._payment_repository.upsert_payment(
                contribution.id,
                stripe_checkout_session_id=checkout.session_id,
                stripe_destination_account_id=destination_account_id,
            )
            self._pool_repository.add_event(
                pool_id=pool.id,
                contribution_id=contribution.id,
                event_type=PoolEventType.CHECKOUT_SESSION_CREATED,
                payload={"session_id": checkout.session_id},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        if not checkout.url:
            msg = "Checkout session did not include a redirect URL."
            raise RuntimeError(msg)

        logger.info(
            "checkout_session_created",
            extra={
                "pool_id": str(pool.id),
                "contribution_id": str(contribution.id),
                "amount_cents": amount_cents,
            },
        )
        return CheckoutRedirect(url=checkout.url, contribution_id=contribution.id)

    def cancel_pool(self, identity: Identity | None, public_code: str) -> Pool:
        """Organizer cancels an active pool."""

        if identity is None:
            raise AuthenticationRequiredError()
        pool = self._get_pool_or_raise(public_code)
        if pool.organizer_id != identity.user_id:
            raise ForbiddenActionError(
                message=compose_error_message(
                    cause="Only the pool organizer can cancel it.",
                    action="Ask the organizer to cancel the pool.",
                )
            )
        if not POOL_STATUS_MACHINE.can_transition(pool.status, PoolStatus.CANCELED):
            raise InvalidStatusTransitionError(
                details={
                    "current_status": pool.status.value,
                    "requested_status": PoolStatus.CANCELED.value,
                }
            )

        try:
            changed = self._pool_repository.transition_status(
                pool.id,
                from_status=PoolStatus.ACTIVE,
                to_status=PoolStatus.CANCELED,
            )
            if changed:
                self._pool_repository.add_event(
                    pool_id=pool.id,
                    event_type=PoolEventType.POOL_CANCELED,
                    payload={"by": identity.user_id},
                )
            self._session.commit()
            self._session.refresh(pool)
        except Exception:
            self._session.rollback()
            raise

        if changed:
            logger.info(
                "pool_canceled",
                extra={"pool_id": str(pool.id), "organizer_id": identity.user_id},
            )
        return pool

    def _get_pool_or_raise(self, public_code: str) -> Pool:
        pool = self._pool_repository.get_by_public_code(public_code.strip())
        if pool is None:
            raise PoolNotFoundError(details={"public_code": public_code})
        return pool
