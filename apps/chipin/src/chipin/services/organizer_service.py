"""Organizer payout onboarding use case."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from chipin.db.models.profile import Profile
from chipin.domain.errors import AuthenticationRequiredError, PaymentProviderError
from chipin.domain.identity import Identity
from chipin.infrastructure.payments.gateway import PaymentGateway

logger = logging.getLogger(__name__)


class SessionProtocol(Protocol):
    """Subset of SQLAlchemy session APIs used by organizer service."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class ProfileRepositoryProtocol(Protocol):
    """Profile repository contract consumed by organizer service."""

    def ensure(self, *, user_id: str, full_name: str | None) -> Profile: ...

    def update_payout_state(
        self,
        profile: Profile,
        *,
        stripe_account_id: str,
        onboarding_complete: bool,
        charges_enabled: bool,
        payouts_enabled: bool,
    ) -> Profile: ...


@dataclass(slots=True, frozen=True)
class OnboardingRedirect:
    """Onboarding link was created; send the organizer there."""

    url: str


@dataclass(slots=True, frozen=True)
class OnboardingFailed:
    """Onboarding could not start; ``reason`` is a stable failure code."""

    reason: str


OnboardingOutcome = OnboardingRedirect | OnboardingFailed


class OrganizerService:
    """Connects organizers to a payout account."""

    def __init__(
        self,
        *,
        profile_repository: ProfileRepositoryProtocol,
        payment_gateway: PaymentGateway,
        session: SessionProtocol,
        app_url: str,
    ) -> None:
        self._profile_repository = profile_repository
        self._payment_gateway = payment_gateway
        self._session = session
        self._app_url = app_url.rstrip("/")

    def start_onboarding(self, identity: Identity | None) -> OnboardingOutcome:
        """Create the payout account when missing and return an onboarding link.

        The stored payout flags are refreshed from the processor on every call,
        so returning from onboarding and retrying is enough to unlock pools.
        """

        if identity is None:
            raise AuthenticationRequiredError()
        if not self._payment_gateway.is_configured():
            return OnboardingFailed(reason="stripe-not-configured")

        try:
            profile = self._profile_repository.ensure(
                user_id=identity.user_id, full_name=identity.name
            )
            if profile.stripe_account_id is None:
                account = self._payment_gateway.create_connected_account(
                    email=identity.email, user_id=identity.user_id
                )
            else:
                account = self._payment_gateway.retrieve_account(
                    profile.stripe_account_id
                )
            self._profile_repository.update_payout_state(
                profile,
                stripe_account_id=account.account_id,
                onboarding_complete=account.details_submitted,
                charges_enabled=account.charges_enabled,
                payouts_enabled=account.payouts_enabled,
            )
            self._session.commit()
        except PaymentProviderError as exc:
            self._session.rollback()
            reason = str((exc.details or {}).get("reason") or "stripe-api")
            logger.warning(
                "organizer_onboarding_failed",
                extra={"user_id": identity.user_id, "reason": reason},
            )
            return OnboardingFailed(reason=reason)
        except Exception:
            self._session.rollback()
            raise

        try:
            url = self._payment_gateway.create_onboarding_link(
                account_id=account.account_id,
                refresh_url=f"{self._app_url}/onboarding/stripe",
                return_url=f"{self._app_url}/dashboard?stripe=connected",
            )
        except PaymentProviderError as exc:
            reason = str((exc.details or {}).get("reason") or "stripe-api")
            logger.warning(
                "organizer_onboarding_failed",
                extra={"user_id": identity.user_id, "reason": reason},
            )
            return OnboardingFailed(reason=reason)

        logger.info(
            "organizer_onboarding_started",
            extra={
                "user_id": identity.user_id,
                "account_id": account.account_id,
                "payouts_connected": account.charges_enabled
                and account.payouts_enabled,
            },
        )
        return OnboardingRedirect(url=url)
