"""Profile persistence operations."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chipin.db.models.profile import Profile


class ProfileRepository:
    """Repository for local profile mirrors of identity-provider users."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: str) -> Profile | None:
        return self._session.get(Profile, user_id)

    def lock(self, user_id: str) -> Profile | None:
        """Take a row lock on one profile for the rest of the transaction.

        Serializes per-user checks such as the open chip limit.
        """

        statement = (
            select(Profile)
            .where(Profile.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalar(statement)

    def ensure(self, *, user_id: str, full_name: str | None) -> Profile:
        """Return the profile for an identity, creating it on first sight."""

        profile = self.get(user_id)
        if profile is not None:
            if full_name and not profile.full_name:
                profile.full_name = full_name
                self._session.flush()
            return profile

        with self._session.begin_nested():
            now = datetime.now(tz=UTC)
            profile = Profile(
                id=user_id,
                full_name=full_name,
                created_at=now,
                updated_at=now,
            )
            self._session.add(profile)
            try:
                self._session.flush()
                return profile
            except IntegrityError:
                pass

        existing = self.get(user_id)
        if existing is None:
            msg = "Failed to load profile after idempotent insert attempt."
            raise RuntimeError(msg)
        return existing

    def update_payout_state(
        self,
        profile: Profile,
        *,
        stripe_account_id: str,
        onboarding_complete: bool,
        charges_enabled: bool,
        payouts_enabled: bool,
    ) -> Profile:
        """Mirror the processor's view of the connected payout account."""

        profile.stripe_account_id = stripe_account_id
        profile.stripe_onboarding_complete = onboarding_complete
        profile.charges_enabled = charges_enabled
        profile.payouts_enabled = payouts_enabled
        profile.updated_at = datetime.now(tz=UTC)
        self._session.flush()
        return profile
