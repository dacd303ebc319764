"""API dependency providers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from chipin.core.settings import Settings, get_settings
from chipin.db.session import get_db_session
from chipin.infrastructure.payments.gateway import PaymentGateway
from chipin.infrastructure.payments.stripe_gateway import StripePaymentGateway
from chipin.repositories.chip_repository import ChipRepository
from chipin.repositories.payment_repository import PaymentRepository
from chipin.repositories.pool_repository import PoolRepository
from chipin.repositories.profile_repository import ProfileRepository
from chipin.services.chip_service import ChipService
from chipin.services.deadline_sweeper import ChipDeadlineSweeper, PoolDeadlineSweeper
from chipin.services.organizer_service import OrganizerService
from chipin.services.payment_reconciler import PaymentReconciler
from chipin.services.pool_service import PoolService
from chipin.services.threshold_evaluator import (
    ChipThresholdEvaluator,
    PoolThresholdEvaluator,
)


def get_payment_gateway(
    settings: Annotated[Settings, Depends(get_settings)],
) -> PaymentGateway:
    """Build the Stripe gateway from runtime settings."""

    return StripePaymentGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        webhook_tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )


def get_chip_service(
    session: Annotated[Session, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ChipService:
    """Build chip service with per-request session."""

    chip_repository = ChipRepository(session)
    return ChipService(
        chip_repository=chip_repository,
        profile_repository=ProfileRepository(session),
        evaluator=ChipThresholdEvaluator(chip_repository=chip_repository),
        session=session,
        free_open_chip_limit=settings.free_open_chip_limit,
        max_objectives_per_chip=settings.max_objectives_per_chip,
    )


def get_pool_service(
    session: Annotated[Session, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
) -> PoolService:
    """Build pool service with per-request session."""

    return PoolService(
        pool_repository=PoolRepository(session),
        profile_repository=ProfileRepository(session),
        payment_repository=PaymentRepository(session),
        payment_gateway=payment_gateway,
        session=session,
        app_url=settings.public_app_url,
        platform_fee_bps=settings.stripe_platform_fee_bps,
    )


def get_organizer_service(
    session: Annotated[Session, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
) -> OrganizerService:
    """Build organizer onboarding service with per-request session."""

    return OrganizerService(
        profile_repository=ProfileRepository(session),
        payment_gateway=payment_gateway,
        session=session,
        app_url=settings.public_app_url,
    )


def get_payment_reconciler(
    session: Annotated[Session, Depends(get_db_session)],
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
) -> PaymentReconciler:
    """Build webhook reconciler with per-request session."""

    pool_repository = PoolRepository(session)
    return PaymentReconciler(
        payment_repository=PaymentRepository(session),
        pool_repository=pool_repository,
        evaluator=PoolThresholdEvaluator(pool_repository=pool_repository),
        payment_gateway=payment_gateway,
        session=session,
    )


def get_chip_deadline_sweeper(
    session: Annotated[Session, Depends(get_db_session)],
) -> ChipDeadlineSweeper:
    """Build chip deadline sweeper."""

    return ChipDeadlineSweeper(chip_repository=ChipRepository(session), session=session)


def get_pool_deadline_sweeper(
    session: Annotated[Session, Depends(get_db_session)],
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
) -> PoolDeadlineSweeper:
    """Build pool deadline sweeper."""

    return PoolDeadlineSweeper(
        pool_repository=PoolRepository(session),
        payment_repository=PaymentRepository(session),
        payment_gateway=payment_gateway,
        session=session,
    )
