"""Payment processor webhook route."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from chipin.api.dependencies import get_payment_gateway, get_payment_reconciler
from chipin.api.schemas.jobs import WebhookAckResponse
from chipin.infrastructure.payments.gateway import PaymentGateway
from chipin.services.payment_reconciler import PaymentReconciler

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookAckResponse,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Missing or invalid signature"},
        500: {"description": "Event could not be applied; retry expected"},
    },
)
async def receive_stripe_webhook(
    request: Request,
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    reconciler: Annotated[PaymentReconciler, Depends(get_payment_reconciler)],
    stripe_signature: Annotated[str | None, Header()] = None,
) -> WebhookAckResponse:
    """Verify the raw body signature, then apply the event exactly once."""

    payload = await request.body()
    event = payment_gateway.verify_webhook(payload, stripe_signature or "")
    result = await run_in_threadpool(reconciler.reconcile, event)
    if result.duplicate:
        return WebhookAckResponse(duplicate=True)
    return WebhookAckResponse()
