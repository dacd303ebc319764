"""Schemas for scheduler and processor callback endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class SweepResponse(BaseModel):
    """Counters reported by one deadline sweep."""

    checked: int
    transitioned: int


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the payment processor."""

    received: bool = True
    duplicate: bool | None = None
