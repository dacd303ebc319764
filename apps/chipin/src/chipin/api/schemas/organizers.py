"""Schemas for organizer payout onboarding."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class OnboardingResponse(BaseModel):
    """Where to send the organizer next, and why when onboarding failed."""

    outcome: Literal["redirect", "failed"]
    url: str
    reason: str | None = None
