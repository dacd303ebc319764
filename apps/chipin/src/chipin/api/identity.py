"""Caller identity resolved from identity-provider proxy headers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Header

from chipin.domain.identity import Identity


def get_optional_identity(
    x_user_id: Annotated[str | None, Header(max_length=64)] = None,
    x_user_name: Annotated[str | None, Header(max_length=120)] = None,
    x_user_email: Annotated[str | None, Header(max_length=320)] = None,
) -> Identity | None:
    """Return the signed-in caller, or ``None`` for anonymous requests."""

    user_id = (x_user_id or "").strip()
    if not user_id:
        return None
    return Identity(
        user_id=user_id,
        name=(x_user_name or "").strip() or None,
        email=(x_user_email or "").strip() or None,
    )
