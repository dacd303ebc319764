"""Routable public codes for chips and pools."""

from __future__ import annotations

import secrets
import string

PUBLIC_CODE_LENGTH = 10
PUBLIC_CODE_ALPHABET = string.ascii_lowercase + string.digits


def generate_public_code() -> str:
    """Return a random lowercase alphanumeric code that is hard to guess."""

    return "".join(
        secrets.choice(PUBLIC_CODE_ALPHABET) for _ in range(PUBLIC_CODE_LENGTH)
    )
