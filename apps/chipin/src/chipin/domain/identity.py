"""Caller identity as supplied by the external identity provider."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Identity:
    """Signed-in user resolved upstream; ``None`` stands for anonymous callers."""

    user_id: str
    name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        """Best human-readable name for seeding participant rows."""

        if self.name and self.name.strip():
            return self.name.strip()
        if self.email and "@" in self.email:
            return self.email.split("@", 1)[0]
        return "Organizer"
