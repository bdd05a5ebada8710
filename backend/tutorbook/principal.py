"""Principal abstractions for authenticated callers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UserPrincipal:
    """Verified (user id, email) pair supplied by the identity provider."""

    user_id: str
    email: str

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def identifier(self) -> str:
        return self.email
