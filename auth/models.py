"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores, the token
codec and the flows do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Account:
    """A registered identity.

    email is always stored normalized (trimmed, lower-cased); see
    auth.credentials.normalize_email().

    password_digest is a bcrypt hash. Its salt is embedded in the hash itself
    and changes every time the password is set, which is what makes
    outstanding password-reset tokens go stale.

    confirmed_at is None until the email confirmation flow succeeds, then an
    ISO 8601 UTC timestamp that never changes again.
    """

    email: str
    password_digest: str
    id: int | None = None
    confirmed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.confirmed_at is not None


@dataclass(frozen=True)
class Notification:
    """Payload handed to the notification channel.

    The channel owns rendering and transport; this is the whole contract.
    """

    account_email: str
    purpose: str  # TokenPurpose value
    token: str
