"""
auth/errors.py -- Exception taxonomy for the auth subsystem.

Every flow failure is one of these. The HTTP layer (api/main.py) maps them to
status codes and the {"errors": [...]} envelope; nothing below api/ knows
about HTTP.

  ValidationError       field-level problems, carries human-readable messages (422)
  TokenError            purpose token rejected; kind is for logs only (401)
  Unauthenticated       the flow needs a session and there is none (401)
  AlreadyAuthenticated  the flow needs a signed-out caller (401)

Layer rule: stdlib only.
"""

from __future__ import annotations

from enum import Enum


class AuthError(Exception):
    """Base class for all auth flow failures."""

    def __init__(self, messages: list[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = messages


class ValidationError(AuthError):
    """One or more input rules failed. All failing rules are reported together."""


class TokenErrorKind(str, Enum):
    TAMPERED = "tampered"
    WRONG_PURPOSE = "wrong_purpose"
    EXPIRED = "expired"
    STALE = "stale"


class TokenError(AuthError):
    """A purpose token failed verification.

    Callers never see the kind -- every variant renders as the same message so
    a client cannot probe which check failed.
    """

    PUBLIC_MESSAGE = "Invalid user token, Please try again"

    def __init__(self, kind: TokenErrorKind) -> None:
        super().__init__([self.PUBLIC_MESSAGE])
        self.kind = kind

    def __repr__(self) -> str:
        return f"TokenError({self.kind.value})"


class Unauthenticated(AuthError):
    def __init__(self) -> None:
        super().__init__(["You must be logged in to do that"])


class AlreadyAuthenticated(AuthError):
    def __init__(self) -> None:
        super().__init__(["You must be logged out to do that"])
