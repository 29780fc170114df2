"""
API request and response models for Lodgekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field rules here are limited to shape and size. Content rules (email format,
password length, confirmation match) live in auth/credentials.py so every
caller gets them, and so a request reports all of them at once.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account

# Upper bound on any credential field; keeps bcrypt input and logs sane.
_MAX = 255


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignInRequest(BaseModel):
    email: str = Field(max_length=_MAX)
    password: str = Field(max_length=_MAX)


class RegistrationRequest(BaseModel):
    email: str = Field(max_length=_MAX)
    password: str = Field(max_length=_MAX)
    password_confirmation: str = Field(max_length=_MAX)


class PasswordResetRequest(BaseModel):
    """Body of POST /password-reset. Always acknowledged the same way."""

    email: str = Field(max_length=_MAX)


class PasswordResetUpdate(BaseModel):
    token: str = Field(max_length=2048)
    password: str = Field(max_length=_MAX)
    password_confirmation: str = Field(max_length=_MAX)


class PasswordUpdate(BaseModel):
    """Body of PUT /password.

    password_challenge defaults to "" so omitting it fails the challenge
    rather than skipping it.
    """

    password: str = Field(max_length=_MAX)
    password_confirmation: str = Field(max_length=_MAX)
    password_challenge: str = Field(default="", max_length=_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx response."""

    errors: list[str]


class AccountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    confirmed: bool
    confirmed_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            confirmed=account.confirmed,
            confirmed_at=account.confirmed_at,
            created_at=account.created_at,
        )


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
