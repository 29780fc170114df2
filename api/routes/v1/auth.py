"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST   /sign-in                     -- password login; sets session cookie
  DELETE /session                     -- ends the session (requires auth)
  POST   /registration                -- create account, sign in, email confirmation link
  GET    /registration/confirm-email  -- consume an email_confirmation token
  POST   /password-reset              -- email a reset link (always 200)
  PUT    /password-reset              -- consume a password_reset token, set new password
  PUT    /password                    -- change password while signed in (requires auth)
  GET    /me                          -- current account (requires auth)

Handlers are thin: parse the body, call one AuthFlows method, mirror any
session change onto the cookie. Failures are AuthError subclasses raised by
the flows and rendered by the exception handlers in api/main.py.

Security:
  Cache-Control: no-store on every response that carries or clears a session.
  POST /password-reset answers identically whether or not the email exists.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccountResponse,
    MessageResponse,
    PasswordResetRequest,
    PasswordResetUpdate,
    PasswordUpdate,
    RegistrationRequest,
    SignInRequest,
)
from auth.dependencies import get_current_account, get_flows, get_session_context, write_session_cookie
from auth.flows import AuthFlows
from auth.models import Account
from auth.sessions import SessionContext

# Auth policy:
# - POST   /sign-in:                    public (re-entry over a live session rotates it)
# - DELETE /session:                    requires auth
# - POST   /registration:               requires signed-out (enforced in AuthFlows)
# - GET    /registration/confirm-email: public -- the token is the credential
# - POST   /password-reset:             requires signed-out (enforced in AuthFlows)
# - PUT    /password-reset:             requires signed-out (enforced in AuthFlows)
# - PUT    /password:                   requires auth
# - GET    /me:                         requires auth (get_current_account)
router = APIRouter()


def _message(request: Request, message: str, context: SessionContext | None = None) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=MessageResponse(message=message).model_dump())
    if context is not None:
        write_session_cookie(resp, context, request.app.state.settings)
        resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post("/sign-in", response_model=MessageResponse)
def sign_in(
    request: Request,
    body: SignInRequest,
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> JSONResponse:
    """Authenticate with email and password; start a new session.

    Unknown email and wrong password produce the same 422 body.
    """
    flows.sign_in(context, body.email, body.password)
    return _message(request, "Logged in successfully", context)


@router.delete("/session", response_model=MessageResponse, dependencies=[Depends(get_current_account)])
def sign_out(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> JSONResponse:
    flows.sign_out(context)
    return _message(request, "Logged out successfully", context)


@router.get("/me", response_model=AccountResponse)
def me(account: Account = Depends(get_current_account)) -> AccountResponse:
    """Return the account bound to the current session."""
    return AccountResponse.from_account(account)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/registration", response_model=MessageResponse)
def register(
    request: Request,
    body: RegistrationRequest,
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> JSONResponse:
    """Create an account and sign it in straight away.

    The account starts unconfirmed; confirmation is not required to use it.
    """
    flows.register(context, body.email, body.password, body.password_confirmation)
    return _message(
        request,
        "Registration successful! Please check your email to confirm your account",
        context,
    )


@router.get("/registration/confirm-email", response_model=MessageResponse)
def confirm_email(request: Request, token: str = "", flows: AuthFlows = Depends(get_flows)) -> JSONResponse:
    flows.confirm_email(token)
    return _message(request, "Your email has been successfully confirmed. Please proceed to log in")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


@router.post("/password-reset", response_model=MessageResponse)
def request_password_reset(
    request: Request,
    body: PasswordResetRequest,
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> JSONResponse:
    flows.request_password_reset(context, body.email)
    return _message(request, "Check your email to reset your password")


@router.put("/password-reset", response_model=MessageResponse)
def reset_password(
    request: Request,
    body: PasswordResetUpdate,
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> JSONResponse:
    flows.reset_password(context, body.token, body.password, body.password_confirmation)
    return _message(request, "Password has been reset successfully, Please login")


@router.put("/password", response_model=MessageResponse, dependencies=[Depends(get_current_account)])
def change_password(
    request: Request,
    body: PasswordUpdate,
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> JSONResponse:
    flows.change_password(context, body.password, body.password_confirmation, body.password_challenge)
    return _message(request, "Your password has been updated successfully")
