"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_session_context() builds the request-scoped SessionContext from the
session cookie. FastAPI caches a dependency's value for the duration of one
request, so every handler parameter and sub-dependency that asks for the
context receives the same object -- and the account behind it is looked up at
most once.

get_current_account() wraps it and raises Unauthenticated (401) when there is
no live session.

write_session_cookie() is the response-side counterpart: after a flow has
rotated or cleared the session, it writes or deletes the cookie.

Layer rule: auth/dependencies.py may import from fastapi (for Depends/Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request, Response

from auth.errors import Unauthenticated
from auth.flows import AuthFlows
from auth.models import Account
from auth.sessions import SessionContext
from core.config import Settings


def get_flows(request: Request) -> AuthFlows:
    return request.app.state.auth


def get_session_context(request: Request) -> SessionContext:
    """Return the SessionContext for this request, built from the cookie."""
    settings: Settings = request.app.state.settings
    return SessionContext(session_id=request.cookies.get(settings.session_cookie_name) or None)


def get_current_account(
    context: SessionContext = Depends(get_session_context),
    flows: AuthFlows = Depends(get_flows),
) -> Account:
    """Require authentication. Raises Unauthenticated if there is no valid session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    account = flows.current_account(context)
    if account is None:
        raise Unauthenticated()
    return account


def write_session_cookie(response: Response, context: SessionContext, settings: Settings) -> None:
    """Mirror a rotated or cleared session onto the response cookie.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    """
    if not context.changed:
        return
    if context.session_id is None:
        response.delete_cookie(
            settings.session_cookie_name,
            httponly=True,
            samesite="lax",
            secure=settings.secure_cookies,
        )
        return
    response.set_cookie(
        settings.session_cookie_name,
        value=context.session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_max_age_seconds,
    )
