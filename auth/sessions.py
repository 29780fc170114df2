"""
auth/sessions.py -- Server-side sessions bound to a request-scoped context.

A SessionContext is built once per request from the incoming cookie and passed
explicitly to every flow that needs the caller's identity. There is no
process-wide "current user": the context caches its own resolution, so the
account lookup happens at most once per request.

Session fixation: login() always mints a new id and drops the old binding;
logout() drops the binding and clears the id. The anonymous id a client
arrived with is never promoted to an authenticated one.

The HTTP layer reads context.changed after the flow runs and rewrites or
deletes the cookie accordingly (see auth/dependencies.py).
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field

from auth.credentials import CredentialStore
from auth.models import Account
from auth.store import AuthStore

logger = logging.getLogger("lodgekeeper.auth")


@dataclass
class SessionContext:
    """Per-request view of the caller's session.

    session_id is the raw cookie value (None for a fresh client).
    """

    session_id: str | None = None
    changed: bool = False
    _account: Account | None = field(default=None, repr=False)
    _resolved: bool = field(default=False, repr=False)


class SessionManager:
    """Bind and unbind an authenticated account to a SessionContext."""

    def __init__(self, store: AuthStore, credentials: CredentialStore) -> None:
        self._store = store
        self._credentials = credentials

    def login(self, context: SessionContext, account: Account) -> None:
        """Make account the principal of context under a freshly minted id."""
        if context.session_id:
            self._store.delete_session(context.session_id)
        session_id = secrets.token_urlsafe(32)
        self._store.create_session(session_id, account.id)
        context.session_id = session_id
        context.changed = True
        context._account = account
        context._resolved = True
        logger.info("Session started for account %d", account.id)

    def current_account(self, context: SessionContext) -> Account | None:
        """Return the account bound to context, resolving it at most once."""
        if not context._resolved:
            context._account = self._resolve(context.session_id)
            context._resolved = True
        return context._account

    def logout(self, context: SessionContext) -> None:
        if context.session_id:
            self._store.delete_session(context.session_id)
        if context._account is not None:
            logger.info("Session ended for account %d", context._account.id)
        context.session_id = None
        context.changed = True
        context._account = None
        context._resolved = True

    def _resolve(self, session_id: str | None) -> Account | None:
        if not session_id:
            return None
        account_id = self._store.get_session_account_id(session_id)
        if account_id is None:
            return None
        return self._credentials.get(account_id)
