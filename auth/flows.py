"""
auth/flows.py -- User-facing authentication flows.

AuthFlows composes CredentialStore, TokenCodec, SessionManager and Mailer.
It is the only component that sends notifications.

Flow guards:
  register, request_password_reset, reset_password  -> caller must be signed out
  sign_out, change_password                          -> caller must be signed in
  sign_in, confirm_email                             -> no guard

sign_in is re-enterable: signing in over an existing session rotates the
session id again. Email confirmation is not a login gate; unconfirmed accounts
can sign in.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from auth.credentials import CredentialStore
from auth.errors import AlreadyAuthenticated, TokenError, TokenErrorKind, Unauthenticated, ValidationError
from auth.models import Account
from auth.notifications import Mailer
from auth.sessions import SessionContext, SessionManager
from auth.tokens import TokenCodec, TokenPurpose

logger = logging.getLogger("lodgekeeper.auth")

INVALID_CREDENTIALS = "Invalid email or password"


class AuthFlows:
    """Orchestrates sign-in, registration, password reset and email confirmation."""

    def __init__(
        self,
        credentials: CredentialStore,
        codec: TokenCodec,
        sessions: SessionManager,
        mailer: Mailer,
        expiry: dict[TokenPurpose, timedelta],
    ) -> None:
        missing = set(TokenPurpose) - set(expiry)
        if missing:
            raise ValueError(f"No expiry configured for {sorted(p.value for p in missing)}")
        self.credentials = credentials
        self.codec = codec
        self.sessions = sessions
        self.mailer = mailer
        self._expiry = dict(expiry)

    # ------------------------------------------------------------------
    # Session flows
    # ------------------------------------------------------------------

    def current_account(self, context: SessionContext) -> Account | None:
        return self.sessions.current_account(context)

    def require_account(self, context: SessionContext) -> Account:
        account = self.sessions.current_account(context)
        if account is None:
            raise Unauthenticated()
        return account

    def require_signed_out(self, context: SessionContext) -> None:
        if self.sessions.current_account(context) is not None:
            raise AlreadyAuthenticated()

    def sign_in(self, context: SessionContext, email: str, password: str) -> Account:
        account = self.credentials.authenticate(email, password)
        if account is None:
            logger.info("Sign-in failed")
            raise ValidationError([INVALID_CREDENTIALS])
        self.sessions.login(context, account)
        return account

    def sign_out(self, context: SessionContext) -> None:
        self.require_account(context)
        self.sessions.logout(context)

    # ------------------------------------------------------------------
    # Registration and confirmation
    # ------------------------------------------------------------------

    def register(self, context: SessionContext, email: str, password: str, password_confirmation: str) -> Account:
        """Create the account, sign it in, and email a confirmation token."""
        self.require_signed_out(context)
        account = self.credentials.register(email, password, password_confirmation)
        self.sessions.login(context, account)
        self._send_token(account, TokenPurpose.EMAIL_CONFIRMATION)
        return account

    def confirm_email(self, token: str) -> Account:
        """Stamp confirmed_at for the token's account. Works exactly once per token."""
        account_id = self._verify(token, TokenPurpose.EMAIL_CONFIRMATION)
        if not self.credentials.confirm(account_id):
            # Another request confirmed between verify() and the update.
            logger.info("Token rejected (stale) for %s", TokenPurpose.EMAIL_CONFIRMATION.value)
            raise TokenError(TokenErrorKind.STALE)
        logger.info("Email confirmed for account %d", account_id)
        return self.credentials.get(account_id)

    # ------------------------------------------------------------------
    # Password flows
    # ------------------------------------------------------------------

    def request_password_reset(self, context: SessionContext, email: str) -> None:
        """Email a reset token if the account exists.

        Returns None either way; the caller renders the same acknowledgement
        whether or not anything was sent.
        """
        self.require_signed_out(context)
        account = self.credentials.find_by_email(email)
        if account is None:
            return
        self._send_token(account, TokenPurpose.PASSWORD_RESET)

    def reset_password(
        self,
        context: SessionContext,
        token: str,
        password: str,
        password_confirmation: str,
    ) -> Account:
        self.require_signed_out(context)
        account_id = self._verify(token, TokenPurpose.PASSWORD_RESET)
        account = self.credentials.get(account_id)
        if account is None:
            raise TokenError(TokenErrorKind.STALE)
        return self.credentials.set_password(account, password, password_confirmation)

    def change_password(
        self,
        context: SessionContext,
        password: str,
        password_confirmation: str,
        password_challenge: str,
    ) -> Account:
        account = self.require_account(context)
        return self.credentials.change_password(account, password, password_confirmation, password_challenge)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_token(self, account: Account, purpose: TokenPurpose) -> str:
        return self.codec.issue(
            account.id,
            purpose,
            self._expiry[purpose],
            self.codec.fingerprint(purpose, account),
        )

    def _send_token(self, account: Account, purpose: TokenPurpose) -> None:
        self.mailer.send(purpose, account, self.issue_token(account, purpose))

    def _verify(self, token: str, purpose: TokenPurpose) -> int:
        try:
            return self.codec.verify(token, purpose, self._live_fingerprint(purpose))
        except TokenError as exc:
            logger.info("Token rejected (%s) for %s", exc.kind.value, purpose.value)
            raise

    def _live_fingerprint(self, purpose: TokenPurpose) -> Callable[[int], str | None]:
        def current(account_id: int) -> str | None:
            account = self.credentials.get(account_id)
            if account is None:
                return None
            return self.codec.fingerprint(purpose, account)

        return current
