"""
auth/credentials.py -- Account credentials: registration, login check, password changes.

CredentialStore is the only component that reads or writes password material.
Every rule violation is collected into a single ValidationError so a client
gets the full list of problems in one round trip.

Security:
  authenticate() runs bcrypt whether or not the account exists, against
  DUMMY_HASH when it does not. An unknown email and a wrong password take the
  same time and produce the same None.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from auth.errors import ValidationError
from auth.models import Account
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, hash_password, verify_password
from auth.store import AuthStore

logger = logging.getLogger("lodgekeeper.auth")

EMAIL_TAKEN = "Email has already been taken"


def normalize_email(email: str) -> str:
    """Trim surrounding whitespace and lower-case. Idempotent."""
    return email.strip().lower()


class CredentialStore:
    """Verify and update password credentials on top of an AuthStore."""

    def __init__(self, store: AuthStore, password_min_length: int = 8) -> None:
        self._store = store
        self._password_min_length = password_min_length

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, account_id: int) -> Account | None:
        return self._store.get_by_id(account_id)

    def find_by_email(self, email: str) -> Account | None:
        return self._store.get_by_email(normalize_email(email))

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> Account | None:
        """Return the account for a matching email/password pair, else None."""
        account = self.find_by_email(email)
        if account is None:
            # Equalize timing -- do NOT return before running bcrypt
            verify_password(password, DUMMY_HASH)
            return None
        if not verify_password(password, account.password_digest):
            return None
        return account

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, password_confirmation: str) -> Account:
        """Create an unconfirmed account. Raises ValidationError."""
        email = normalize_email(email)
        errors = self._email_errors(email) + self._password_errors(password, password_confirmation)
        if errors:
            raise ValidationError(errors)

        account = Account(email=email, password_digest=hash_password(password))
        try:
            account_id = self._store.create_account(account)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            raise ValidationError([EMAIL_TAKEN]) from exc

        logger.info("Account %d registered", account_id)
        return self._store.get_by_id(account_id)

    def set_password(self, account: Account, password: str, password_confirmation: str) -> Account:
        """Replace the account's password hash. Raises ValidationError.

        The new hash carries a new salt, so any password_reset token issued
        before this call fails verification afterwards.
        """
        errors = self._password_errors(password, password_confirmation)
        if errors:
            raise ValidationError(errors)

        digest = hash_password(password)
        if not self._store.update_password_digest(account.id, digest):
            raise ValidationError(["Account no longer exists"])
        account.password_digest = digest
        logger.info("Password updated for account %d", account.id)
        return account

    def change_password(
        self,
        account: Account,
        password: str,
        password_confirmation: str,
        password_challenge: str,
    ) -> Account:
        """set_password() for a signed-in user who must also prove the current password."""
        if not verify_password(password_challenge, account.password_digest):
            errors = ["Password challenge is invalid"]
            errors += self._password_errors(password, password_confirmation)
            raise ValidationError(errors)
        return self.set_password(account, password, password_confirmation)

    def confirm(self, account_id: int) -> bool:
        """Stamp confirmed_at now unless already set. Returns True if this call did it."""
        return self._store.mark_confirmed(account_id, datetime.now(timezone.utc).isoformat())

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _email_errors(self, email: str) -> list[str]:
        if not email:
            return ["Email can't be blank"]
        try:
            # Syntax only; no DNS lookups during registration.
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            return ["Email is invalid"]
        if self._store.get_by_email(email) is not None:
            return [EMAIL_TAKEN]
        return []

    def _password_errors(self, password: str, password_confirmation: str) -> list[str]:
        errors: list[str] = []
        if not password:
            errors.append("Password can't be blank")
        elif len(password) < self._password_min_length:
            errors.append(f"Password is too short (minimum is {self._password_min_length} characters)")
        elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            errors.append(f"Password is too long (maximum is {MAX_PASSWORD_BYTES} bytes)")
        if password != password_confirmation:
            errors.append("Password confirmation doesn't match Password")
        return errors
