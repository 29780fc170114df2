"""
auth/tokens.py -- Purpose-scoped, expiring, signed tokens.

Security design decisions:
  Encoding: python-jose with HS256. A token carries the account id (sub), the
       purpose (pur), issue and expiry times (iat/exp) and a fingerprint (fp)
       of the account state the token guards. Nothing is persisted; the token
       is verified from its own contents plus the account's current row.

  Invalidation: verify() recomputes the fingerprint from the live account and
       rejects on mismatch. Changing the password regenerates the bcrypt salt,
       confirming the email sets confirmed_at -- either change makes every
       token issued before it stale, with no revocation table.

  Fingerprints are HMAC-SHA256(SECRET_KEY, purpose:material), truncated. JWT
       payloads are only base64, so raw salt material must not ride along.

  Check order is fixed: signature, purpose, expiry, fingerprint. A token for
       the wrong purpose is rejected as such even when it is also expired.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import JWTError, jwt

from auth.errors import TokenError, TokenErrorKind
from auth.models import Account
from auth.passwords import password_salt

logger = logging.getLogger("lodgekeeper.auth")

_ALGORITHM = "HS256"
_FINGERPRINT_LENGTH = 32


class TokenPurpose(str, Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_CONFIRMATION = "email_confirmation"


# ---------------------------------------------------------------------------
# Fingerprint material -- one pure function per purpose
# ---------------------------------------------------------------------------


def _password_reset_material(account: Account) -> str:
    # Only the salt tail: any password change replaces it, nothing else does.
    return password_salt(account.password_digest)[-10:]


def _email_confirmation_material(account: Account) -> str:
    return account.email + (account.confirmed_at or "")


_FINGERPRINT_MATERIAL: dict[TokenPurpose, Callable[[Account], str]] = {
    TokenPurpose.PASSWORD_RESET: _password_reset_material,
    TokenPurpose.EMAIL_CONFIRMATION: _email_confirmation_material,
}

if set(_FINGERPRINT_MATERIAL) != set(TokenPurpose):
    raise RuntimeError("every TokenPurpose needs a fingerprint function")


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Issue and verify purpose tokens signed with a process-wide secret.

    clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, secret_key: str, clock: Callable[[], datetime] | None = None) -> None:
        self._secret_key = secret_key
        self._clock = clock or _utcnow

    def fingerprint(self, purpose: TokenPurpose, account: Account) -> str:
        """Return the fingerprint of the account state guarded by purpose."""
        material = _FINGERPRINT_MATERIAL[purpose](account)
        digest = hmac.new(
            self._secret_key.encode("utf-8"),
            f"{purpose.value}:{material}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return digest[:_FINGERPRINT_LENGTH]

    def issue(self, account_id: int, purpose: TokenPurpose, expires_in: timedelta, fingerprint: str) -> str:
        """Encode a signed token valid for expires_in from now."""
        now = self._clock().timestamp()
        issued_at = int(now)
        payload = {
            "sub": str(account_id),
            "pur": purpose.value,
            "iat": issued_at,
            # Rounded up so sub-second issue times never shorten the window.
            "exp": math.ceil(now + expires_in.total_seconds()),
            "fp": fingerprint,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(
        self,
        token: str,
        purpose: TokenPurpose,
        current_fingerprint: Callable[[int], str | None],
    ) -> int:
        """Return the account id the token was issued for.

        current_fingerprint(account_id) must return the fingerprint of the
        account's live state, or None if the account no longer exists.

        Raises TokenError with kind TAMPERED, WRONG_PURPOSE, EXPIRED or STALE.
        """
        try:
            # Expiry is checked below, after the purpose check and against
            # the injected clock.
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
            account_id = int(claims["sub"])
            token_purpose = claims["pur"]
            expires_at = int(claims["exp"])
            embedded = claims["fp"]
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            raise TokenError(TokenErrorKind.TAMPERED) from exc

        if token_purpose != purpose.value:
            raise TokenError(TokenErrorKind.WRONG_PURPOSE)

        if self._clock().timestamp() > expires_at:
            raise TokenError(TokenErrorKind.EXPIRED)

        live = current_fingerprint(account_id)
        if live is None or not hmac.compare_digest(str(embedded), live):
            raise TokenError(TokenErrorKind.STALE)

        return account_id
