"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

A bcrypt hash has the shape  $2b$<cost>$<22-char salt><31-char checksum>.
The first 29 characters are the full salt string. gensalt() runs on every
hash_password() call, so every password change yields a new salt -- the
password-reset fingerprint in auth/tokens.py depends on this.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72

_SALT_LENGTH = 29


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Callers must reject passwords longer than MAX_PASSWORD_BYTES first;
    current bcrypt releases raise ValueError instead of truncating.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def password_salt(hashed: str) -> str:
    """Return the salt portion of a bcrypt hash ("$2b$12$" + 22 chars)."""
    return hashed[:_SALT_LENGTH]


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always call verify_password() even when the
# account does not exist so response time does not reveal registered emails.
DUMMY_HASH: str = hash_password("lodgekeeper_timing_dummy")
