"""
auth/tokens.py -- Password hashing and session secret generation.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt is the right choice
       for low-entropy secrets because its cost factor makes brute-force
       expensive. The cost comes from Settings.bcrypt_rounds so tests can run
       at the library minimum. The _DUMMY_HASH constant lets stores equalize
       timing so response time does not reveal whether a login exists.

  Session secrets: secrets.token_hex(n) draws n bytes from the OS CSPRNG and
       hex-encodes them. 64 bytes (512 bits) by default -- collisions are not
       expected in practice, but the session service still checks every
       candidate against the store.

Layer rule: no imports from api/ or storage/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hmac
import secrets

import bcrypt

from core.config import get_settings

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    `rounds` is the bcrypt cost; SessionService passes its own
    Settings.bcrypt_rounds. Without it the process-wide setting applies,
    which is also what the timing dummy below is hashed with.

    Passwords longer than 72 bytes are rejected by bcrypt 4.x; the API layer
    caps passwords at 72 UTF-8 bytes via the request model.
    """
    salt = bcrypt.gensalt(rounds=rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# failed login is not measurably slower than the rest.
_DUMMY_HASH: str = hash_password("userservice_timing_dummy")


def burn_verify(plain: str) -> None:
    """Run a bcrypt check against the dummy hash and discard the result.

    Stores call this when the login does not exist so an unknown login costs
    the same as a wrong password.
    """
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session secrets
# ---------------------------------------------------------------------------


def generate_secret(nbytes: int | None = None) -> str:
    """Return `nbytes` random bytes as a hex string (2 * nbytes characters)."""
    return secrets.token_hex(nbytes or _settings.token_bytes)


def secrets_match(presented: str, stored: str) -> bool:
    """Constant-time comparison for token values."""
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))
