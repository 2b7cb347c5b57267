"""
auth/passwords.py -- Password hashing and verification (Credential Verifier).

Security design decisions:
  argon2id via argon2-cffi. Argon2id is memory-hard: every guess costs an
       attacker RAM as well as CPU, which blunts GPU/ASIC cracking far better
       than bcrypt's CPU-only work factor. Each hash embeds its own random salt
       and cost parameters ($argon2id$v=19$m=...,t=...,p=...$salt$digest), so
       hashing the same password twice yields two different strings and old
       hashes stay verifiable after the defaults change.

  Legacy bcrypt: accounts created by the previous service carry bcrypt hashes
       ($2a$/$2b$/$2y$). verify_password() still accepts them and
       needs_rehash() flags them so login can upgrade them to argon2id.

  verify_password() never raises. A malformed or unknown hash simply does not
       match. Comparison is constant-time inside both libraries.

All functions are stateless apart from the module-level PasswordHasher, which
holds only immutable cost parameters -- safe to call from many threads at once.
"""

from __future__ import annotations

import logging

import bcrypt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger("sessionguard.auth.passwords")

_hasher = PasswordHasher(type=Type.ID)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(plain: str) -> str:
    """Return an encoded argon2id hash of the given plaintext password."""
    return _hasher.hash(plain)


def _is_bcrypt(hashed: str) -> bool:
    return hashed.startswith(_BCRYPT_PREFIXES)


def verify_password(hashed: str, plain: str) -> bool:
    """Return True if the plaintext password matches the stored hash.

    Argument order follows argon2-cffi (hash first). Returns False for a
    wrong password and for a hash that cannot be parsed.
    """
    if not hashed:
        return False
    if _is_bcrypt(hashed):
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
    try:
        return _hasher.verify(hashed, plain)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(hashed: str) -> bool:
    """Return True if a successfully verified hash should be replaced.

    True for legacy bcrypt hashes and for argon2 hashes created with weaker
    parameters than the current defaults.
    """
    if _is_bcrypt(hashed):
        return True
    try:
        return _hasher.check_needs_rehash(hashed)
    except InvalidHashError:
        logger.warning("Stored password hash could not be parsed for rehash check")
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Login runs verify_password() against this hash
# when the email is unknown, so response time does not reveal whether an
# account exists.
_DUMMY_HASH: str = hash_password("sessionguard_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Spend one full argon2 verification for a login that is already failing."""
    verify_password(_DUMMY_HASH, plain)
