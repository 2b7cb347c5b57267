"""Unit tests for auth/passwords.py -- argon2id hashing and legacy bcrypt support.

Covers:
- hash_password() salts every call (same input -> different hashes)
- verify_password() accepts the right password and rejects a wrong one
- verify_password() returns False (never raises) for empty or garbage hashes
- Legacy bcrypt hashes verify and are flagged by needs_rehash()
- Fresh argon2id hashes do not need a rehash
"""

import bcrypt

from auth.passwords import equalize_timing, hash_password, needs_rehash, verify_password


class TestHashPassword:
    def test_hash_is_argon2id(self):
        assert hash_password("secret1").startswith("$argon2id$")

    def test_same_password_hashes_differently(self):
        assert hash_password("secret1") != hash_password("secret1")

    def test_hash_does_not_contain_plaintext(self):
        assert "secret1" not in hash_password("secret1")


class TestVerifyPassword:
    def test_correct_password(self):
        hashed = hash_password("correct horse")
        assert verify_password(hashed, "correct horse") is True

    def test_wrong_password(self):
        hashed = hash_password("correct horse")
        assert verify_password(hashed, "battery staple") is False

    def test_empty_hash_is_rejected(self):
        assert verify_password("", "anything") is False

    def test_garbage_hash_is_rejected(self):
        assert verify_password("not-a-hash", "anything") is False

    def test_truncated_bcrypt_hash_is_rejected(self):
        assert verify_password("$2b$12$tooShort", "anything") is False


class TestLegacyBcrypt:
    def _bcrypt_hash(self, plain: str) -> str:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")

    def test_bcrypt_hash_verifies(self):
        hashed = self._bcrypt_hash("legacy-pass")
        assert verify_password(hashed, "legacy-pass") is True
        assert verify_password(hashed, "other-pass") is False

    def test_bcrypt_hash_needs_rehash(self):
        assert needs_rehash(self._bcrypt_hash("legacy-pass")) is True

    def test_fresh_argon2_hash_does_not_need_rehash(self):
        assert needs_rehash(hash_password("secret1")) is False

    def test_unparseable_hash_does_not_need_rehash(self):
        assert needs_rehash("not-a-hash") is False


def test_equalize_timing_returns_none_for_any_input():
    """The dummy verification must never raise, whatever the caller typed."""
    assert equalize_timing("") is None
    assert equalize_timing("some password") is None
