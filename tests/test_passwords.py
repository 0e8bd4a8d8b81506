"""Unit tests for auth/passwords.py -- argon2id hashing and verification.

Covers:
- hash/verify round trip and mismatch
- per-hash salt (same input, different digests)
- malformed and missing digests verify False instead of raising
- needs_rehash detects digests made with other cost parameters
- hashing failure surfaces as InternalFailure
"""

from unittest.mock import patch

import pytest
from argon2 import PasswordHasher
from argon2.exceptions import HashingError

from auth.passwords import CredentialHasher
from core.errors import InternalFailure


def test_verify_accepts_correct_password(hasher):
    digest = hasher.hash("password1")
    assert hasher.verify(digest, "password1") is True


def test_verify_rejects_other_passwords(hasher):
    digest = hasher.hash("password1")
    for candidate in ("password2", "Password1", "password1 ", ""):
        assert hasher.verify(digest, candidate) is False


def test_digest_is_argon2id_with_embedded_salt(hasher):
    first = hasher.hash("same input")
    second = hasher.hash("same input")
    assert first.startswith("$argon2id$")
    assert first != second
    assert hasher.verify(first, "same input")
    assert hasher.verify(second, "same input")


@pytest.mark.parametrize("digest", ["not-a-hash", "$argon2id$v=19$garbage", "$2b$12$abcdefghijklmnopqrstuv"])
def test_malformed_digest_is_a_mismatch(hasher, digest):
    assert hasher.verify(digest, "password1") is False


@pytest.mark.parametrize("digest", [None, ""])
def test_missing_digest_never_matches(hasher, digest):
    assert hasher.verify(digest, "") is False
    assert hasher.verify(digest, "anything") is False


def test_needs_rehash_when_cost_changes(hasher):
    digest = hasher.hash("password1")
    stronger = CredentialHasher(time_cost=2, memory_cost=2048, parallelism=1)
    assert hasher.needs_rehash(digest) is False
    assert stronger.needs_rehash(digest) is True
    assert stronger.verify(digest, "password1") is True


def test_needs_rehash_ignores_malformed_digest(hasher):
    assert hasher.needs_rehash("not-a-hash") is False


def test_hashing_failure_is_internal(hasher):
    with patch.object(PasswordHasher, "hash", side_effect=HashingError("out of memory")):
        with pytest.raises(InternalFailure):
            hasher.hash("password1")
