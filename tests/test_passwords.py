"""Unit tests for auth/passwords.py -- BcryptHasher."""

from __future__ import annotations

from auth.passwords import BcryptHasher

hasher = BcryptHasher(rounds=4)


def test_hash_is_not_plaintext():
    hashed = hasher.hash("pw1")
    assert hashed != "pw1"
    assert hashed.startswith("$2")


def test_hashes_are_salted():
    assert hasher.hash("pw1") != hasher.hash("pw1")


def test_verify_match_and_mismatch():
    hashed = hasher.hash("pw1")
    assert hasher.verify("pw1", hashed) is True
    assert hasher.verify("pw2", hashed) is False


def test_verify_malformed_hash_returns_false():
    assert hasher.verify("pw1", "not-a-bcrypt-hash") is False


def test_rounds_are_encoded_in_hash():
    assert BcryptHasher(rounds=5).hash("pw1").split("$")[2] == "05"
