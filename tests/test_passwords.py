"""Tests for salted link passwords."""

import hashlib

import pytest
from app.core.passwords import SALT_LENGTH, hash_password, verify_password


class TestHash:
    def test_format(self):
        stored = hash_password("hunter2")
        salt, digest = stored.split(":")
        assert len(salt) == SALT_LENGTH
        assert salt.isalnum()
        assert digest == hashlib.sha256(f"hunter2{salt}".encode()).hexdigest()

    def test_random_salt(self):
        assert hash_password("hunter2") != hash_password("hunter2")

    def test_explicit_salt(self):
        assert hash_password("pw", salt="abc") == "abc:" + hashlib.sha256(b"pwabc").hexdigest()


class TestVerify:
    def test_roundtrip(self):
        assert verify_password("hunter2", hash_password("hunter2")) is True

    def test_wrong_password(self):
        assert verify_password("hunter3", hash_password("hunter2")) is False

    @pytest.mark.parametrize("stored", [None, "", "nocolon", ":digest", "salt:", "a:b:c"])
    def test_malformed_never_verifies(self, stored):
        assert verify_password("anything", stored) is False

    def test_empty_password(self):
        assert verify_password("", hash_password("")) is False
