"""Tests for voter email hashing, encryption and masking."""

import pytest
from cryptography.fernet import InvalidToken

from authentication.crypto_utils import (
    decrypt_email,
    encrypt_email,
    generate_session_hash,
    hash_email,
    mask_email,
    normalize_email,
    verify_email_hash,
)


class TestEmailHashing:
    def test_hash_is_case_and_space_insensitive(self) -> None:
        assert hash_email(" Voter@Example.COM ") == hash_email("voter@example.com")

    def test_hash_is_sha256_hex(self) -> None:
        digest = hash_email("voter@example.com")
        assert len(digest) == 64
        int(digest, 16)

    def test_empty_email_has_no_hash(self) -> None:
        assert hash_email("") is None
        assert normalize_email(None) is None

    def test_verify_email_hash(self) -> None:
        stored = hash_email("voter@example.com")
        assert verify_email_hash("VOTER@example.com", stored)
        assert not verify_email_hash("other@example.com", stored)
        assert not verify_email_hash("voter@example.com", "")


class TestEncryption:
    def test_encrypt_then_decrypt(self) -> None:
        token = encrypt_email("voter@example.com")
        assert token != "voter@example.com"
        assert decrypt_email(token) == "voter@example.com"

    def test_empty_values_pass_through(self) -> None:
        assert encrypt_email("") is None
        assert decrypt_email(None) is None

    def test_other_key_cannot_decrypt(self, settings) -> None:
        token = encrypt_email("voter@example.com")
        settings.ENCRYPTION_KEY = "a-different-key"
        with pytest.raises(InvalidToken):
            decrypt_email(token)


class TestSessionHashAndMasking:
    def test_session_hashes_are_random(self) -> None:
        first, second = generate_session_hash(), generate_session_hash()
        assert len(first) == 64
        assert first != second

    def test_mask_email(self) -> None:
        assert mask_email("voter@example.com") == "vo***@example.com"
        assert mask_email("not-an-email") == "***"
        assert mask_email(None) == "***"
