"""Tests for password hashing, the password policy and random tokens."""

from __future__ import annotations

import asyncio
import string

from app.core.security import (
    generate_secure_token,
    get_password_hash,
    hash_password_async,
    hash_refresh_token,
    refresh_token_matches,
    validate_password_strength,
    verify_password,
    verify_password_async,
)


class TestPasswordHashing:
    def test_hash_is_not_plaintext(self) -> None:
        hashed = get_password_hash("Str0ng!Pass")
        assert hashed != "Str0ng!Pass"
        assert hashed.startswith("$2")

    def test_hash_is_salted_per_call(self) -> None:
        assert get_password_hash("Str0ng!Pass") != get_password_hash("Str0ng!Pass")

    def test_verify_correct_password(self) -> None:
        hashed = get_password_hash("Str0ng!Pass")
        assert verify_password("Str0ng!Pass", hashed) is True

    def test_verify_wrong_password(self) -> None:
        hashed = get_password_hash("Str0ng!Pass")
        assert verify_password("wrong-password", hashed) is False

    def test_malformed_hash_is_a_failed_verification(self) -> None:
        assert verify_password("Str0ng!Pass", "not-a-bcrypt-hash") is False

    def test_empty_hash_is_a_failed_verification(self) -> None:
        assert verify_password("Str0ng!Pass", "") is False

    def test_explicit_rounds(self) -> None:
        hashed = get_password_hash("Str0ng!Pass", rounds=5)
        assert hashed.startswith("$2b$05$")
        assert verify_password("Str0ng!Pass", hashed) is True

    def test_async_wrappers(self) -> None:
        hashed = asyncio.run(hash_password_async("Str0ng!Pass"))
        assert asyncio.run(verify_password_async("Str0ng!Pass", hashed)) is True
        assert asyncio.run(verify_password_async("nope", hashed)) is False


class TestPasswordPolicy:
    def test_strong_password_passes(self) -> None:
        assert validate_password_strength("Str0ng!Pass") == []

    def test_reports_every_violation(self) -> None:
        errors = validate_password_strength("abc")
        assert len(errors) == 4
        assert any("8 characters" in e for e in errors)
        assert any("uppercase" in e for e in errors)
        assert any("number" in e for e in errors)
        assert any("special" in e for e in errors)

    def test_rejects_passwords_longer_than_bcrypt_input(self) -> None:
        errors = validate_password_strength("Aa1!" + "x" * 80)
        assert errors == ["Password must be at most 72 bytes long"]


class TestSecureTokens:
    def test_token_is_64_hex_characters(self) -> None:
        token = generate_secure_token()
        assert len(token) == 64
        assert all(c in string.hexdigits for c in token)

    def test_tokens_are_unique(self) -> None:
        assert len({generate_secure_token() for _ in range(100)}) == 100


class TestRefreshTokenHash:
    def test_hash_is_deterministic_and_not_plaintext(self) -> None:
        assert hash_refresh_token("abc.def.ghi") == hash_refresh_token("abc.def.ghi")
        assert hash_refresh_token("abc.def.ghi") != "abc.def.ghi"

    def test_matches(self) -> None:
        stored = hash_refresh_token("abc.def.ghi")
        assert refresh_token_matches("abc.def.ghi", stored) is True
        assert refresh_token_matches("abc.def.ghX", stored) is False

    def test_explicit_secret(self) -> None:
        stored = hash_refresh_token("abc.def.ghi", "other-secret")
        assert stored != hash_refresh_token("abc.def.ghi")
        assert refresh_token_matches("abc.def.ghi", stored, "other-secret") is True
        assert refresh_token_matches("abc.def.ghi", stored) is False

    def test_missing_stored_hash_never_matches(self) -> None:
        assert refresh_token_matches("abc.def.ghi", None) is False
