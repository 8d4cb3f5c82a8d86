"""Tests for password hashing and JWT helpers."""

from datetime import timedelta

import pytest

from app.core.security import (
    KEY_LENGTH,
    SALT_LENGTH,
    InvalidToken,
    create_access_token,
    decode_access_token,
    hash_password,
    hash_token,
    validate_password_strength,
    verify_password,
)


class TestPasswordHashing:
    """PBKDF2 hashes are salted, self-describing and verify in constant time."""

    def test_round_trip(self) -> None:
        hashed = hash_password("Secr3t!pass")
        assert verify_password("Secr3t!pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_stored_format_is_hex_salt_colon_hex_key(self) -> None:
        salt_hex, key_hex = hash_password("x").split(":")
        assert len(salt_hex) == SALT_LENGTH * 2
        assert len(key_hex) == KEY_LENGTH * 2
        bytes.fromhex(salt_hex)
        bytes.fromhex(key_hex)

    def test_same_password_gets_different_salts(self) -> None:
        assert hash_password("same") != hash_password("same")

    @pytest.mark.parametrize("stored", ["", "nocolon", ":abcd", "abcd:", "zz:zz", None])
    def test_malformed_hash_never_raises(self, stored) -> None:
        assert verify_password("anything", stored) is False


class TestPasswordStrength:
    def test_strong_password_has_no_errors(self) -> None:
        assert validate_password_strength("Valid#Pass1") == []

    def test_each_rule_reported(self) -> None:
        errors = validate_password_strength("short")
        assert "Password must be at least 8 characters" in errors
        assert "Password must contain at least 1 uppercase letter" in errors
        assert "Password must contain at least 1 special character" in errors

    def test_missing_lowercase(self) -> None:
        assert validate_password_strength("ALLUPPER#1") == [
            "Password must contain at least 1 lowercase letter"
        ]


def test_hash_token_is_sha256_hex() -> None:
    assert hash_token("hello") == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


class TestAccessTokens:
    """HS256 tokens with iat/exp, verified against current then previous secret."""

    def test_issue_and_verify(self) -> None:
        token = create_access_token({"user_id": 1, "username": "root"}, secret="s1")
        claims = decode_access_token(token, secret="s1")
        assert claims["user_id"] == 1
        assert claims["exp"] - claims["iat"] == 24 * 60 * 60
        assert "rotation_needed" not in claims

    def test_expired_token_rejected(self) -> None:
        token = create_access_token({"user_id": 1}, secret="s1", expires_delta=timedelta(seconds=-5))
        with pytest.raises(InvalidToken):
            decode_access_token(token, secret="s1")

    def test_wrong_secret_rejected(self) -> None:
        token = create_access_token({"user_id": 1}, secret="s1")
        with pytest.raises(InvalidToken):
            decode_access_token(token, secret="other")

    def test_previous_secret_accepted_and_flagged(self) -> None:
        token = create_access_token({"user_id": 1}, secret="old")
        claims = decode_access_token(token, secret="new", previous_secret="old")
        assert claims["user_id"] == 1
        assert claims["rotation_needed"] is True

    def test_neither_secret_matches(self) -> None:
        token = create_access_token({"user_id": 1}, secret="elsewhere")
        with pytest.raises(InvalidToken):
            decode_access_token(token, secret="new", previous_secret="old")

    def test_garbage_rejected(self) -> None:
        with pytest.raises(InvalidToken):
            decode_access_token("not.a.jwt", secret="s1")
