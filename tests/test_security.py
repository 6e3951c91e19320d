from datetime import datetime, timezone

import pytest
from jose import jwt

from school_admin.auth.security import (
    LOGIN_CODE_ALPHABET,
    as_utc,
    create_access_token,
    generate_login_code,
    hash_login_code,
    login_code_expiry,
    verify_login_code,
)
from school_admin.core.config import settings
from school_admin.core.validation import check_aadhar, check_phone_number


def test_generated_login_code_uses_readable_alphabet() -> None:
    code = generate_login_code(12)
    assert len(code) == 12
    assert all(ch in LOGIN_CODE_ALPHABET for ch in code)


def test_login_code_hash_round_trip_is_case_insensitive() -> None:
    code_hash = hash_login_code("ABCD2345")
    assert verify_login_code("abcd2345 ", code_hash)
    assert not verify_login_code("ABCD2346", code_hash)


def test_verify_login_code_with_corrupt_hash() -> None:
    assert verify_login_code("ABCD2345", "not-a-bcrypt-hash") is False


def test_login_code_expiry_is_in_the_future() -> None:
    assert login_code_expiry(1) > datetime.now(timezone.utc)


def test_access_token_carries_subject() -> None:
    token = create_access_token(subject={"sub": "abc", "role": "teacher"})
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    assert payload["sub"] == "abc"
    assert payload["role"] == "teacher"
    assert "exp" in payload


def test_as_utc_marks_naive_values() -> None:
    assert as_utc(datetime(2025, 1, 1)).tzinfo == timezone.utc


@pytest.mark.parametrize(
    "raw, expected",
    [("98765 43210", "9876543210"), ("+919876543210", "9876543210"), ("09876543210", "9876543210"), ("", None)],
)
def test_check_phone_number_normalizes(raw, expected) -> None:
    assert check_phone_number(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "5876543210", "98765432101", "05876543210"])
def test_check_phone_number_rejects(raw) -> None:
    with pytest.raises(ValueError):
        check_phone_number(raw)


def test_check_aadhar() -> None:
    assert check_aadhar("1234 5678 9012") == "123456789012"
    assert check_aadhar(" ") is None
    with pytest.raises(ValueError):
        check_aadhar("12345")
