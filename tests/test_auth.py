import pytest
from fastapi import HTTPException
from jose import jwt

import auth
from auth import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    token_claims,
    user_from_payload,
    verify_password,
)
from models import UserRole


def test_password_hash_round_trip_handles_long_passwords():
    long_password = "x" * 200
    hashed = get_password_hash(long_password)

    assert verify_password(long_password, hashed)
    assert not verify_password("x" * 199, hashed)
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_access_token_resolves_to_user(db, make_user):
    user = make_user(role=UserRole.ADMIN)
    token = create_access_token(token_claims(user))

    payload = decode_token(token)

    assert payload["sub"] == str(user.id)
    assert payload["role"] == "admin"
    assert user_from_payload(db, payload).id == user.id


def test_refresh_token_is_not_an_access_token(db, make_user):
    user = make_user()
    payload = decode_token(create_refresh_token(token_claims(user)))

    with pytest.raises(HTTPException) as excinfo:
        user_from_payload(db, payload)
    assert excinfo.value.status_code == 401

    assert user_from_payload(db, payload, token_type="refresh").id == user.id


def test_deactivated_user_token_is_rejected(db, make_user):
    user = make_user(is_active=False)
    payload = decode_token(create_access_token(token_claims(user)))

    with pytest.raises(HTTPException) as excinfo:
        user_from_payload(db, payload)
    assert excinfo.value.detail == "Account is deactivated"


def test_token_signed_with_another_key_is_rejected():
    forged = jwt.encode({"sub": "1", "type": "access"}, "another-secret-0123456789abcdefghijkl", algorithm=auth.ALGORITHM)
    with pytest.raises(HTTPException):
        decode_token(forged)


@pytest.mark.parametrize("secret", ["", "short", "hackathon", "x" * 31])
def test_weak_jwt_secret_refused(monkeypatch, secret):
    monkeypatch.setenv("JWT_SECRET_KEY", secret)
    with pytest.raises(RuntimeError):
        auth._load_jwt_secret()
