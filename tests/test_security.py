from datetime import timedelta

import pytest
from jose import jwt

from taskmanager.core.config import Settings, parse_duration
from taskmanager.core.errors import AuthenticationError
from taskmanager.core.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    extract_bearer_token,
    verify_refresh_token,
)
from taskmanager.models.user import User


@pytest.mark.parametrize("value,expected", [
    ("24h", timedelta(hours=24)),
    ("15m", timedelta(minutes=15)),
    ("7d", timedelta(days=7)),
    ("30s", timedelta(seconds=30)),
    ("3600", timedelta(seconds=3600)),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("soon")


def test_settings_overrides():
    settings = Settings(JWT_SECRET="s", JWT_EXPIRES_IN="1h")
    assert settings.access_token_lifetime == timedelta(hours=1)
    assert settings.refresh_token_lifetime == timedelta(days=7)
    with pytest.raises(AttributeError):
        Settings(JWT_SECRET="s", NOT_A_SETTING=1)


def test_access_token_claims(settings):
    token = create_access_token(42, settings)
    claims = jwt.get_unverified_claims(token)
    assert claims["user_id"] == 42
    assert claims["iss"] == "task-management-api"
    assert claims["aud"] == "task-management-client"
    assert claims["exp"] - claims["iat"] == 24 * 3600
    assert "type" not in claims
    assert decode_access_token(token, settings)["user_id"] == 42


def test_tokens_have_unique_ids(settings):
    first = jwt.get_unverified_claims(create_access_token(1, settings))
    second = jwt.get_unverified_claims(create_access_token(1, settings))
    assert first["jti"] != second["jti"]


def test_refresh_token_claims(settings):
    token = create_refresh_token(7, settings)
    claims = jwt.get_unverified_claims(token)
    assert claims["type"] == "refresh"
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600
    assert verify_refresh_token(token, settings)["user_id"] == 7


def test_refresh_token_rejected_as_access(settings):
    with pytest.raises(AuthenticationError) as exc_info:
        decode_access_token(create_refresh_token(7, settings), settings)
    assert exc_info.value.code == "INVALID_TOKEN"


def test_access_token_rejected_as_refresh(settings):
    with pytest.raises(AuthenticationError) as exc_info:
        verify_refresh_token(create_access_token(7, settings), settings)
    assert exc_info.value.message == "Invalid refresh token"


def test_expired_access_token(settings):
    token = create_access_token(1, settings, expires_delta=timedelta(seconds=-5))
    with pytest.raises(AuthenticationError) as exc_info:
        decode_access_token(token, settings)
    assert exc_info.value.code == "TOKEN_EXPIRED"
    assert exc_info.value.status_code == 401


def test_wrong_audience_rejected(settings):
    token = jwt.encode({"user_id": 1, "aud": "someone-else", "iss": settings.JWT_ISSUER},
                       settings.JWT_SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError):
        decode_access_token(token, settings)


@pytest.mark.parametrize("header,expected", [
    ("Bearer abc", "abc"),
    ("bearer abc", "abc"),
    ("Basic abc", None),
    ("Bearer ", None),
    ("", None),
    (None, None),
])
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


def test_password_hashing(db):
    user = User.create(db, "hash@example.com", "abc123", rounds=4)
    assert user.password != "abc123"
    assert user.password.startswith("$2")
    assert user.verify_password("abc123") is True
    assert user.verify_password("abc124") is False
    assert user.verify_password(None) is False


def test_verify_password_with_corrupt_hash():
    user = User(email="x@example.com", password="not-a-bcrypt-hash")
    assert user.verify_password("abc123") is False


def test_update_password(db):
    user = User.create(db, "change@example.com", "abc123", rounds=4)
    user.update_password(db, "xyz789", rounds=4)
    reloaded = User.find_by_id(db, user.id)
    assert reloaded.verify_password("xyz789")
    assert not reloaded.verify_password("abc123")
