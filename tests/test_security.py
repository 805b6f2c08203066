from datetime import timedelta

from staffchat.security import security
from staffchat.core import config


def test_password_hash_and_verify():
    plain = "mysecretpassword"
    hashed = security.hash_password(plain)
    assert hashed != plain
    assert security.verify_password(plain, hashed)
    assert not security.verify_password("wrong", hashed)


def test_jwt_create_and_decode(monkeypatch):
    monkeypatch.setattr(config.settings, "JWT_SECRET_KEY", "test-secret-key")
    monkeypatch.setattr(config.settings, "JWT_ALGORITHM", "HS256")

    token = security.create_jwt_token(subject="123", expires_delta=timedelta(minutes=5), token_type="access")
    assert isinstance(token, str) and token

    payload = security.decode_jwt_token(token)
    assert payload is not None
    assert payload.get("sub") == "123"
    assert payload.get("type") == "access"


def test_jwt_decode_invalid_token():
    assert security.decode_jwt_token("this.is.not.a.jwt") is None


def test_access_token_resolves_user_id():
    token = security.create_access_token("abc123")
    assert security.user_id_from_access_token(token) == "abc123"


def test_refresh_token_is_not_an_access_token():
    token = security.create_jwt_token(subject="abc123", expires_delta=timedelta(days=1), token_type="refresh")
    assert security.user_id_from_access_token(token) is None


def test_expired_access_token_is_rejected():
    token = security.create_jwt_token(subject="abc123", expires_delta=timedelta(seconds=-10), token_type="access")
    assert security.user_id_from_access_token(token) is None
