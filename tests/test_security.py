from datetime import timedelta

import jwt
import pytest

from conftest import auth
from errors import InvalidToken
from security import TokenService, hash_password, verify_password


def test_password_hash_roundtrip():
    stored = hash_password("hunter2")
    assert "hunter2" not in stored
    assert verify_password("hunter2", stored)
    assert not verify_password("hunter3", stored)


def test_password_hash_is_salted():
    assert hash_password("same") != hash_password("same")


@pytest.mark.parametrize("stored", [None, "", "plain", "md5$1$aa$bb", "pbkdf2_sha256$x$aa$bb"])
def test_verify_rejects_malformed_hashes(stored):
    assert not verify_password("anything", stored)


def test_token_roundtrip():
    service = TokenService("k")
    token = service.issue("507f1f77bcf86cd799439011")
    assert service.verify(token) == "507f1f77bcf86cd799439011"


def test_token_expiry_claim_is_seven_days():
    service = TokenService("k")
    claims = jwt.decode(service.issue("u1"), "k", algorithms=["HS256"])
    assert claims["userId"] == "u1"
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600


def test_expired_token_rejected():
    service = TokenService("k", ttl=timedelta(seconds=-5))
    with pytest.raises(InvalidToken, match="expired"):
        service.verify(service.issue("u1"))


def test_wrong_signature_rejected():
    token = TokenService("other").issue("u1")
    with pytest.raises(InvalidToken):
        TokenService("k").verify(token)


def test_missing_user_claim_rejected():
    token = jwt.encode({"sub": "u1"}, "k", algorithm="HS256")
    with pytest.raises(InvalidToken):
        TokenService("k").verify(token)


def test_secret_required():
    with pytest.raises(ValueError):
        TokenService("")


# ----------------------- Auth gate -----------------------
def test_gate_accepts_valid_token(client, signup):
    token, user = signup()
    res = client.get("/auth/me", headers=auth(token))
    assert res.status_code == 200
    assert res.json() == user


def test_gate_rejects_missing_header(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["error"] == "Unauthenticated"


def test_gate_rejects_non_bearer_scheme(client, signup):
    token, _ = signup()
    res = client.get("/auth/me", headers={"Authorization": f"Basic {token}"})
    assert res.status_code == 401


def test_gate_rejects_garbage_token(client):
    res = client.get("/auth/me", headers=auth("not-a-jwt"))
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid token"


def test_gate_rejects_expired_token(client, signup):
    _, user = signup()
    expired = TokenService("test-secret", ttl=timedelta(seconds=-5)).issue(user["id"])
    res = client.get("/auth/me", headers=auth(expired))
    assert res.status_code == 401
    assert res.json()["message"] == "Token expired"


def test_gate_rejects_deleted_user(client, signup, db):
    token, user = signup()
    db["user"].delete_many({})
    res = client.get("/auth/me", headers=auth(token))
    assert res.status_code == 401
    assert res.json()["message"] == "User not found"
