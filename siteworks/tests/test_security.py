import json
import os
import sys
import time
from unittest.mock import MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import HTTPException
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))
from siteworks.config import KEYCLOAK_AUDIENCE, KEYCLOAK_REALM, KEYCLOAK_SERVER_URL
from siteworks.core import security
from siteworks.core.security import AuthenticatedUser, decode_token, get_current_active_user, get_current_user
from siteworks.main import app

ISSUER = f"{KEYCLOAK_SERVER_URL}realms/{KEYCLOAK_REALM}"


def make_key_pair(kid: str):
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk["kid"] = kid
    return private_key, jwk


SIGNING_KEY, SIGNING_JWK = make_key_pair("signing")
OTHER_KEY, OTHER_JWK = make_key_pair("other")


def make_token(private_key=SIGNING_KEY, **claims) -> str:
    payload = {
        "sub": "user-123",
        "preferred_username": "site.engineer",
        "email": "engineer@example.com",
        "name": "Site Engineer",
        "iss": ISSUER,
        "aud": KEYCLOAK_AUDIENCE,
        "exp": int(time.time()) + 300,
    }
    payload.update(claims)
    return jwt.encode(payload, private_key, algorithm="RS256")


def make_request(cookies=None):
    request = MagicMock()
    request.cookies = cookies or {}
    return request


@pytest.fixture
def jwks(monkeypatch):
    keys = {"keys": [OTHER_JWK, SIGNING_JWK]}
    monkeypatch.setattr(security, "get_keycloak_public_keys", lambda: keys)
    return keys


def test_decode_token_tries_each_key(jwks):
    payload = decode_token(make_token(), jwks)

    assert payload["sub"] == "user-123"


def test_decode_token_rejects_unknown_signer():
    with pytest.raises(jwt.InvalidTokenError):
        decode_token(make_token(), {"keys": [OTHER_JWK]})


def test_decode_token_rejects_wrong_audience(jwks):
    with pytest.raises(jwt.InvalidTokenError):
        decode_token(make_token(aud="someone-else"), jwks)


@pytest.mark.asyncio
async def test_get_current_user_from_bearer(jwks):
    # Act
    user = await get_current_user(make_request(), make_token())

    # Assert
    assert user == AuthenticatedUser(user_id="user-123", username="site.engineer", email="engineer@example.com",
                                     full_name="Site Engineer", disabled=False)


@pytest.mark.asyncio
async def test_get_current_user_falls_back_to_cookie(jwks):
    user = await get_current_user(make_request({"access_token": make_token()}), "")

    assert user.user_id == "user-123"


@pytest.mark.asyncio
async def test_missing_token_is_unauthorized():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(make_request(), "")

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_unauthorized(jwks):
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(make_request(), make_token(exp=int(time.time()) - 60))

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_token_without_username_is_unauthorized(jwks):
    with pytest.raises(HTTPException):
        await get_current_user(make_request(), make_token(preferred_username=""))


@pytest.mark.asyncio
async def test_inactive_user_is_rejected():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_active_user(AuthenticatedUser(user_id="u", username="u", disabled=True))

    assert exc_info.value.status_code == 400


def test_api_requires_authentication(monkeypatch):
    monkeypatch.delitem(app.dependency_overrides, get_current_active_user, raising=False)
    client = TestClient(app)

    response = client.get("/api/tasks/task_1")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
