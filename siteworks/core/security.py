import logging
from typing import Annotated, Dict, Any

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
import jwt
import requests
from jwt.algorithms import RSAAlgorithm

from siteworks.config import KEYCLOAK_SERVER_URL, KEYCLOAK_REALM, KEYCLOAK_AUDIENCE

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


class AuthenticatedUser(BaseModel):
    """The caller as seen by the workflow engine. `user_id` is the audit actor."""
    user_id: str
    username: str
    email: str | None = None
    full_name: str | None = None
    disabled: bool | None = False


def get_keycloak_public_keys() -> Dict[str, Any]:
    """Fetch public keys from Keycloak server."""
    certs_url = f"{KEYCLOAK_SERVER_URL}realms/{KEYCLOAK_REALM}/protocol/openid-connect/certs"
    response = requests.get(certs_url, timeout=10)
    response.raise_for_status()
    jwks_data = response.json()
    logger.debug("jwks_fetched url=%s keys=%s", certs_url, len(jwks_data.get("keys", [])))
    return jwks_data


def decode_token(token: str, jwks: Dict[str, Any]) -> Dict[str, Any]:
    """Verify `token` against each JWKS key in turn. Raises jwt.InvalidTokenError if none match."""
    keys = jwks.get("keys", [])
    if not keys:
        raise jwt.InvalidTokenError("No keys in JWKS response")

    expected_issuer = f"{KEYCLOAK_SERVER_URL}realms/{KEYCLOAK_REALM}"
    last_exception: Exception | None = None
    for key_data in keys:
        try:
            public_key = RSAAlgorithm.from_jwk(key_data)
            return jwt.decode(
                token,
                public_key,
                algorithms=["RS256"],
                audience=KEYCLOAK_AUDIENCE,
                issuer=expected_issuer,
            )
        except jwt.ExpiredSignatureError:
            raise
        except jwt.InvalidTokenError as e:
            logger.debug("token_key_rejected kid=%s error=%s", key_data.get("kid", "N/A"), e)
            last_exception = e
    raise jwt.InvalidTokenError("Token did not verify against any JWKS key") from last_exception


async def get_current_user(request: Request, token: Annotated[str, Depends(oauth2_scheme)]) -> AuthenticatedUser:
    """Extract user information from Keycloak JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        token = request.cookies.get("access_token", "")

    if not token:
        raise credentials_exception

    try:
        payload = decode_token(token, get_keycloak_public_keys())
    except jwt.InvalidTokenError as e:
        logger.info("token_rejected error=%s", e)
        raise credentials_exception from e
    except requests.RequestException as e:
        logger.warning("jwks_fetch_failed error=%s", e)
        raise credentials_exception from e

    user_id = payload.get("sub", "")
    username = payload.get("preferred_username", "")
    if not user_id or not username:
        raise credentials_exception

    return AuthenticatedUser(
        user_id=user_id,
        username=username,
        email=payload.get("email"),
        full_name=payload.get("name"),
        disabled=False,
    )


async def get_current_active_user(current_user: Annotated[AuthenticatedUser, Depends(get_current_user)]) -> AuthenticatedUser:
    """Check if the current user is active. Keycloak handles this before token issuance."""
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
