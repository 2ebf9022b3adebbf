"""
security/auth.py
-----------------
Bearer-token authentication for the HTTP API.
Tokens are RS256 JWTs issued by Keycloak and verified against the realm's
JWKS. Every route under /api/antennes depends on `get_current_user`.
"""

from typing import Any, Optional

import httpx
from cachetools import TTLCache
from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from config import (
    APP_ENV,
    DISABLE_AUTH,
    KEYCLOAK_CLIENT_ID,
    KEYCLOAK_PUBLIC_URL,
    KEYCLOAK_REALM,
    KEYCLOAK_URL,
)
from utils.logger import get_logger

logger = get_logger(__name__)

ALGORITHMS = ["RS256"]

# Keys are fetched from the internal URL; the issuer claim carries the public one.
JWKS_URI = f"{KEYCLOAK_URL}/realms/{KEYCLOAK_REALM}/protocol/openid-connect/certs"
ISSUER = f"{KEYCLOAK_PUBLIC_URL}/realms/{KEYCLOAK_REALM}"

_jwks_cache: TTLCache = TTLCache(maxsize=4, ttl=600)


class AuthenticatedUser(BaseModel):
    """The principal extracted from a verified token."""
    sub: str
    preferred_username: Optional[str] = None
    email: Optional[str] = None
    realm_roles: list[str] = Field(default_factory=list)
    client_roles: list[str] = Field(default_factory=list)

    def has_role(self, role: str) -> bool:
        return role in self.realm_roles or role in self.client_roles


DEV_USER = AuthenticatedUser(
    sub="dev-user",
    preferred_username="developer",
    email="dev@konitys.local",
    realm_roles=["admin"],
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def fetch_jwks(jwks_uri: str = JWKS_URI) -> dict[str, Any]:
    """
    Return the realm's JSON Web Key Set, cached for 10 minutes.

    Raises:
        httpx.HTTPError: If Keycloak cannot be reached.
    """
    jwks = _jwks_cache.get(jwks_uri)
    if jwks:
        return jwks
    response = httpx.get(jwks_uri, timeout=5)
    response.raise_for_status()
    jwks = response.json()
    _jwks_cache[jwks_uri] = jwks
    return jwks


def clear_jwks_cache() -> None:
    _jwks_cache.clear()


def _signing_key(token: str, jwks: dict[str, Any]) -> dict[str, Any]:
    kid = jwt.get_unverified_header(token).get("kid")
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    raise JWTError(f"No signing key matches kid={kid}")


def verify_token(token: str) -> AuthenticatedUser:
    """
    Verify a Keycloak access token and build the principal.

    Raises:
        JWTError: If the signature, issuer or expiry is invalid.
        httpx.HTTPError: If the JWKS cannot be fetched.
    """
    key = _signing_key(token, fetch_jwks())
    claims = jwt.decode(
        token,
        key,
        algorithms=ALGORITHMS,
        issuer=ISSUER,
        options={"verify_aud": False},
    )
    client_access = (claims.get("resource_access") or {}).get(KEYCLOAK_CLIENT_ID) or {}
    return AuthenticatedUser(
        sub=claims["sub"],
        preferred_username=claims.get("preferred_username"),
        email=claims.get("email"),
        realm_roles=(claims.get("realm_access") or {}).get("roles", []),
        client_roles=client_access.get("roles", []),
    )


def auth_disabled() -> bool:
    """Auth can only be switched off in development."""
    return APP_ENV == "development" and DISABLE_AUTH


def get_current_user(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency that authenticates the request.

    Behavior:
        - APP_ENV=development with DISABLE_AUTH=true: a fixed developer principal.
        - Missing or malformed Authorization header: 401.
        - Invalid, expired or unverifiable token: 401.
    """
    if auth_disabled():
        return DEV_USER

    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        raise _unauthorized("Token d'authentification manquant")

    token = header[len("Bearer "):]
    try:
        return verify_token(token)
    except (JWTError, KeyError, httpx.HTTPError) as e:
        logger.warning(f"Token verification error: {e}")
        raise _unauthorized("Token invalide ou expiré")


def require_role(role: str):
    """
    Dependency factory restricting a route to principals holding ``role``
    as a realm role or as a role of KEYCLOAK_CLIENT_ID.

    Usage:
        @router.delete("/{id}", dependencies=[Depends(require_role("admin"))])
    """
    def checker(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if not user.has_role(role):
            logger.warning(f"Access denied: user={user.sub} lacks role '{role}'")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permissions insuffisantes",
            )
        return user

    return checker
