"""
Bearer-token authentication for Intake APIs.

Accepts two kinds of HS256 JWTs:
1. Operator access tokens issued by the record store's auth service
2. Service tokens minted for scripts and service-to-service calls

Usage:
    from src.core.auth import CurrentUserDep

    @router.post("/endpoint")
    async def endpoint(user: CurrentUserDep):
        # user.email becomes the audit actor
        pass
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel

from src.settings import settings

SERVICE_AUTH_ISSUER = "intake-services"
SERVICE_AUTH_AUDIENCE = "intake"


class ServiceTokenPayload(BaseModel):
    """Service authentication token payload."""

    service_name: str
    iss: str  # issuer
    sub: str  # subject (service identifier)
    aud: str  # audience
    iat: int  # issued at
    exp: int  # expires at
    email: str | None = None  # operator running the script, if any
    permissions: list[str] = []
    environment: str = "production"


class AuthenticatedUser(BaseModel):
    """Represents an authenticated caller from any auth method."""

    auth_type: str  # "operator" or "service"
    user_id: str | None = None
    email: str | None = None
    role: str | None = None
    service_name: str | None = None
    permissions: list[str] = []


def verify_operator_token(token: str) -> dict[str, Any]:
    """Verify an operator access token issued by the record store.

    Raises:
        HTTPException: If the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.store_jwt_secret,
            algorithms=["HS256"],
            audience=settings.store_jwt_audience,
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token has expired",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid access token: {e}",
        ) from e


def verify_service_token(token: str) -> ServiceTokenPayload:
    """Verify a service JWT token.

    Raises:
        HTTPException: If the token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.service_auth_secret,
            algorithms=["HS256"],
            audience=SERVICE_AUTH_AUDIENCE,
            issuer=SERVICE_AUTH_ISSUER,
            options={"verify_exp": True},
        )
        return ServiceTokenPayload(**payload)
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Service token has expired",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid service token: {e}",
        ) from e


def create_service_token(
    service_name: str,
    secret: str | None = None,
    email: str | None = None,
    permissions: list[str] | None = None,
    expires_hours: int = 1,
) -> str:
    """Create a service JWT token.

    Args:
        service_name: Name of the calling service or script
        secret: Signing secret; defaults to the configured service secret
        email: Operator on whose behalf the service acts
        permissions: List of permission strings
        expires_hours: Token validity in hours

    Returns:
        The signed JWT token
    """
    now = datetime.now(timezone.utc)
    expires = now + timedelta(hours=expires_hours)

    payload = {
        "service_name": service_name,
        "iss": SERVICE_AUTH_ISSUER,
        "sub": f"service:{service_name}",
        "aud": SERVICE_AUTH_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
        "email": email,
        "permissions": permissions or [],
        "environment": os.getenv("ENVIRONMENT", "production"),
    }

    return jwt.encode(payload, secret or settings.service_auth_secret, algorithm="HS256")


def _get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_current_user(request: Request) -> AuthenticatedUser:
    """Get the current authenticated caller.

    Tries the bearer token as an operator access token first, then as a
    service token.

    Raises:
        HTTPException: If no valid authentication is found
    """
    bearer_token = _get_bearer_token(request)
    if bearer_token:
        try:
            claims = verify_operator_token(bearer_token)
            return AuthenticatedUser(
                auth_type="operator",
                user_id=claims.get("sub"),
                email=claims.get("email"),
                role=claims.get("role"),
            )
        except HTTPException:
            pass  # Try service token

        try:
            service_payload = verify_service_token(bearer_token)
            return AuthenticatedUser(
                auth_type="service",
                email=service_payload.email,
                service_name=service_payload.service_name,
                permissions=service_payload.permissions,
            )
        except HTTPException:
            pass

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Provide an access token or service token.",
        headers={"WWW-Authenticate": "Bearer"},
    )


# Type alias for dependency injection
CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]


def require_permission(permission: str) -> Any:
    """Create a dependency that requires a specific permission.

    Operators are trusted by role; service tokens must carry the permission.
    """

    async def check_permission(user: CurrentUserDep) -> AuthenticatedUser:
        if user.auth_type == "service" and permission not in user.permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required permission: {permission}",
            )
        return user

    return Depends(check_permission)


# Common permissions
class Permissions:
    """Common permission constants."""

    IMPORT_READ = "import.read"
    IMPORT_WRITE = "import.write"
