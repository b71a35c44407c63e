"""
Authentication and Authorization Module

FastAPI dependencies for staff endpoints. Staff requests carry a JWT
issued by the school's identity provider; the token's ``role`` claim must
be one of the staff roles.

Parent requests are not authenticated here: a parent is authorized by the
possession of an invitation token (see the enrollments router).

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from admissions.core.config import settings
from admissions.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for staff authentication",
)

STAFF_ROLES = frozenset({"admin", "secretary", "coordinator"})


@dataclass
class StaffUser:
    """
    Represents an authenticated school staff member.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: One of admin, secretary or coordinator
        name: User's display name (optional)
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    def __str__(self) -> str:
        return f"StaffUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    settings.is_development must be True, settings.is_production must be
    False and the PYTHON_ENV variable must not name a deployed environment.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_STAFF = StaffUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="secretaria@escola.dev",
    role="admin",
    name="Development Staff",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> StaffUser:
    """
    Validate JWT token and extract user claims.

    Args:
        token: JWT token string from Authorization header

    Returns:
        StaffUser with claims from the token

    Raises:
        HTTPException 401: If token is invalid or expired
    """
    if _DEVELOPMENT_MODE:
        if token in ["dev-token", "test-token", "bearer"]:
            logger.debug("Development mode: Using test token")
            return _DEV_STAFF

        # Accept UUID tokens as user IDs for testing
        try:
            user_id = UUID(token)
            return StaffUser(
                id=user_id,
                email=f"staff-{str(user_id)[:8]}@escola.dev",
                role="admin",
                name="Test Staff",
            )
        except ValueError:
            pass

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        token_type = payload.get("type", "access")
        if token_type != "access":
            logger.warning(f"Invalid token type: {token_type}")
            raise _unauthorized(
                "INVALID_TOKEN_TYPE", "This endpoint requires an access token."
            )

        return StaffUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )

    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_staff_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> StaffUser:
    """
    FastAPI dependency that validates the JWT token and returns the staff user.

    Usage:
        @router.post("/admin/enrollments/{enrollment_id}/approve")
        async def approve(staff: StaffUser = Depends(get_current_staff_user)):
            ...

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the user does not have a staff role
    """
    user = await _validate_jwt_token(credentials.credentials)

    if user.role not in STAFF_ROLES:
        logger.warning(
            f"Access denied: User {user.id} ({user.email}) has role '{user.role}', "
            "which is not a staff role"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "STAFF_ACCESS_REQUIRED",
                "message": "School staff access is required for this endpoint.",
            },
        )

    # Used by the staff rate limit key
    request.state.staff_id = user.id

    logger.debug(f"Authenticated staff: {user.id} ({user.email})")
    return user


__all__ = [
    "STAFF_ROLES",
    "StaffUser",
    "get_current_staff_user",
]
