"""
Auth utilities for the CV builder API.

Validates Clerk JWTs and extracts user_id from request context.
Falls back to the X-User-Id header only when no Clerk key is configured
(tests, local development).
"""
from fastapi import Header, Request
from typing import Optional
from cvbuilder.core.config import settings
from cvbuilder.core.errors import UnauthorizedError
import jwt
import logging

logger = logging.getLogger("cvbuilder.auth")


def verify_clerk_jwt(token: str) -> Optional[str]:
    """
    Verify Clerk JWT and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id from the 'sub' claim, or None when no CLERK_SECRET_KEY is configured

    Raises:
        UnauthorizedError: Invalid or expired token
    """
    if not settings.CLERK_SECRET_KEY:
        logger.debug("No CLERK_SECRET_KEY configured, skipping JWT validation")
        return None

    try:
        payload = jwt.decode(
            token,
            settings.CLERK_SECRET_KEY,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    return user_id


def _upsert_user(user_id: str) -> None:
    try:
        from cvbuilder.features.users.service import get_or_create_user
        get_or_create_user(user_id)
    except Exception as e:
        # Don't block auth if upsert fails
        logger.warning(f"Failed to upsert user {user_id}: {e}")


def resolve_user_id(request: Request, x_user_id: Optional[str]) -> Optional[str]:
    """
    Priority:
    1. Clerk JWT from Authorization header
    2. X-User-Id header, ignored once CLERK_SECRET_KEY is set
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_clerk_jwt(auth_header[7:])
        if user_id:
            return user_id

    if x_user_id and not settings.CLERK_SECRET_KEY:
        return x_user_id
    return None


def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Test / local user ID"),
) -> str:
    """
    Extract current user ID; upserts the user and sets request.state.user_id.

    Raises:
        UnauthorizedError: Missing authentication
    """
    user_id = resolve_user_id(request, x_user_id)
    if not user_id:
        raise UnauthorizedError("Authentication required")

    _upsert_user(user_id)
    request.state.user_id = user_id
    return user_id


def get_optional_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Test / local user ID"),
) -> Optional[str]:
    """Like get_current_user_id but returns None for anonymous callers."""
    user_id = resolve_user_id(request, x_user_id)
    if user_id:
        _upsert_user(user_id)
        request.state.user_id = user_id
    return user_id
