"""
FastAPI dependencies for authentication and authorization.

This module provides dependency functions that can be used in route handlers to:
- Extract and validate the current user from a JWT bearer token
- Reach the application's lockout table
- Enforce role-based access control
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db
from models import User
from auth.lockout import LockoutTable
from auth.security import verify_token

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Extract and validate the current user from the JWT bearer token.

    Returns:
        User object if authentication succeeds

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired or
        refers to a user that no longer exists

    Example:
        @app.get("/api/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    if not credentials or not credentials.credentials:
        logger.info("No authentication credentials provided")
        raise _unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        logger.info("Token payload missing 'sub' claim")
        raise _unauthorized("Invalid token payload")

    user = db.query(User).filter(User.id == str(user_id)).first()
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise _unauthorized("User not found")

    logger.debug(f"User authenticated via JWT: {user.name}")
    return user


def get_lockout_table(request: Request) -> LockoutTable:
    """The lockout table owned by the running application."""
    return request.app.state.lockouts


def require_role(required_role: str):
    """
    Create a dependency that requires a specific user role.

    Args:
        required_role: Role required to access the endpoint ('admin' or 'member')

    Returns:
        Dependency function that checks user role
    """
    role_hierarchy = {"member": 0, "admin": 1}

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        current_level = role_hierarchy.get(current_user.role or "member", 0)
        required_level = role_hierarchy.get(required_role, 0)

        if current_level < required_level:
            logger.info(
                f"Access denied: user {current_user.name} has role '{current_user.role}', "
                f"but '{required_role}' is required"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {required_role}",
            )
        return current_user

    return role_checker
