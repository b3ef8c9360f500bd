"""FastAPI dependencies for authentication.

Provides:
- get_current_user: Extract and validate user from JWT token
- user_from_token: The same check for WebSocket query-string tokens
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from api.auth.jwt import VALID_ACCESS_TOKEN_TYPES, verify_token
from api.auth.scopes import Scope, has_scope
from crosspost.db.engine import get_session_dependency
from crosspost.db.models import User, WorkspaceMembership, WorkspaceRole

# Security scheme for JWT Bearer tokens
security = HTTPBearer(auto_error=False)


class CurrentUser:
    """Container for authenticated user context.

    Contains the user object and, inside a workspace route, the
    user's membership in that workspace.
    """

    def __init__(
        self,
        user: User,
        membership: Optional[WorkspaceMembership] = None,
    ):
        self.user = user
        self.membership = membership

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def role(self) -> Optional[WorkspaceRole]:
        return self.membership.role if self.membership else None

    def has_scope(self, scope: Scope) -> bool:
        if not self.membership:
            return False
        return has_scope(self.membership.role, scope)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(session: Session, token: Optional[str]) -> User:
    """Validate an access token and load its active user.

    Raises:
        HTTPException 401: Missing, invalid or expired token, or unknown user
    """
    if not token:
        raise _unauthorized("Missing authentication credentials")

    payload = verify_token(token)
    if not payload:
        raise _unauthorized("Invalid or expired token")

    # Only access tokens are accepted on API routes
    if payload.get("type", "access") not in VALID_ACCESS_TOKEN_TYPES:
        raise _unauthorized("Invalid token type for this endpoint")

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid user ID in token")

    user = session.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User account is deactivated")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_session_dependency),
) -> CurrentUser:
    """Extract and validate current user from the Authorization header.

    Raises:
        HTTPException 401: Missing or invalid token, or user not found

    Returns:
        CurrentUser: Authenticated user context (no membership yet)
    """
    token = credentials.credentials if credentials else None
    return CurrentUser(user=user_from_token(session, token))
