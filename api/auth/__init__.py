"""Authentication and authorization module for the API."""

from api.auth.jwt import create_access_token, verify_token
from api.auth.scopes import Scope, ROLE_SCOPES, has_scope, get_scopes_for_role
from api.auth.dependencies import CurrentUser, get_current_user, user_from_token

__all__ = [
    # JWT
    "create_access_token",
    "verify_token",
    # Scopes
    "Scope",
    "ROLE_SCOPES",
    "has_scope",
    "get_scopes_for_role",
    # Dependencies
    "CurrentUser",
    "get_current_user",
    "user_from_token",
]
