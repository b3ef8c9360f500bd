"""RBAC scopes and role-to-scope mappings.

Defines permission scopes and maps workspace roles to their allowed scopes.
"""

from enum import Enum
from typing import FrozenSet

from crosspost.db.models import WorkspaceRole


class Scope(str, Enum):
    """Permission scopes for RBAC.

    Scopes follow the pattern: resource:action
    - posts: drafting, approval and publishing
    - inbox: conversations, assignment, WhatsApp replies
    - accounts: connected social accounts
    """

    # Post permissions
    POSTS_READ = "posts:read"
    POSTS_WRITE = "posts:write"
    POSTS_APPROVE = "posts:approve"
    POSTS_PUBLISH = "posts:publish"

    # Inbox permissions
    INBOX_READ = "inbox:read"
    INBOX_MANAGE = "inbox:manage"

    # Social account permissions
    ACCOUNTS_READ = "accounts:read"
    ACCOUNTS_MANAGE = "accounts:manage"


_OWNER_SCOPES: FrozenSet[Scope] = frozenset(Scope)

_ADMIN_SCOPES: FrozenSet[Scope] = frozenset(Scope)

_EDITOR_SCOPES: FrozenSet[Scope] = frozenset(
    [
        Scope.POSTS_READ,
        Scope.POSTS_WRITE,
        Scope.POSTS_PUBLISH,
        Scope.INBOX_READ,
        Scope.INBOX_MANAGE,
        Scope.ACCOUNTS_READ,
        # Note: editors cannot approve their own content or connect accounts
    ]
)

_VIEWER_SCOPES: FrozenSet[Scope] = frozenset(
    [
        Scope.POSTS_READ,
        Scope.INBOX_READ,
        Scope.ACCOUNTS_READ,
    ]
)


ROLE_SCOPES: dict[WorkspaceRole, FrozenSet[Scope]] = {
    WorkspaceRole.owner: _OWNER_SCOPES,
    WorkspaceRole.admin: _ADMIN_SCOPES,
    WorkspaceRole.editor: _EDITOR_SCOPES,
    WorkspaceRole.viewer: _VIEWER_SCOPES,
}


def has_scope(role: WorkspaceRole, scope: Scope) -> bool:
    """Check if a role has a specific scope."""
    return scope in ROLE_SCOPES.get(role, frozenset())


def get_scopes_for_role(role: WorkspaceRole) -> FrozenSet[Scope]:
    return ROLE_SCOPES.get(role, frozenset())
