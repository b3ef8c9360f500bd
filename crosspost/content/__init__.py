"""Workspace-scoped data access."""

from crosspost.content.repositories import (
    InboxRepository,
    PostRepository,
    SocialAccountRepository,
    WorkspaceRepository,
)

__all__ = [
    "InboxRepository",
    "PostRepository",
    "SocialAccountRepository",
    "WorkspaceRepository",
]
