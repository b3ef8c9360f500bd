"""Workspace membership model.

Links users to workspaces with a role. Accepted memberships decide who may
use a workspace's routes and who receives workspace-wide notifications.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from crosspost.db.models.base import UUIDModel, TimestampMixin


class WorkspaceRole(str, Enum):
    """Role enum for workspace memberships.

    - owner: all permissions
    - admin: manage social accounts and members
    - editor: create/submit posts, work the inbox
    - viewer: read-only, may approve when enabled
    """

    owner = "owner"
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


class InviteStatus(str, Enum):
    """Status enum for workspace invitations."""

    pending = "pending"
    accepted = "accepted"
    revoked = "revoked"


class WorkspaceMembershipBase(SQLModel):
    """Base membership fields shared across Create/Read."""

    role: WorkspaceRole = Field(default=WorkspaceRole.viewer)


class WorkspaceMembership(
    UUIDModel, WorkspaceMembershipBase, TimestampMixin, table=True
):
    """Junction table granting a user access to a workspace."""

    __tablename__ = "workspace_memberships"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_membership_workspace_user"),
    )

    workspace_id: UUID = Field(foreign_key="workspaces.id", index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    invite_status: InviteStatus = Field(default=InviteStatus.accepted)
    accepted_at: Optional[datetime] = None


class WorkspaceMembershipCreate(WorkspaceMembershipBase):
    """Schema for creating a membership."""

    workspace_id: UUID
    user_id: UUID
    invite_status: InviteStatus = InviteStatus.accepted


class WorkspaceMembershipRead(WorkspaceMembershipBase):
    """Schema for reading membership data."""

    id: UUID
    workspace_id: UUID
    user_id: UUID
    invite_status: InviteStatus
    created_at: datetime
