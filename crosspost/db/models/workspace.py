"""Workspace model for multi-tenancy.

Workspaces are the boundary of data isolation inside a tenant. Posts,
social accounts, inbox items and conversations all carry ``workspace_id``
and are never read across it.
"""

from datetime import datetime
from typing import Optional, Any
from uuid import UUID

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import Field, SQLModel, Column

from crosspost.db.models.base import UUIDModel, TimestampMixin, SoftDeleteMixin


class WorkspaceBase(SQLModel):
    """Base workspace fields shared across Create/Read."""

    name: str = Field(index=True)
    slug: str = Field(index=True)
    description: Optional[str] = None


class Workspace(UUIDModel, WorkspaceBase, SoftDeleteMixin, TimestampMixin, table=True):
    """Workspace table - the boundary of data isolation."""

    __tablename__ = "workspaces"
    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_workspace_tenant_slug"),
    )

    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    owner_id: Optional[UUID] = Field(default=None, foreign_key="users.id", index=True)

    # Example: {"timezone": "Europe/Berlin", "approval_required": true}
    # JSON instead of JSONB for SQLite compatibility in tests.
    settings: Optional[dict[str, Any]] = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )


class WorkspaceCreate(WorkspaceBase):
    """Schema for creating a new workspace."""

    tenant_id: UUID
    owner_id: Optional[UUID] = None
    settings: Optional[dict[str, Any]] = None


class WorkspaceRead(WorkspaceBase):
    """Schema for reading workspace data."""

    id: UUID
    tenant_id: UUID
    owner_id: Optional[UUID]
    settings: Optional[dict[str, Any]]
    created_at: datetime
