"""Tenant and user models.

A Tenant is the paying organization. It owns Workspaces and Users; its
subscription lives with the billing collaborator and is referenced here only
by plan name.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlmodel import Field, SQLModel

from crosspost.db.models.base import UUIDModel, TimestampMixin, SoftDeleteMixin


class TenantBase(SQLModel):
    """Base tenant fields shared across Create/Read."""

    name: str = Field(index=True)
    slug: str = Field(unique=True, index=True)
    # Nullable during trial
    plan: Optional[str] = Field(default=None)


class Tenant(UUIDModel, TenantBase, SoftDeleteMixin, TimestampMixin, table=True):
    """Tenant table - top-level customer organization."""

    __tablename__ = "tenants"

    trial_ends_at: Optional[datetime] = Field(default=None)


class TenantCreate(TenantBase):
    """Schema for creating a tenant."""

    trial_ends_at: Optional[datetime] = None


class TenantRead(TenantBase):
    """Schema for reading tenant data."""

    id: UUID
    trial_ends_at: Optional[datetime]
    created_at: datetime


class UserBase(SQLModel):
    """Base user fields shared across Create/Read."""

    full_name: Optional[str] = Field(default=None, index=True)
    email: str = Field(unique=True, index=True)


class User(UUIDModel, UserBase, TimestampMixin, table=True):
    """User table - global identity, scoped to a tenant."""

    __tablename__ = "users"

    tenant_id: Optional[UUID] = Field(default=None, foreign_key="tenants.id", index=True)
    is_active: bool = Field(default=True)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class UserCreate(UserBase):
    """Schema for creating a user."""

    tenant_id: Optional[UUID] = None


class UserRead(UserBase):
    """Schema for reading user data."""

    id: UUID
    tenant_id: Optional[UUID]
    is_active: bool
    created_at: datetime
