"""Social account connections.

Stores one connected external identity (Facebook page, Instagram business
account, LinkedIn member/organization, YouTube channel, Twitter user,
WhatsApp phone number) per row, with its OAuth tokens encrypted at rest.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Any
from uuid import UUID

from sqlalchemy import JSON, LargeBinary, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from crosspost.db.crypto import decrypt_token, encrypt_token, TokenUnavailableError
from crosspost.db.models.base import UUIDModel, TimestampMixin, SoftDeleteMixin, utcnow


class SocialPlatform(str, Enum):
    """Supported social media platforms."""

    facebook = "facebook"
    instagram = "instagram"
    linkedin = "linkedin"
    youtube = "youtube"
    twitter = "twitter"
    whatsapp = "whatsapp"

    @property
    def display_name(self) -> str:
        return _PLATFORM_NAMES[self]

    @property
    def max_text_length(self) -> Optional[int]:
        return _PLATFORM_TEXT_LIMITS.get(self)

    @property
    def requires_media(self) -> bool:
        return self in (SocialPlatform.instagram, SocialPlatform.youtube)


_PLATFORM_NAMES = {
    SocialPlatform.facebook: "Facebook",
    SocialPlatform.instagram: "Instagram",
    SocialPlatform.linkedin: "LinkedIn",
    SocialPlatform.youtube: "YouTube",
    SocialPlatform.twitter: "X (Twitter)",
    SocialPlatform.whatsapp: "WhatsApp",
}

_PLATFORM_TEXT_LIMITS = {
    SocialPlatform.facebook: 63206,
    SocialPlatform.instagram: 2200,
    SocialPlatform.linkedin: 3000,
    SocialPlatform.youtube: 5000,
    SocialPlatform.twitter: 280,
    SocialPlatform.whatsapp: 4096,
}


class SocialAccountStatus(str, Enum):
    """Connection state of a social account."""

    connected = "connected"
    disconnected = "disconnected"
    token_expired = "token_expired"
    revoked = "revoked"
    error = "error"


class SocialAccount(UUIDModel, SoftDeleteMixin, TimestampMixin, table=True):
    """A connected external platform identity.

    Tokens are Fernet-encrypted (see crosspost.db.crypto). The encrypted
    columns are excluded from model serialization; use get_access_token()
    and get_refresh_token() to read plaintext and update_tokens() to rotate.
    """

    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "platform", "platform_account_id",
            name="uq_social_account_workspace_platform_account",
        ),
    )

    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    connected_by_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    platform: SocialPlatform = Field(nullable=False, index=True)

    # Platform-specific identity (page id, IG user id, URN, channel id, phone_number_id)
    platform_account_id: str = Field(nullable=False, index=True)
    account_name: str = Field(nullable=False)
    account_username: Optional[str] = Field(default=None)
    profile_image_url: Optional[str] = Field(default=None)

    access_token_encrypted: bytes = Field(nullable=False, sa_type=LargeBinary, exclude=True)
    refresh_token_encrypted: Optional[bytes] = Field(
        default=None, sa_type=LargeBinary, exclude=True
    )
    token_expires_at: Optional[datetime] = Field(default=None, index=True)
    last_refreshed_at: Optional[datetime] = Field(default=None)

    status: SocialAccountStatus = Field(default=SocialAccountStatus.connected, index=True)
    last_error: Optional[str] = Field(default=None)
    connected_at: datetime = Field(default_factory=utcnow)
    disconnected_at: Optional[datetime] = Field(default=None)

    scopes: Optional[list[str]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    # e.g. {"whatsapp_business_account_id": "..."} or {"page_id": "..."} for IG
    account_metadata: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )

    # ------------------------------------------------------------------
    # Credential access
    # ------------------------------------------------------------------

    def get_access_token(self) -> str:
        """Decrypted access token.

        Raises:
            TokenUnavailableError: If the stored ciphertext cannot be decrypted
        """
        try:
            token = decrypt_token(self.access_token_encrypted)
        except TokenUnavailableError as e:
            raise TokenUnavailableError(str(e), account_id=self.id) from e
        if token is None:
            raise TokenUnavailableError("No access token stored", account_id=self.id)
        return token

    def get_refresh_token(self) -> Optional[str]:
        """Decrypted refresh token, or None when the platform issued none."""
        try:
            return decrypt_token(self.refresh_token_encrypted)
        except TokenUnavailableError as e:
            raise TokenUnavailableError(str(e), account_id=self.id) from e

    def has_refresh_token(self) -> bool:
        return self.refresh_token_encrypted is not None

    def update_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> None:
        """Replace stored credentials in one step.

        Both ciphertexts are produced before any attribute is assigned, so a
        failure leaves the previous pair untouched. A refresh token of None
        keeps the existing one (platforms that do not rotate it).
        """
        access_encrypted = encrypt_token(access_token)
        refresh_encrypted = (
            encrypt_token(refresh_token)
            if refresh_token is not None
            else self.refresh_token_encrypted
        )

        self.access_token_encrypted = access_encrypted
        self.refresh_token_encrypted = refresh_encrypted
        self.token_expires_at = expires_at
        self.last_refreshed_at = utcnow()
        self.status = SocialAccountStatus.connected
        self.last_error = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        return self.status == SocialAccountStatus.connected and self.deleted_at is None

    def is_token_expired(self, now: Optional[datetime] = None) -> bool:
        if self.token_expires_at is None:
            return False
        return self.token_expires_at <= (now or utcnow())

    def is_token_expiring_soon(self, days: int = 7, now: Optional[datetime] = None) -> bool:
        if self.token_expires_at is None:
            return False
        return self.token_expires_at <= (now or utcnow()) + timedelta(days=days)

    def mark_token_expired(self, reason: Optional[str] = None) -> None:
        self.status = SocialAccountStatus.token_expired
        self.last_error = reason or "Access token expired"

    def mark_error(self, reason: str) -> None:
        self.status = SocialAccountStatus.error
        self.last_error = reason

    def disconnect(self, revoked: bool = False) -> None:
        """Soft-disconnect; the row and its history stay."""
        self.status = SocialAccountStatus.revoked if revoked else SocialAccountStatus.disconnected
        self.disconnected_at = utcnow()


class SocialAccountCreate(SQLModel):
    """Create schema for a social account (plaintext tokens, encrypted on write)."""

    platform: SocialPlatform
    platform_account_id: str
    account_name: str
    account_username: Optional[str] = None
    profile_image_url: Optional[str] = None
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    scopes: Optional[list[str]] = None
    account_metadata: Optional[dict[str, Any]] = None


class SocialAccountRead(SQLModel):
    """Read schema for a social account (no tokens exposed)."""

    id: UUID
    workspace_id: UUID
    platform: SocialPlatform
    platform_account_id: str
    account_name: str
    account_username: Optional[str]
    profile_image_url: Optional[str]
    status: SocialAccountStatus
    token_expires_at: Optional[datetime]
    last_refreshed_at: Optional[datetime]
    last_error: Optional[str]
    connected_at: datetime
    created_at: datetime
