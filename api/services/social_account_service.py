"""Social account service - connections and token lifecycle.

Stores platform credentials through SocialAccount.update_tokens (encrypted
at rest) and keeps them fresh: refresh_expiring_tokens runs from the
refresh_tokens job and either rotates tokens through the platform adapter
or marks the account for reconnection and tells a human.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlmodel import Session

from api.exceptions import NotFoundError, ValidationError
from api.services.notification_service import NotificationService
from crosspost.config import TOKEN_REFRESH_WINDOW_DAYS
from crosspost.content import SocialAccountRepository
from crosspost.db.crypto import TokenUnavailableError, encrypt_token
from crosspost.db.models import (
    SocialAccount,
    SocialAccountCreate,
    SocialAccountStatus,
    SocialPlatform,
    utcnow,
)
from crosspost.logging import get_logger
from crosspost.platforms import AccountRef, PlatformAdapter, PlatformError, get_adapter

logger = get_logger(__name__)

AdapterFactory = Callable[[SocialPlatform], PlatformAdapter]


@dataclass
class RefreshSummary:
    """Outcome of one token refresh sweep."""

    checked: int = 0
    refreshed: int = 0
    reconnect_required: int = 0
    failed: int = 0
    account_ids: dict[str, list[str]] = field(default_factory=dict)

    def record(self, outcome: str, account_id: UUID) -> None:
        self.account_ids.setdefault(outcome, []).append(str(account_id))


class SocialAccountService:
    """Connect, disconnect and refresh social accounts."""

    def __init__(
        self,
        adapter_factory: AdapterFactory = get_adapter,
        notification_service: Optional[NotificationService] = None,
    ):
        self.adapter_factory = adapter_factory
        self.notification_service = notification_service or NotificationService()

    # ==========================================================================
    # Connections
    # ==========================================================================

    def connect(
        self,
        session: Session,
        workspace_id: UUID,
        data: SocialAccountCreate,
        user_id: Optional[UUID] = None,
    ) -> SocialAccount:
        """Store a newly authorized account, or revive and re-key an existing one."""
        if not data.access_token:
            raise ValidationError("An access token is required to connect an account")

        repo = SocialAccountRepository(session)
        account = repo.get_by_platform_account(
            workspace_id, data.platform, data.platform_account_id, include_deleted=True
        )

        if account is None:
            account = SocialAccount(
                workspace_id=workspace_id,
                connected_by_user_id=user_id,
                platform=data.platform,
                platform_account_id=data.platform_account_id,
                account_name=data.account_name,
                access_token_encrypted=encrypt_token(data.access_token),
            )
        else:
            account.deleted_at = None
            account.disconnected_at = None
            account.connected_at = utcnow()
            account.connected_by_user_id = user_id or account.connected_by_user_id
            account.account_name = data.account_name

        account.update_tokens(data.access_token, data.refresh_token, data.token_expires_at)
        account.account_username = data.account_username
        account.profile_image_url = data.profile_image_url
        account.scopes = data.scopes
        account.account_metadata = data.account_metadata

        session.add(account)
        session.commit()
        session.refresh(account)

        logger.info(
            "social_account_connected",
            account_id=str(account.id),
            workspace_id=str(workspace_id),
            platform=account.platform.value,
        )
        return account

    def get(self, session: Session, workspace_id: UUID, account_id: UUID) -> SocialAccount:
        account = SocialAccountRepository(session).get(workspace_id, account_id)
        if not account:
            raise NotFoundError(f"Social account {account_id} not found")
        return account

    def list_accounts(
        self,
        session: Session,
        workspace_id: UUID,
        platform: Optional[SocialPlatform] = None,
        status: Optional[SocialAccountStatus] = None,
    ) -> list[SocialAccount]:
        return SocialAccountRepository(session).list_for_workspace(
            workspace_id, platform=platform, status=status
        )

    def disconnect(
        self,
        session: Session,
        workspace_id: UUID,
        account_id: UUID,
        revoked: bool = False,
    ) -> SocialAccount:
        """Stop using an account; history (targets, inbox) stays linked."""
        account = self.get(session, workspace_id, account_id)
        account.disconnect(revoked=revoked)
        session.add(account)
        session.commit()
        session.refresh(account)
        logger.info(
            "social_account_disconnected",
            account_id=str(account.id),
            workspace_id=str(workspace_id),
            revoked=revoked,
        )
        return account

    def remove(self, session: Session, workspace_id: UUID, account_id: UUID) -> None:
        """Soft-delete an account (disconnect first)."""
        account = self.get(session, workspace_id, account_id)
        account.disconnect()
        account.deleted_at = utcnow()
        session.add(account)
        session.commit()

    # ==========================================================================
    # Token refresh
    # ==========================================================================

    async def refresh_account(
        self, session: Session, account: SocialAccount, summary: Optional[RefreshSummary] = None
    ) -> bool:
        """Refresh one account's tokens.

        Returns:
            True when new tokens were stored
        """
        summary = summary or RefreshSummary()
        log = logger.bind(account_id=str(account.id), platform=account.platform.value)

        if not account.has_refresh_token():
            account.mark_token_expired("No refresh token; reconnect required")
            await self._require_reconnect(session, account, summary)
            log.info("token_refresh_unavailable")
            return False

        try:
            ref = AccountRef.from_account(account, include_refresh=True)
            grant = await self.adapter_factory(account.platform).refresh_token(ref)
        except TokenUnavailableError as e:
            account.mark_error(str(e))
            await self._require_reconnect(session, account, summary)
            log.error("token_refresh_decrypt_failed")
            return False
        except PlatformError as e:
            if e.retryable:
                # Try again on the next sweep while the old token still works
                account.last_error = f"{e.code}: {e.message}"
                session.add(account)
                session.commit()
                summary.failed += 1
                summary.record("failed", account.id)
                log.warning("token_refresh_transient_failure", error_code=e.code)
                return False
            account.mark_token_expired(f"{e.code}: {e.message}")
            await self._require_reconnect(session, account, summary)
            log.warning("token_refresh_rejected", error_code=e.code)
            return False

        account.update_tokens(grant.access_token, grant.refresh_token, grant.expires_at)
        session.add(account)
        session.commit()
        summary.refreshed += 1
        summary.record("refreshed", account.id)
        log.info("token_refreshed", expires_at=str(grant.expires_at))
        return True

    async def _require_reconnect(
        self, session: Session, account: SocialAccount, summary: RefreshSummary
    ) -> None:
        session.add(account)
        session.commit()
        summary.reconnect_required += 1
        summary.record("reconnect_required", account.id)
        await self.notification_service.notify_token_reconnect(session, account)

    async def refresh_expiring_tokens(
        self,
        session: Session,
        workspace_id: Optional[UUID] = None,
        window_days: int = TOKEN_REFRESH_WINDOW_DAYS,
    ) -> RefreshSummary:
        """Refresh every connected account expiring within the window."""
        before = utcnow() + timedelta(days=window_days)
        accounts = SocialAccountRepository(session).list_expiring(before, workspace_id)

        summary = RefreshSummary(checked=len(accounts))
        for account in accounts:
            await self.refresh_account(session, account, summary)

        logger.info(
            "token_refresh_sweep_completed",
            checked=summary.checked,
            refreshed=summary.refreshed,
            reconnect_required=summary.reconnect_required,
            failed=summary.failed,
        )
        return summary
