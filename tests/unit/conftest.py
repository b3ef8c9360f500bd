"""Unit test configuration.

Sets up environment variables required for module imports, an in-memory
SQLite database per test, and small factories for tenant-owned rows.
"""

import os

# Set test environment variables before any imports
os.environ.setdefault("JWT_SECRET", "test-secret-for-unit-tests")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("META_APP_SECRET", "meta-test-secret")
os.environ.setdefault("META_VERIFY_TOKEN", "meta-verify-token")
os.environ.setdefault("TWITTER_CONSUMER_SECRET", "twitter-test-secret")

from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from crosspost.db import models  # noqa: F401
from crosspost.db.models import (
    Post,
    PostStatus,
    PostTarget,
    SocialAccount,
    SocialAccountStatus,
    SocialPlatform,
    Tenant,
    User,
    Workspace,
    WorkspaceMembership,
    WorkspaceRole,
    utcnow,
)
from crosspost.db.crypto import encrypt_token
from crosspost.platforms import EngagementMetrics, PlatformError, PublishResult, TokenGrant


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


class Factory:
    """Creates committed rows with sensible defaults."""

    def __init__(self, session: Session):
        self.session = session

    def _save(self, row):
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def tenant(self, name: str = "Acme") -> Tenant:
        return self._save(Tenant(name=name, slug=f"{name.lower()}-{uuid4().hex[:6]}"))

    def user(self, tenant: Optional[Tenant] = None, email: Optional[str] = None) -> User:
        return self._save(
            User(
                email=email or f"user-{uuid4().hex[:8]}@example.com",
                full_name="Test User",
                tenant_id=tenant.id if tenant else None,
            )
        )

    def workspace(self, tenant: Optional[Tenant] = None, name: str = "Main") -> Workspace:
        tenant = tenant or self.tenant()
        return self._save(
            Workspace(tenant_id=tenant.id, name=name, slug=f"{name.lower()}-{uuid4().hex[:6]}")
        )

    def member(
        self, workspace: Workspace, user: User, role: WorkspaceRole = WorkspaceRole.editor
    ) -> WorkspaceMembership:
        return self._save(
            WorkspaceMembership(workspace_id=workspace.id, user_id=user.id, role=role)
        )

    def account(
        self,
        workspace: Workspace,
        platform: SocialPlatform = SocialPlatform.facebook,
        platform_account_id: Optional[str] = None,
        access_token: str = "access-token",
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
        status: SocialAccountStatus = SocialAccountStatus.connected,
        connected_by: Optional[User] = None,
    ) -> SocialAccount:
        return self._save(
            SocialAccount(
                workspace_id=workspace.id,
                platform=platform,
                platform_account_id=platform_account_id or uuid4().hex[:12],
                account_name=f"{platform.value} account",
                access_token_encrypted=encrypt_token(access_token),
                refresh_token_encrypted=encrypt_token(refresh_token) if refresh_token else None,
                token_expires_at=token_expires_at,
                status=status,
                connected_by_user_id=connected_by.id if connected_by else None,
            )
        )

    def post(
        self,
        workspace: Workspace,
        accounts: tuple = (),
        status: PostStatus = PostStatus.draft,
        text: str = "Hello world",
        media: Optional[list] = None,
        scheduled_at: Optional[datetime] = None,
        author: Optional[User] = None,
    ) -> Post:
        post = self._save(
            Post(
                workspace_id=workspace.id,
                content_text=text,
                media=media,
                status=status,
                scheduled_at=scheduled_at,
                created_by_user_id=author.id if author else None,
            )
        )
        for account in accounts:
            self.session.add(
                PostTarget(
                    post_id=post.id,
                    social_account_id=account.id,
                    workspace_id=workspace.id,
                    platform=account.platform,
                )
            )
        self.session.commit()
        return post


@pytest.fixture
def factory(session):
    return Factory(session)


@pytest.fixture
def tenant(factory):
    return factory.tenant()


@pytest.fixture
def workspace(factory, tenant):
    return factory.workspace(tenant)


@pytest.fixture
def owner(factory, tenant, workspace):
    user = factory.user(tenant)
    factory.member(workspace, user, WorkspaceRole.owner)
    return user


# =============================================================================
# Fakes
# =============================================================================


class FakeAdapter:
    """Scripted stand-in for a platform adapter.

    ``outcome`` is returned from publish_post, or raised when it is an
    exception.
    """

    def __init__(self, platform: SocialPlatform, outcome=None):
        self.platform = platform
        self.outcome = outcome or PublishResult(platform_post_id=f"{platform.value}-post-1")
        self.published = []
        self.engagement = EngagementMetrics(likes=3, comments=1)
        self.grant = TokenGrant(
            access_token="new-access", refresh_token="new-refresh", expires_at=utcnow() + timedelta(days=60)
        )
        self.inbound = []
        self.sent = []

    async def publish_post(self, account, content):
        self.published.append((account, content))
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def fetch_engagement(self, account, platform_post_id, since=None, until=None):
        return self.engagement

    async def fetch_inbound_items(self, account, since=None):
        return list(self.inbound)

    async def refresh_token(self, account):
        if isinstance(self.grant, BaseException):
            raise self.grant
        return self.grant

    async def send_text(self, account, to, text, preview_url=False):
        self.sent.append(("text", to, text))
        return f"wamid.out.{len(self.sent)}"

    async def send_template(self, account, to, template_name, language_code="en_US", components=None):
        self.sent.append(("template", to, template_name))
        return f"wamid.out.{len(self.sent)}"


class FakeAdapters:
    """Adapter factory handing out one FakeAdapter per platform."""

    def __init__(self):
        self.adapters: dict[SocialPlatform, FakeAdapter] = {}

    def __getitem__(self, platform: SocialPlatform) -> FakeAdapter:
        if platform not in self.adapters:
            self.adapters[platform] = FakeAdapter(platform)
        return self.adapters[platform]

    def __call__(self, platform) -> FakeAdapter:
        return self[SocialPlatform(platform)]

    def fail(self, platform: SocialPlatform, code: str = "SERVER_ERROR", retryable: bool = True):
        self[platform].outcome = PlatformError(
            code, f"{platform.value} is down", retryable=retryable, platform=platform
        )


@pytest.fixture
def adapters():
    return FakeAdapters()


class RecordingBroadcaster:
    """Broadcaster that records events, or raises when ``error`` is set."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.events = []

    async def send_to_user(self, user_id, event):
        if self.error is not None:
            raise self.error
        self.events.append((user_id, event))
        return 1


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()
