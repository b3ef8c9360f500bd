"""Initial schema: tenancy, social accounts, posts, inbox, WhatsApp, notifications, jobs.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

Creates:
- tenants, users, workspaces, workspace_memberships
- social_accounts (encrypted tokens)
- posts, post_targets
- inbox_conversations, inbox_items
- whatsapp_conversations, whatsapp_messages
- notifications
- jobs (DB-backed queue)
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


UUID = postgresql.UUID(as_uuid=True)

# Shared by several tables; created once in upgrade()
platform_enum = postgresql.ENUM(
    "facebook", "instagram", "linkedin", "youtube", "twitter", "whatsapp",
    name="socialplatform",
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def _index(table: str, *columns: str, unique: bool = False) -> None:
    op.create_index(f"ix_{table}_{'_'.join(columns)}", table, list(columns), unique=unique)


def upgrade() -> None:
    platform_enum.create(op.get_bind(), checkfirst=True)

    # ==========================================================================
    # Tenancy
    # ==========================================================================

    op.create_table(
        "tenants",
        sa.Column("id", UUID, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("plan", sa.String(), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("tenants", "name")
    _index("tenants", "slug", unique=True)
    _index("tenants", "deleted_at")

    op.create_table(
        "users",
        sa.Column("id", UUID, nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("tenant_id", UUID, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
    )
    _index("users", "email", unique=True)
    _index("users", "full_name")
    _index("users", "tenant_id")

    op.create_table(
        "workspaces",
        sa.Column("id", UUID, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("tenant_id", UUID, nullable=False),
        sa.Column("owner_id", UUID, nullable=True),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_workspace_tenant_slug"),
    )
    _index("workspaces", "name")
    _index("workspaces", "slug")
    _index("workspaces", "tenant_id")
    _index("workspaces", "owner_id")
    _index("workspaces", "deleted_at")

    op.create_table(
        "workspace_memberships",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column(
            "role",
            sa.Enum("owner", "admin", "editor", "viewer", name="workspacerole"),
            nullable=False,
        ),
        sa.Column(
            "invite_status",
            sa.Enum("pending", "accepted", "revoked", name="invitestatus"),
            nullable=False,
        ),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_membership_workspace_user"),
    )
    _index("workspace_memberships", "workspace_id")
    _index("workspace_memberships", "user_id")

    # ==========================================================================
    # Social accounts
    # ==========================================================================

    op.create_table(
        "social_accounts",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("connected_by_user_id", UUID, nullable=True),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column("platform_account_id", sa.String(), nullable=False),
        sa.Column("account_name", sa.String(), nullable=False),
        sa.Column("account_username", sa.String(), nullable=True),
        sa.Column("profile_image_url", sa.String(), nullable=True),
        sa.Column("access_token_encrypted", sa.LargeBinary(), nullable=False),
        sa.Column("refresh_token_encrypted", sa.LargeBinary(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(), nullable=True),
        sa.Column("last_refreshed_at", sa.DateTime(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "connected", "disconnected", "token_expired", "revoked", "error",
                name="socialaccountstatus",
            ),
            nullable=False,
        ),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("connected_at", sa.DateTime(), nullable=False),
        sa.Column("disconnected_at", sa.DateTime(), nullable=True),
        sa.Column("scopes", sa.JSON(), nullable=True),
        sa.Column("account_metadata", sa.JSON(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["connected_by_user_id"], ["users.id"]),
        sa.UniqueConstraint(
            "workspace_id", "platform", "platform_account_id",
            name="uq_social_account_workspace_platform_account",
        ),
    )
    _index("social_accounts", "workspace_id")
    _index("social_accounts", "platform")
    _index("social_accounts", "platform_account_id")
    _index("social_accounts", "token_expires_at")
    _index("social_accounts", "status")
    _index("social_accounts", "deleted_at")

    # ==========================================================================
    # Posts
    # ==========================================================================

    op.create_table(
        "posts",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("created_by_user_id", UUID, nullable=True),
        sa.Column("content_text", sa.Text(), nullable=True),
        sa.Column("link_url", sa.String(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "draft", "submitted", "approved", "rejected", "scheduled",
                "publishing", "published", "failed", "cancelled",
                name="poststatus",
            ),
            nullable=False,
        ),
        sa.Column("media", sa.JSON(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by_user_id", UUID, nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["approved_by_user_id"], ["users.id"]),
    )
    _index("posts", "workspace_id")
    _index("posts", "status")
    _index("posts", "scheduled_at")
    _index("posts", "deleted_at")

    op.create_table(
        "post_targets",
        sa.Column("id", UUID, nullable=False),
        sa.Column("post_id", UUID, nullable=False),
        sa.Column("social_account_id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "publishing", "published", "failed", name="posttargetstatus"),
            nullable=False,
        ),
        sa.Column("platform_post_id", sa.String(), nullable=True),
        sa.Column("platform_post_url", sa.String(), nullable=True),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("retryable", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metrics", sa.JSON(), nullable=True),
        sa.Column("metrics_updated_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["social_account_id"], ["social_accounts.id"]),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("post_id", "social_account_id", name="uq_post_target_post_account"),
    )
    _index("post_targets", "post_id")
    _index("post_targets", "social_account_id")
    _index("post_targets", "workspace_id")
    _index("post_targets", "status")
    _index("post_targets", "platform_post_id")

    # ==========================================================================
    # Inbox
    # ==========================================================================

    op.create_table(
        "inbox_conversations",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("social_account_id", UUID, nullable=False),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column("conversation_key", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "resolved", "archived", name="conversationstatus"),
            nullable=False,
        ),
        sa.Column("subject", sa.String(), nullable=True),
        sa.Column("participant_name", sa.String(), nullable=True),
        sa.Column("participant_username", sa.String(), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("first_message_at", sa.DateTime(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_to_user_id", UUID, nullable=True),
        sa.Column("assigned_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by_user_id", UUID, nullable=True),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["social_account_id"], ["social_accounts.id"]),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["resolved_by_user_id"], ["users.id"]),
        sa.UniqueConstraint(
            "workspace_id", "social_account_id", "conversation_key",
            name="uq_inbox_conversation_key",
        ),
    )
    _index("inbox_conversations", "workspace_id")
    _index("inbox_conversations", "social_account_id")
    _index("inbox_conversations", "conversation_key")
    _index("inbox_conversations", "status")
    _index("inbox_conversations", "last_message_at")
    _index("inbox_conversations", "assigned_to_user_id")

    op.create_table(
        "inbox_items",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("social_account_id", UUID, nullable=False),
        sa.Column("conversation_id", UUID, nullable=True),
        sa.Column("post_target_id", UUID, nullable=True),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column(
            "item_type",
            sa.Enum(
                "comment", "mention", "direct_message", "whatsapp_message",
                name="inboxitemtype",
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("unread", "read", "resolved", "archived", name="inboxitemstatus"),
            nullable=False,
        ),
        sa.Column("platform_item_id", sa.String(), nullable=False),
        sa.Column("platform_post_id", sa.String(), nullable=True),
        sa.Column("author_name", sa.String(), nullable=False),
        sa.Column("author_username", sa.String(), nullable=True),
        sa.Column("author_profile_url", sa.String(), nullable=True),
        sa.Column("author_avatar_url", sa.String(), nullable=True),
        sa.Column("content_text", sa.Text(), nullable=True),
        sa.Column("platform_created_at", sa.DateTime(), nullable=False),
        sa.Column("assigned_to_user_id", UUID, nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("item_metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["social_account_id"], ["social_accounts.id"]),
        sa.ForeignKeyConstraint(["conversation_id"], ["inbox_conversations.id"]),
        sa.ForeignKeyConstraint(["post_target_id"], ["post_targets.id"]),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["users.id"]),
        sa.UniqueConstraint(
            "social_account_id", "platform_item_id",
            name="uq_inbox_item_account_platform_item",
        ),
    )
    _index("inbox_items", "workspace_id")
    _index("inbox_items", "social_account_id")
    _index("inbox_items", "conversation_id")
    _index("inbox_items", "status")
    _index("inbox_items", "platform_post_id")
    _index("inbox_items", "platform_created_at")

    # ==========================================================================
    # WhatsApp
    # ==========================================================================

    op.create_table(
        "whatsapp_conversations",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("social_account_id", UUID, nullable=False),
        sa.Column("inbox_conversation_id", UUID, nullable=True),
        sa.Column("customer_phone", sa.String(), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "closed", name="whatsappconversationstatus"),
            nullable=False,
        ),
        sa.Column("last_customer_message_at", sa.DateTime(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
        sa.Column("conversation_expires_at", sa.DateTime(), nullable=True),
        sa.Column("is_within_service_window", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("assigned_to_user_id", UUID, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["social_account_id"], ["social_accounts.id"]),
        sa.ForeignKeyConstraint(["inbox_conversation_id"], ["inbox_conversations.id"]),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["users.id"]),
        sa.UniqueConstraint(
            "social_account_id", "customer_phone",
            name="uq_whatsapp_conversation_account_phone",
        ),
    )
    _index("whatsapp_conversations", "workspace_id")
    _index("whatsapp_conversations", "social_account_id")
    _index("whatsapp_conversations", "customer_phone")

    op.create_table(
        "whatsapp_messages",
        sa.Column("id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("conversation_id", UUID, nullable=False),
        sa.Column("wamid", sa.String(), nullable=True),
        sa.Column(
            "direction",
            sa.Enum("inbound", "outbound", name="whatsappmessagedirection"),
            nullable=False,
        ),
        sa.Column(
            "message_type",
            sa.Enum(
                "text", "image", "video", "audio", "document", "sticker", "location",
                "contacts", "interactive", "reaction", "template", "unknown",
                name="whatsappmessagetype",
            ),
            nullable=False,
        ),
        sa.Column("content_text", sa.Text(), nullable=True),
        sa.Column("media_id", sa.String(), nullable=True),
        sa.Column("media_mime_type", sa.String(), nullable=True),
        sa.Column("template_name", sa.String(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "sent", "delivered", "read", "failed",
                name="whatsappmessagestatus",
            ),
            nullable=False,
        ),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=True),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("sent_by_user_id", UUID, nullable=True),
        sa.Column("platform_timestamp", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["conversation_id"], ["whatsapp_conversations.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["sent_by_user_id"], ["users.id"]),
    )
    _index("whatsapp_messages", "workspace_id")
    _index("whatsapp_messages", "conversation_id")
    _index("whatsapp_messages", "wamid", unique=True)

    # ==========================================================================
    # Notifications
    # ==========================================================================

    op.create_table(
        "notifications",
        sa.Column("id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("workspace_id", UUID, nullable=False),
        sa.Column("actor_id", UUID, nullable=True),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("resource_type", sa.String(), nullable=True),
        sa.Column("resource_id", UUID, nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("broadcast_attempts", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"]),
    )
    _index("notifications", "user_id")
    _index("notifications", "workspace_id")
    _index("notifications", "read_at")

    # ==========================================================================
    # Job queue
    # ==========================================================================

    op.create_table(
        "jobs",
        sa.Column("id", UUID, nullable=False),
        sa.Column(
            "job_type",
            sa.Enum("publish_post", "refresh_tokens", name="jobtype"),
            nullable=False,
        ),
        sa.Column("workspace_id", UUID, nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "running", "completed", "failed", name="jobstatus"),
            nullable=False,
        ),
        sa.Column("run_at", sa.DateTime(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
    )
    _index("jobs", "job_type")
    _index("jobs", "workspace_id")
    _index("jobs", "status")
    _index("jobs", "run_at")
    _index("jobs", "idempotency_key", unique=True)


def downgrade() -> None:
    for table in (
        "jobs",
        "notifications",
        "whatsapp_messages",
        "whatsapp_conversations",
        "inbox_items",
        "inbox_conversations",
        "post_targets",
        "posts",
        "social_accounts",
        "workspace_memberships",
        "workspaces",
        "users",
        "tenants",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        "jobtype",
        "jobstatus",
        "whatsappmessagestatus",
        "whatsappmessagetype",
        "whatsappmessagedirection",
        "whatsappconversationstatus",
        "inboxitemstatus",
        "inboxitemtype",
        "conversationstatus",
        "posttargetstatus",
        "poststatus",
        "socialaccountstatus",
        "socialplatform",
        "invitestatus",
        "workspacerole",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
