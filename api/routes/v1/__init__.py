"""v1 API routes with workspace scoping.

All workspace routes follow the pattern:
/api/v1/w/{workspace_id}/...

This ensures proper multi-tenancy by including workspace context in the URL.

Platform webhook receivers are public and live under /api/webhooks/{platform}.
"""

from api.routes.v1.posts import router as posts_router
from api.routes.v1.publishing import router as publishing_router
from api.routes.v1.social_accounts import router as social_accounts_router
from api.routes.v1.inbox import router as inbox_router
from api.routes.v1.whatsapp import router as whatsapp_router
from api.routes.v1.notifications import router as notifications_router
from api.routes.v1.webhooks import router as webhooks_router

__all__ = [
    "posts_router",
    "publishing_router",
    "social_accounts_router",
    "inbox_router",
    "whatsapp_router",
    "notifications_router",
    "webhooks_router",
]
