"""FastAPI backend for the crosspost social media API."""

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from api.error_handlers import register_error_handlers
from api.middleware import (
    MetricsMiddleware,
    RequestIDMiddleware,
    get_metrics,
    get_metrics_content_type,
)
from api.routes import health, ws
from api.routes.v1 import (
    inbox_router,
    notifications_router,
    posts_router,
    publishing_router,
    social_accounts_router,
    webhooks_router,
    whatsapp_router,
)
from crosspost.config import CORS_ORIGINS, LOG_JSON, LOG_LEVEL
from crosspost.logging import configure_structlog

configure_structlog(json_format=LOG_JSON, log_level=LOG_LEVEL)


app = FastAPI(
    title="Crosspost API",
    description="Multi-tenant publishing, unified inbox and notifications for social accounts",
    version="1.0.0",
)

# Middleware is added in reverse order of execution
# Order of execution: CORS -> RequestID -> Metrics -> Route

# Metrics middleware (captures all request metrics)
app.add_middleware(MetricsMiddleware)

# Request IDs for error responses and logs
app.add_middleware(RequestIDMiddleware)

# CORS (outermost - handles preflight requests)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register global error handlers
register_error_handlers(app)

# v1 routes with workspace scoping
app.include_router(posts_router, prefix="/api", tags=["posts"])
app.include_router(publishing_router, prefix="/api", tags=["publishing"])
app.include_router(social_accounts_router, prefix="/api", tags=["social-accounts"])
app.include_router(inbox_router, prefix="/api", tags=["inbox"])
app.include_router(whatsapp_router, prefix="/api", tags=["whatsapp"])
app.include_router(notifications_router, prefix="/api", tags=["notifications"])

# Public platform webhooks (signature-verified, no user auth)
app.include_router(webhooks_router, prefix="/api", tags=["platform-webhooks"])

# Real-time notifications
app.include_router(ws.router, prefix="/api/ws", tags=["websocket"])

# Health check routes (no auth required)
app.include_router(health.router, prefix="/api", tags=["health"])


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )
