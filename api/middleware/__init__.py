"""Middleware module for the API."""

from api.middleware.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    record_publish,
    record_webhook_item,
)
from api.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "get_metrics_content_type",
    "record_publish",
    "record_webhook_item",
    "REQUEST_ID_HEADER",
    "RequestIDMiddleware",
]
