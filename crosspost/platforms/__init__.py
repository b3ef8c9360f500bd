"""Platform client adapters."""

from crosspost.platforms.base import (
    AccountRef,
    EngagementMetrics,
    InboundItem,
    PlatformAdapter,
    PlatformError,
    PostContent,
    PublishResult,
    TokenGrant,
)
from crosspost.platforms.registry import UnknownPlatformError, get_adapter, get_available_platforms

__all__ = [
    "AccountRef",
    "EngagementMetrics",
    "InboundItem",
    "PlatformAdapter",
    "PlatformError",
    "PostContent",
    "PublishResult",
    "TokenGrant",
    "UnknownPlatformError",
    "get_adapter",
    "get_available_platforms",
]
