"""Platform adapter registry.

Usage:
    from crosspost.platforms.registry import get_adapter

    adapter = get_adapter("facebook")
    result = await adapter.publish_post(account_ref, content)
"""

from typing import Optional, Union

import httpx

from crosspost.db.models import SocialPlatform
from crosspost.platforms.base import PlatformAdapter

ADAPTER_REGISTRY: dict[SocialPlatform, type[PlatformAdapter]] = {}


class UnknownPlatformError(ValueError):
    """No adapter is registered for the requested platform."""


def _lazy_load_registry():
    """Lazily populate the registry to avoid import cycles."""
    if ADAPTER_REGISTRY:
        return

    from crosspost.platforms.facebook import FacebookAdapter
    from crosspost.platforms.instagram import InstagramAdapter
    from crosspost.platforms.linkedin import LinkedInAdapter
    from crosspost.platforms.twitter import TwitterAdapter
    from crosspost.platforms.whatsapp import WhatsAppAdapter
    from crosspost.platforms.youtube import YouTubeAdapter

    ADAPTER_REGISTRY.update({
        SocialPlatform.facebook: FacebookAdapter,
        SocialPlatform.instagram: InstagramAdapter,
        SocialPlatform.linkedin: LinkedInAdapter,
        SocialPlatform.twitter: TwitterAdapter,
        SocialPlatform.youtube: YouTubeAdapter,
        SocialPlatform.whatsapp: WhatsAppAdapter,
    })


def get_adapter(
    platform: Union[SocialPlatform, str],
    client: Optional[httpx.AsyncClient] = None,
    **kwargs,
) -> PlatformAdapter:
    """Create the adapter for a platform.

    Args:
        platform: SocialPlatform or its string value
        client: Shared httpx client (tests pass one with a MockTransport)
        **kwargs: Forwarded to the adapter constructor

    Raises:
        UnknownPlatformError: If the platform is not supported
    """
    _lazy_load_registry()

    try:
        key = SocialPlatform(platform)
    except ValueError:
        key = None

    if key is None or key not in ADAPTER_REGISTRY:
        raise UnknownPlatformError(
            f"Unknown platform: {platform}. "
            f"Available: {[p.value for p in ADAPTER_REGISTRY]}"
        )
    return ADAPTER_REGISTRY[key](client=client, **kwargs)


def get_available_platforms() -> list[str]:
    _lazy_load_registry()
    return [p.value for p in ADAPTER_REGISTRY]
