"""Instagram Business adapter (Graph API, two-step container publish)."""

import asyncio
from datetime import datetime
from typing import Optional

from crosspost.config import (
    GRAPH_API_VERSION,
    INSTAGRAM_CONTAINER_POLL_ATTEMPTS,
    INSTAGRAM_CONTAINER_POLL_INTERVAL,
)
from crosspost.db.models import SocialPlatform, InboxItemType
from crosspost.platforms.base import (
    AccountRef,
    EngagementMetrics,
    InboundItem,
    PlatformAdapter,
    PlatformError,
    PostContent,
    PublishResult,
    parse_timestamp,
    require_id,
)
from crosspost.platforms.facebook import graph_error_details


class InstagramAdapter(PlatformAdapter):
    """Publishes through media containers on an Instagram business account.

    Flow: create container(s) -> wait for FINISHED -> media_publish ->
    read back the permalink. Instagram has no text-only posts.
    """

    platform = SocialPlatform.instagram
    base_url = f"https://graph.facebook.com/{GRAPH_API_VERSION}"
    auth_style = "query"

    def __init__(
        self,
        *args,
        poll_attempts: int = INSTAGRAM_CONTAINER_POLL_ATTEMPTS,
        poll_interval: float = INSTAGRAM_CONTAINER_POLL_INTERVAL,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval

    def _error_details(self, body):
        return graph_error_details(body)

    def validate_content(self, content: PostContent) -> None:
        super().validate_content(content)
        if not content.media:
            raise PlatformError(
                "INSTAGRAM_MEDIA_REQUIRED",
                "Instagram posts require at least one image or video",
                platform=self.platform,
            )

    async def _create_container(self, account: AccountRef, data: dict) -> str:
        body = await self._json(
            "POST",
            f"/{account.platform_account_id}/media",
            token=account.access_token,
            data=data,
        )
        return require_id(body, self.platform)

    async def _wait_until_ready(self, account: AccountRef, container_id: str) -> None:
        for _ in range(self.poll_attempts):
            body = await self._json(
                "GET",
                f"/{container_id}",
                token=account.access_token,
                params={"fields": "status_code"},
            )
            status = body.get("status_code")
            if status == "FINISHED":
                return
            if status in ("ERROR", "EXPIRED"):
                raise PlatformError(
                    "INSTAGRAM_CONTAINER_FAILED",
                    f"Media container {container_id} ended in status {status}",
                    platform=self.platform,
                )
            await asyncio.sleep(self.poll_interval)

        raise PlatformError(
            "INSTAGRAM_CONTAINER_TIMEOUT",
            f"Media container {container_id} was not ready in time",
            retryable=True,
            platform=self.platform,
        )

    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        self.validate_content(content)

        if len(content.media) > 1:
            children = []
            for item in content.media[:10]:
                data = {"is_carousel_item": "true"}
                if item.type == "video":
                    data.update(media_type="VIDEO", video_url=item.url)
                else:
                    data["image_url"] = item.url
                children.append(await self._create_container(account, data))
            for child in children:
                await self._wait_until_ready(account, child)
            container_id = await self._create_container(
                account,
                {"media_type": "CAROUSEL", "children": ",".join(children), "caption": content.text},
            )
        else:
            item = content.media[0]
            if item.type == "video":
                data = {"media_type": "VIDEO", "video_url": item.url, "caption": content.text}
            else:
                data = {"image_url": item.url, "caption": content.text}
            container_id = await self._create_container(account, data)

        # Image containers are usually FINISHED immediately; video and carousels take longer
        await self._wait_until_ready(account, container_id)

        published = await self._json(
            "POST",
            f"/{account.platform_account_id}/media_publish",
            token=account.access_token,
            data={"creation_id": container_id},
        )
        media_id = require_id(published, self.platform)

        details = await self._json(
            "GET", f"/{media_id}", token=account.access_token, params={"fields": "permalink"}
        )
        return PublishResult(
            platform_post_id=media_id,
            platform_post_url=details.get("permalink"),
            raw=published,
        )

    async def fetch_engagement(
        self,
        account: AccountRef,
        platform_post_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> EngagementMetrics:
        insights = await self._json(
            "GET",
            f"/{platform_post_id}/insights",
            token=account.access_token,
            params={"metric": "impressions,reach,engagement,saved,video_views"},
        )
        values: dict[str, int] = {}
        for metric in insights.get("data", []):
            points = metric.get("values") or [{}]
            values[metric.get("name")] = int(points[0].get("value") or 0)

        counts = await self._json(
            "GET",
            f"/{platform_post_id}",
            token=account.access_token,
            params={"fields": "like_count,comments_count"},
        )

        return EngagementMetrics(
            impressions=values.get("impressions", 0),
            reach=values.get("reach", 0),
            engagements=values.get("engagement", 0),
            saves=values.get("saved", 0),
            video_views=values.get("video_views", 0),
            likes=int(counts.get("like_count", 0)),
            comments=int(counts.get("comments_count", 0)),
        )

    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        body = await self._json(
            "GET",
            f"/{account.platform_account_id}/media",
            token=account.access_token,
            params={"fields": "id,comments{id,text,username,timestamp,from}", "limit": "25"},
        )

        items = []
        for media in body.get("data", []):
            for comment in media.get("comments", {}).get("data", []):
                timestamp = parse_timestamp(comment.get("timestamp"))
                if since and timestamp <= since:
                    continue
                author = comment.get("from") or {}
                username = comment.get("username") or author.get("username")
                items.append(
                    InboundItem(
                        platform=self.platform,
                        external_item_id=str(comment["id"]),
                        item_type=InboxItemType.comment,
                        author_name=username or "Instagram user",
                        author_username=username,
                        author_id=author.get("id"),
                        content=comment.get("text") or "",
                        timestamp=timestamp,
                        platform_post_id=media.get("id"),
                    )
                )
        return items
