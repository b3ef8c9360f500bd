"""Facebook Pages adapter (Graph API)."""

from datetime import datetime, timedelta
from typing import Any, Optional

from crosspost.config import FACEBOOK_APP_ID, FACEBOOK_APP_SECRET, GRAPH_API_VERSION
from crosspost.db.models import SocialPlatform, InboxItemType, utcnow
from crosspost.platforms.base import (
    AccountRef,
    EngagementMetrics,
    InboundItem,
    PlatformAdapter,
    PostContent,
    PublishResult,
    TokenGrant,
    parse_timestamp,
    require_id,
)

GRAPH_BASE_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}"

# Graph error codes
GRAPH_AUTH_CODES = {102, 190}
GRAPH_RATE_LIMIT_CODES = {4, 17, 32, 613}
GRAPH_PERMISSION_CODES = {10, 200}


def graph_error_details(body: Any) -> tuple[Optional[str], Optional[str], Optional[bool]]:
    """Classify a Graph API ``{"error": {...}}`` body.

    Shared by the Facebook, Instagram and WhatsApp adapters.
    """
    if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
        return None, None, None
    error = body["error"]
    message = error.get("message")
    code = error.get("code")

    if code in GRAPH_AUTH_CODES:
        return "AUTH_ERROR", message, False
    if code in GRAPH_RATE_LIMIT_CODES:
        return "RATE_LIMITED", message, True
    if code in GRAPH_PERMISSION_CODES:
        return "PERMISSION_DENIED", message, False
    if error.get("is_transient"):
        return "SERVER_ERROR", message, True
    return None, message, None


class FacebookAdapter(PlatformAdapter):
    """Publishes to a Facebook Page and reads its comments and insights.

    ``platform_account_id`` is the page id; the stored token is a page
    access token passed as the ``access_token`` query parameter.
    """

    platform = SocialPlatform.facebook
    base_url = GRAPH_BASE_URL
    auth_style = "query"

    def _error_details(self, body):
        return graph_error_details(body)

    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        self.validate_content(content)
        page_id = account.platform_account_id

        if content.videos:
            video = content.videos[0]
            body = await self._json(
                "POST",
                f"/{page_id}/videos",
                token=account.access_token,
                data={"file_url": video.url, "description": content.text},
            )
            video_id = require_id(body, self.platform)
            return PublishResult(
                platform_post_id=video_id,
                platform_post_url=f"https://www.facebook.com/{page_id}/videos/{video_id}",
                raw=body,
            )

        if content.images:
            data = {"url": content.images[0].url}
            if content.text:
                data["caption"] = content.text
            body = await self._json(
                "POST", f"/{page_id}/photos", token=account.access_token, data=data
            )
            # Photos return both the photo id and the feed story id
            post_id = str(body.get("post_id") or require_id(body, self.platform))
            return PublishResult(
                platform_post_id=post_id,
                platform_post_url=f"https://www.facebook.com/{post_id}",
                raw=body,
            )

        data = {"message": content.text}
        if content.link_url:
            data["link"] = content.link_url
        body = await self._json("POST", f"/{page_id}/feed", token=account.access_token, data=data)
        post_id = require_id(body, self.platform)
        return PublishResult(
            platform_post_id=post_id,
            platform_post_url=f"https://www.facebook.com/{post_id}",
            raw=body,
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
            params={
                "metric": "post_impressions,post_impressions_unique,"
                "post_engaged_users,post_clicks"
            },
        )
        values: dict[str, int] = {}
        for metric in insights.get("data", []):
            points = metric.get("values") or [{}]
            values[metric.get("name")] = int(points[0].get("value") or 0)

        counts = await self._json(
            "GET",
            f"/{platform_post_id}",
            token=account.access_token,
            params={"fields": "likes.summary(true),comments.summary(true),shares"},
        )

        return EngagementMetrics(
            impressions=values.get("post_impressions", 0),
            reach=values.get("post_impressions_unique", 0),
            engagements=values.get("post_engaged_users", 0),
            clicks=values.get("post_clicks", 0),
            likes=int(counts.get("likes", {}).get("summary", {}).get("total_count", 0)),
            comments=int(counts.get("comments", {}).get("summary", {}).get("total_count", 0)),
            shares=int(counts.get("shares", {}).get("count", 0)),
        )

    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        params = {
            "fields": "id,message,from,created_time,"
            "comments{id,message,from,created_time,parent}",
        }
        if since:
            params["since"] = str(int(since.timestamp()))

        body = await self._json(
            "GET", f"/{account.platform_account_id}/feed", token=account.access_token, params=params
        )

        items = []
        for post in body.get("data", []):
            for comment in post.get("comments", {}).get("data", []):
                author = comment.get("from") or {}
                # Comments authored by the page itself are replies we sent
                if author.get("id") == account.platform_account_id:
                    continue
                parent = comment.get("parent") or {}
                items.append(
                    InboundItem(
                        platform=self.platform,
                        external_item_id=str(comment["id"]),
                        item_type=InboxItemType.comment,
                        author_name=author.get("name") or "Facebook user",
                        author_id=author.get("id"),
                        content=comment.get("message") or "",
                        timestamp=parse_timestamp(comment.get("created_time")),
                        platform_post_id=post.get("id"),
                        thread_id=parent.get("id"),
                    )
                )
        return items

    async def refresh_token(self, account: AccountRef) -> TokenGrant:
        """Exchange the current token for a fresh long-lived one."""
        body = await self._json(
            "GET",
            "/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": FACEBOOK_APP_ID,
                "client_secret": FACEBOOK_APP_SECRET,
                "fb_exchange_token": account.refresh_token or account.access_token,
            },
        )
        expires_in = body.get("expires_in")
        return TokenGrant(
            access_token=body["access_token"],
            expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )
