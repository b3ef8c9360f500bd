"""LinkedIn adapter (UGC Posts API)."""

from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote

from crosspost.config import LINKEDIN_CLIENT_ID, LINKEDIN_CLIENT_SECRET
from crosspost.db.models import SocialPlatform, InboxItemType, utcnow
from crosspost.platforms.base import (
    AccountRef,
    EngagementMetrics,
    InboundItem,
    PlatformAdapter,
    PlatformError,
    PostContent,
    PublishResult,
    TokenGrant,
    parse_timestamp,
)

RESTLI_HEADERS = {"X-Restli-Protocol-Version": "2.0.0"}
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"


def author_urn(platform_account_id: str) -> str:
    if platform_account_id.startswith("urn:li:"):
        return platform_account_id
    return f"urn:li:person:{platform_account_id}"


class LinkedInAdapter(PlatformAdapter):
    """Publishes UGC shares as a member or organization."""

    platform = SocialPlatform.linkedin
    base_url = "https://api.linkedin.com/v2"

    def _error_details(self, body):
        if isinstance(body, dict) and body.get("message"):
            return None, body["message"], None
        return None, None, None

    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        self.validate_content(content)

        share: dict = {
            "shareCommentary": {"text": content.text},
            "shareMediaCategory": "NONE",
        }
        if content.link_url:
            share["shareMediaCategory"] = "ARTICLE"
            share["media"] = [{"status": "READY", "originalUrl": content.link_url}]
        elif content.media:
            share["shareMediaCategory"] = "VIDEO" if content.videos else "IMAGE"
            share["media"] = [
                {
                    "status": "READY",
                    "originalUrl": item.url,
                    **({"description": {"text": item.alt_text}} if item.alt_text else {}),
                }
                for item in content.media
            ]

        payload = {
            "author": author_urn(account.platform_account_id),
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }

        response = await self._request(
            "POST", "/ugcPosts", token=account.access_token, json=payload, headers=RESTLI_HEADERS
        )
        post_urn = response.headers.get("x-restli-id")
        if not post_urn and response.content:
            post_urn = response.json().get("id")
        if not post_urn:
            raise PlatformError(
                "INVALID_RESPONSE",
                "LinkedIn did not return the id of the created post",
                platform=self.platform,
            )

        return PublishResult(
            platform_post_id=post_urn,
            platform_post_url=f"https://www.linkedin.com/feed/update/{post_urn}",
        )

    async def fetch_engagement(
        self,
        account: AccountRef,
        platform_post_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> EngagementMetrics:
        # Share statistics are only available for organization pages
        body = await self._json(
            "GET",
            "/organizationalEntityShareStatistics",
            token=account.access_token,
            params={
                "q": "organizationalEntity",
                "organizationalEntity": author_urn(account.platform_account_id),
                "shares": f"List({platform_post_id})",
            },
            headers=RESTLI_HEADERS,
        )
        elements = body.get("elements") or [{}]
        stats = elements[0].get("totalShareStatistics", {})
        likes = int(stats.get("likeCount", 0))
        comments = int(stats.get("commentCount", 0))
        shares = int(stats.get("shareCount", 0))
        clicks = int(stats.get("clickCount", 0))

        return EngagementMetrics(
            impressions=int(stats.get("impressionCount", 0)),
            reach=int(stats.get("uniqueImpressionsCount", 0)),
            clicks=clicks,
            likes=likes,
            comments=comments,
            shares=shares,
            engagements=likes + comments + shares + clicks,
        )

    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        post_urns = account.metadata.get("recent_post_urns") or []
        items = []
        for post_urn in post_urns:
            body = await self._json(
                "GET",
                f"/socialActions/{quote(post_urn, safe='')}/comments",
                token=account.access_token,
                headers=RESTLI_HEADERS,
            )
            for element in body.get("elements", []):
                created = (element.get("created") or {}).get("time")
                timestamp = parse_timestamp(created)
                if since and timestamp <= since:
                    continue
                actor = element.get("actor", "")
                items.append(
                    InboundItem(
                        platform=self.platform,
                        external_item_id=element.get("$URN") or element.get("id"),
                        item_type=InboxItemType.comment,
                        author_name=actor.rsplit(":", 1)[-1] or "LinkedIn member",
                        author_id=actor or None,
                        content=(element.get("message") or {}).get("text", ""),
                        timestamp=timestamp,
                        platform_post_id=element.get("object") or post_urn,
                    )
                )
        return items

    async def refresh_token(self, account: AccountRef) -> TokenGrant:
        body = await self._json(
            "POST",
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": account.refresh_token,
                "client_id": LINKEDIN_CLIENT_ID,
                "client_secret": LINKEDIN_CLIENT_SECRET,
            },
        )
        expires_in = body.get("expires_in")
        return TokenGrant(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )
