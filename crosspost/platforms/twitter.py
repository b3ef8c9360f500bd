"""X (Twitter) adapter (API v2)."""

import base64
from datetime import datetime, timedelta
from typing import Optional

from crosspost.config import TWITTER_CLIENT_ID, TWITTER_CLIENT_SECRET
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


class TwitterAdapter(PlatformAdapter):
    platform = SocialPlatform.twitter
    base_url = "https://api.twitter.com/2"

    def _error_details(self, body):
        if not isinstance(body, dict):
            return None, None, None
        message = body.get("detail") or body.get("title")
        if not message and body.get("errors"):
            message = body["errors"][0].get("message")
        return None, message, None

    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        self.validate_content(content)

        text = content.text
        if content.link_url and content.link_url not in text:
            text = f"{text} {content.link_url}".strip()

        body = await self._json(
            "POST", "/tweets", token=account.access_token, json={"text": text}
        )
        tweet_id = require_id(body.get("data"), self.platform)
        username = account.metadata.get("username") or "i"
        return PublishResult(
            platform_post_id=tweet_id,
            platform_post_url=f"https://x.com/{username}/status/{tweet_id}",
            raw=body,
        )

    def validate_content(self, content: PostContent) -> None:
        # Appended links count toward the limit
        text = content.text
        if content.link_url and content.link_url not in text:
            text = f"{text} {content.link_url}".strip()
        super().validate_content(PostContent(text=text, media=content.media))

    async def fetch_engagement(
        self,
        account: AccountRef,
        platform_post_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> EngagementMetrics:
        body = await self._json(
            "GET",
            f"/tweets/{platform_post_id}",
            token=account.access_token,
            params={"tweet.fields": "public_metrics"},
        )
        metrics = body.get("data", {}).get("public_metrics", {})
        likes = int(metrics.get("like_count", 0))
        replies = int(metrics.get("reply_count", 0))
        retweets = int(metrics.get("retweet_count", 0)) + int(metrics.get("quote_count", 0))
        return EngagementMetrics(
            impressions=int(metrics.get("impression_count", 0)),
            likes=likes,
            comments=replies,
            shares=retweets,
            saves=int(metrics.get("bookmark_count", 0)),
            engagements=likes + replies + retweets,
        )

    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        params = {
            "tweet.fields": "created_at,author_id,conversation_id,in_reply_to_user_id,referenced_tweets",
            "expansions": "author_id",
            "user.fields": "username,name,profile_image_url",
        }
        if since:
            params["start_time"] = since.strftime("%Y-%m-%dT%H:%M:%SZ")

        body = await self._json(
            "GET",
            f"/users/{account.platform_account_id}/mentions",
            token=account.access_token,
            params=params,
        )
        users = {u["id"]: u for u in body.get("includes", {}).get("users", [])}

        items = []
        for tweet in body.get("data", []):
            user = users.get(tweet.get("author_id"), {})
            replied_to = next(
                (
                    ref["id"]
                    for ref in tweet.get("referenced_tweets", [])
                    if ref.get("type") == "replied_to"
                ),
                None,
            )
            items.append(
                InboundItem(
                    platform=self.platform,
                    external_item_id=str(tweet["id"]),
                    item_type=InboxItemType.mention,
                    author_name=user.get("name") or user.get("username") or "X user",
                    author_username=user.get("username"),
                    author_id=tweet.get("author_id"),
                    author_avatar_url=user.get("profile_image_url"),
                    content=tweet.get("text", ""),
                    timestamp=parse_timestamp(tweet.get("created_at")),
                    platform_post_id=replied_to,
                    thread_id=tweet.get("conversation_id"),
                )
            )
        return items

    async def refresh_token(self, account: AccountRef) -> TokenGrant:
        body = await self._json(
            "POST",
            "/oauth2/token",
            data={
                "grant_type": "refresh_token",
                "refresh_token": account.refresh_token,
                "client_id": TWITTER_CLIENT_ID,
            },
            headers={"Authorization": _basic_auth(TWITTER_CLIENT_ID, TWITTER_CLIENT_SECRET)},
        )
        expires_in = body.get("expires_in")
        return TokenGrant(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )


def _basic_auth(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode()
    return f"Basic {base64.b64encode(raw).decode()}"
