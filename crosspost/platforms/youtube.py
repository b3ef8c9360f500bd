"""YouTube adapter (Data API v3)."""

from datetime import datetime, timedelta
from typing import Optional

from crosspost.config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
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
    require_id,
)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"


class YouTubeAdapter(PlatformAdapter):
    """Uploads videos to a channel and reads comment threads.

    The first line of the post text becomes the video title, the full text
    the description. The video is fetched from its media URL and sent
    through a resumable upload session.
    """

    platform = SocialPlatform.youtube
    base_url = "https://www.googleapis.com/youtube/v3"

    def _error_details(self, body):
        if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
            return None, None, None
        error = body["error"]
        reasons = {e.get("reason") for e in error.get("errors", [])}
        if reasons & {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded"}:
            return "RATE_LIMITED", error.get("message"), True
        return None, error.get("message"), None

    def validate_content(self, content: PostContent) -> None:
        super().validate_content(content)
        if not content.videos:
            raise PlatformError(
                "YOUTUBE_NO_VIDEO",
                "YouTube posts require a video",
                platform=self.platform,
            )

    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        self.validate_content(content)
        video = content.videos[0]
        title = (content.text.splitlines() or ["Untitled"])[0][:100] or "Untitled"

        source = await self._request("GET", video.url)
        video_bytes = source.content
        mime_type = source.headers.get("content-type", "video/*").split(";")[0].strip()

        # Resumable upload: open a session with the metadata, then PUT the bytes to it
        upload_session = await self._request(
            "POST",
            UPLOAD_URL,
            token=account.access_token,
            params={"part": "snippet,status", "uploadType": "resumable"},
            json={
                "snippet": {"title": title, "description": content.text},
                "status": {"privacyStatus": account.metadata.get("privacy_status", "public")},
            },
            headers={
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(len(video_bytes)),
            },
        )
        upload_url = upload_session.headers.get("location")
        if not upload_url:
            raise PlatformError(
                "INVALID_RESPONSE",
                "YouTube did not return an upload session URL",
                platform=self.platform,
            )

        uploaded = await self._request(
            "PUT",
            upload_url,
            token=account.access_token,
            content=video_bytes,
            headers={"Content-Type": mime_type},
        )
        body = self._parse_json(uploaded)
        video_id = require_id(body, self.platform)
        return PublishResult(
            platform_post_id=video_id,
            platform_post_url=f"https://www.youtube.com/watch?v={video_id}",
            raw=body,
        )

    async def fetch_engagement(
        self,
        account: AccountRef,
        platform_post_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> EngagementMetrics:
        body = await self._json(
            "GET",
            "/videos",
            token=account.access_token,
            params={"part": "statistics", "id": platform_post_id},
        )
        items = body.get("items") or [{}]
        stats = items[0].get("statistics", {})
        views = int(stats.get("viewCount", 0))
        likes = int(stats.get("likeCount", 0))
        comments = int(stats.get("commentCount", 0))
        return EngagementMetrics(
            impressions=views,
            video_views=views,
            likes=likes,
            comments=comments,
            saves=int(stats.get("favoriteCount", 0)),
            engagements=likes + comments,
        )

    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        body = await self._json(
            "GET",
            "/commentThreads",
            token=account.access_token,
            params={
                "part": "snippet",
                "allThreadsRelatedToChannelId": account.platform_account_id,
                "order": "time",
                "maxResults": "50",
            },
        )

        items = []
        for thread in body.get("items", []):
            top = thread.get("snippet", {}).get("topLevelComment", {})
            snippet = top.get("snippet", {})
            timestamp = parse_timestamp(snippet.get("publishedAt"))
            if since and timestamp <= since:
                continue
            items.append(
                InboundItem(
                    platform=self.platform,
                    external_item_id=str(top.get("id") or thread["id"]),
                    item_type=InboxItemType.comment,
                    author_name=snippet.get("authorDisplayName") or "YouTube user",
                    author_id=(snippet.get("authorChannelId") or {}).get("value"),
                    author_profile_url=snippet.get("authorChannelUrl"),
                    author_avatar_url=snippet.get("authorProfileImageUrl"),
                    content=snippet.get("textOriginal") or snippet.get("textDisplay") or "",
                    timestamp=timestamp,
                    platform_post_id=thread.get("snippet", {}).get("videoId"),
                    thread_id=thread.get("id"),
                )
            )
        return items

    async def refresh_token(self, account: AccountRef) -> TokenGrant:
        body = await self._json(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": account.refresh_token,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
            },
        )
        expires_in = body.get("expires_in")
        return TokenGrant(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )
