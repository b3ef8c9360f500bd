"""Tests for platform adapters against a mocked HTTP transport."""

import json
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from crosspost.db.models import InboxItemType, MediaItem, SocialPlatform
from crosspost.platforms import AccountRef, PlatformError, PostContent, UnknownPlatformError, get_adapter
from crosspost.platforms.base import classify_status, parse_timestamp
from crosspost.platforms.facebook import FacebookAdapter
from crosspost.platforms.instagram import InstagramAdapter
from crosspost.platforms.linkedin import LinkedInAdapter
from crosspost.platforms.twitter import TwitterAdapter
from crosspost.platforms.whatsapp import WhatsAppAdapter
from crosspost.platforms.youtube import YouTubeAdapter
from crosspost.resilience import NO_RETRY_POLICY, RetryPolicy

FAST_RETRY = RetryPolicy(max_retries=2, backoff_base=0.0, jitter=False)


class Recorder:
    """MockTransport handler replaying queued responses and keeping requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


ACCOUNT = AccountRef(platform_account_id="12345", access_token="page-token")


class TestFacebookAdapter:
    """Graph API page publishing and error mapping."""

    @pytest.mark.asyncio
    async def test_text_post_goes_to_feed(self):
        """Text posts POST to /{page}/feed with the token as a query parameter."""
        recorder = Recorder(httpx.Response(200, json={"id": "12345_678"}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        result = await adapter.publish_post(
            ACCOUNT, PostContent(text="Hello", link_url="https://example.com")
        )

        assert result.platform_post_id == "12345_678"
        assert result.platform_post_url == "https://www.facebook.com/12345_678"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path.endswith("/12345/feed")
        assert request.url.params["access_token"] == "page-token"
        assert form(request) == {"message": "Hello", "link": "https://example.com"}

    @pytest.mark.asyncio
    async def test_photo_post_uses_story_id(self):
        recorder = Recorder(httpx.Response(200, json={"id": "photo1", "post_id": "12345_999"}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        result = await adapter.publish_post(
            ACCOUNT,
            PostContent(text="Look", media=[MediaItem(type="image", url="https://cdn/x.jpg")]),
        )

        assert result.platform_post_id == "12345_999"
        assert recorder.requests[0].url.path.endswith("/12345/photos")

    @pytest.mark.asyncio
    async def test_expired_token_is_permanent_auth_error(self):
        """Graph code 190 maps to AUTH_ERROR and is not retried."""
        recorder = Recorder(
            httpx.Response(400, json={"error": {"code": 190, "message": "Session expired"}})
        )
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=FAST_RETRY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert exc_info.value.code == "AUTH_ERROR"
        assert exc_info.value.retryable is False
        assert exc_info.value.message == "Session expired"
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_succeeds(self):
        recorder = Recorder(
            httpx.Response(429, headers={"retry-after": "0"}),
            httpx.Response(200, json={"id": "12345_1"}),
        )
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=FAST_RETRY)

        result = await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert result.platform_post_id == "12345_1"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries_on_reads(self):
        recorder = Recorder(*[httpx.Response(503) for _ in range(3)])
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=FAST_RETRY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.fetch_engagement(ACCOUNT, "12345_1")

        assert exc_info.value.code == "SERVER_ERROR"
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 503
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_publish_not_resent_after_server_error(self):
        """The platform may have applied a POST that answered 5xx."""
        recorder = Recorder(httpx.Response(503), httpx.Response(200, json={"id": "12345_1"}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=FAST_RETRY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert exc_info.value.code == "SERVER_ERROR"
        assert exc_info.value.retryable is True
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_read_timeout_on_publish_is_not_resent(self):
        recorder = Recorder(httpx.ReadTimeout("timed out"), httpx.Response(200, json={"id": "12345_1"}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=FAST_RETRY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert exc_info.value.code == "NETWORK_TIMEOUT"
        assert exc_info.value.retryable is True
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_failed_connect_on_publish_is_resent(self):
        recorder = Recorder(httpx.ConnectError("refused"), httpx.Response(200, json={"id": "12345_1"}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=FAST_RETRY)

        result = await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert result.platform_post_id == "12345_1"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_video_post_goes_to_videos(self):
        recorder = Recorder(httpx.Response(200, json={"id": "vid9"}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        result = await adapter.publish_post(
            ACCOUNT,
            PostContent(text="Watch", media=[MediaItem(type="video", url="https://cdn/v.mp4")]),
        )

        assert result.platform_post_id == "vid9"
        assert result.platform_post_url == "https://www.facebook.com/12345/videos/vid9"
        request = recorder.requests[0]
        assert request.url.path.endswith("/12345/videos")
        assert form(request) == {"file_url": "https://cdn/v.mp4", "description": "Watch"}

    @pytest.mark.asyncio
    async def test_response_without_id_is_invalid(self):
        recorder = Recorder(httpx.Response(200, json={"success": True}))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_inbound_comments_skip_page_replies(self):
        """Comments authored by the page itself are not inbound items."""
        feed = {
            "data": [
                {
                    "id": "12345_1",
                    "comments": {
                        "data": [
                            {
                                "id": "c1",
                                "message": "Great post",
                                "from": {"id": "u1", "name": "Ana"},
                                "created_time": "2026-10-01T10:00:00+0000",
                            },
                            {
                                "id": "c2",
                                "message": "Thanks!",
                                "from": {"id": "12345", "name": "Our Page"},
                                "created_time": "2026-10-01T10:05:00+0000",
                            },
                        ]
                    },
                }
            ]
        }
        recorder = Recorder(httpx.Response(200, json=feed))
        adapter = FacebookAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        items = await adapter.fetch_inbound_items(ACCOUNT)

        assert [i.external_item_id for i in items] == ["c1"]
        assert items[0].platform_post_id == "12345_1"
        assert items[0].item_type == InboxItemType.comment
        assert items[0].timestamp == datetime(2026, 10, 1, 10, 0)


class TestTwitterAdapter:
    """X API v2."""

    @pytest.mark.asyncio
    async def test_publish_uses_bearer_and_appends_link(self):
        recorder = Recorder(httpx.Response(201, json={"data": {"id": "1789"}}))
        adapter = TwitterAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)
        account = AccountRef(platform_account_id="42", access_token="bearer-x", metadata={"username": "acme"})

        result = await adapter.publish_post(
            account, PostContent(text="Launch day", link_url="https://acme.dev")
        )

        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer bearer-x"
        assert json.loads(request.content) == {"text": "Launch day https://acme.dev"}
        assert result.platform_post_url == "https://x.com/acme/status/1789"

    @pytest.mark.asyncio
    async def test_text_over_limit_rejected_before_any_call(self):
        recorder = Recorder()
        adapter = TwitterAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="x" * 281))

        assert exc_info.value.code == "CONTENT_TOO_LONG"
        assert recorder.requests == []


class TestInstagramAdapter:
    """Container-based publishing."""

    @pytest.mark.asyncio
    async def test_media_required(self):
        adapter = InstagramAdapter(client=Recorder().client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="No picture"))

        assert exc_info.value.code == "INSTAGRAM_MEDIA_REQUIRED"

    @pytest.mark.asyncio
    async def test_single_image_flow(self):
        """Create container, wait, publish, read the permalink."""
        recorder = Recorder(
            httpx.Response(200, json={"id": "container1"}),
            httpx.Response(200, json={"status_code": "FINISHED"}),
            httpx.Response(200, json={"id": "media1"}),
            httpx.Response(200, json={"permalink": "https://instagram.com/p/abc"}),
        )
        adapter = InstagramAdapter(
            client=recorder.client(), retry_policy=NO_RETRY_POLICY, poll_interval=0
        )

        result = await adapter.publish_post(
            ACCOUNT,
            PostContent(text="Caption", media=[MediaItem(type="image", url="https://cdn/a.jpg")]),
        )

        assert result.platform_post_id == "media1"
        assert result.platform_post_url == "https://instagram.com/p/abc"
        paths = [r.url.path for r in recorder.requests]
        assert paths[0].endswith("/12345/media")
        assert paths[2].endswith("/12345/media_publish")
        assert form(recorder.requests[2]) == {"creation_id": "container1"}

    @pytest.mark.asyncio
    async def test_container_error_fails_publish(self):
        recorder = Recorder(
            httpx.Response(200, json={"id": "container1"}),
            httpx.Response(200, json={"status_code": "ERROR"}),
        )
        adapter = InstagramAdapter(
            client=recorder.client(), retry_policy=NO_RETRY_POLICY, poll_interval=0
        )

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(
                ACCOUNT,
                PostContent(media=[MediaItem(type="video", url="https://cdn/a.mp4")]),
            )

        assert exc_info.value.code == "INSTAGRAM_CONTAINER_FAILED"

    @pytest.mark.asyncio
    async def test_carousel_flow(self):
        """Child containers, then the CAROUSEL container, then media_publish."""
        recorder = Recorder(
            httpx.Response(200, json={"id": "child1"}),
            httpx.Response(200, json={"id": "child2"}),
            httpx.Response(200, json={"status_code": "FINISHED"}),
            httpx.Response(200, json={"status_code": "FINISHED"}),
            httpx.Response(200, json={"id": "carousel1"}),
            httpx.Response(200, json={"status_code": "FINISHED"}),
            httpx.Response(200, json={"id": "media7"}),
            httpx.Response(200, json={"permalink": "https://instagram.com/p/car"}),
        )
        adapter = InstagramAdapter(
            client=recorder.client(), retry_policy=NO_RETRY_POLICY, poll_interval=0
        )

        result = await adapter.publish_post(
            ACCOUNT,
            PostContent(
                text="Two shots",
                media=[
                    MediaItem(type="image", url="https://cdn/a.jpg"),
                    MediaItem(type="video", url="https://cdn/b.mp4"),
                ],
            ),
        )

        assert result.platform_post_id == "media7"
        requests = recorder.requests
        assert form(requests[0]) == {"is_carousel_item": "true", "image_url": "https://cdn/a.jpg"}
        assert form(requests[1]) == {
            "is_carousel_item": "true",
            "media_type": "VIDEO",
            "video_url": "https://cdn/b.mp4",
        }
        assert [r.url.path.rsplit("/", 1)[-1] for r in requests[2:4]] == ["child1", "child2"]
        assert form(requests[4]) == {
            "media_type": "CAROUSEL",
            "children": "child1,child2",
            "caption": "Two shots",
        }
        assert requests[6].url.path.endswith("/12345/media_publish")
        assert form(requests[6]) == {"creation_id": "carousel1"}

    @pytest.mark.asyncio
    async def test_container_without_id_is_invalid(self):
        recorder = Recorder(httpx.Response(200, json={}))
        adapter = InstagramAdapter(
            client=recorder.client(), retry_policy=NO_RETRY_POLICY, poll_interval=0
        )

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(
                ACCOUNT,
                PostContent(media=[MediaItem(type="image", url="https://cdn/a.jpg")]),
            )

        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.retryable is False


class TestYouTubeAdapter:
    """Resumable video uploads."""

    VIDEO = MediaItem(type="video", url="https://cdn/clip.mp4")
    UPLOAD_SESSION = "https://upload.example/session?upload_id=u1"

    @pytest.mark.asyncio
    async def test_resumable_upload(self):
        """Fetch the bytes, open an upload session, PUT the bytes to it."""
        recorder = Recorder(
            httpx.Response(200, content=b"0123456789", headers={"content-type": "video/mp4"}),
            httpx.Response(200, headers={"Location": self.UPLOAD_SESSION}),
            httpx.Response(200, json={"id": "yt-42", "status": {"uploadStatus": "uploaded"}}),
        )
        adapter = YouTubeAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        result = await adapter.publish_post(
            ACCOUNT, PostContent(text="Launch recap\nFull story", media=[self.VIDEO])
        )

        assert result.platform_post_id == "yt-42"
        assert result.platform_post_url == "https://www.youtube.com/watch?v=yt-42"

        fetch, init, upload = recorder.requests
        assert str(fetch.url) == "https://cdn/clip.mp4"
        assert "authorization" not in fetch.headers

        assert init.method == "POST"
        assert init.url.params["uploadType"] == "resumable"
        assert init.headers["Authorization"] == "Bearer page-token"
        assert init.headers["X-Upload-Content-Type"] == "video/mp4"
        assert init.headers["X-Upload-Content-Length"] == "10"
        metadata = json.loads(init.content)
        assert metadata["snippet"] == {"title": "Launch recap", "description": "Launch recap\nFull story"}
        assert "sourceUrl" not in metadata

        assert upload.method == "PUT"
        assert str(upload.url) == self.UPLOAD_SESSION
        assert upload.content == b"0123456789"
        assert upload.headers["Content-Type"] == "video/mp4"

    @pytest.mark.asyncio
    async def test_missing_upload_session_is_invalid(self):
        recorder = Recorder(
            httpx.Response(200, content=b"0123456789", headers={"content-type": "video/mp4"}),
            httpx.Response(200),
        )
        adapter = YouTubeAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Clip", media=[self.VIDEO]))

        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.retryable is False
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_upload_without_video_id_is_invalid(self):
        recorder = Recorder(
            httpx.Response(200, content=b"0123456789", headers={"content-type": "video/mp4"}),
            httpx.Response(200, headers={"Location": self.UPLOAD_SESSION}),
            httpx.Response(200, json={"status": {"uploadStatus": "failed"}}),
        )
        adapter = YouTubeAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Clip", media=[self.VIDEO]))

        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_video_required(self):
        recorder = Recorder()
        adapter = YouTubeAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="No clip"))

        assert exc_info.value.code == "YOUTUBE_NO_VIDEO"
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_quota_exceeded_is_rate_limited(self):
        recorder = Recorder(
            httpx.Response(200, content=b"0123456789", headers={"content-type": "video/mp4"}),
            httpx.Response(
                403,
                json={"error": {"message": "Quota exceeded", "errors": [{"reason": "quotaExceeded"}]}},
            ),
        )
        adapter = YouTubeAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Clip", media=[self.VIDEO]))

        assert exc_info.value.code == "RATE_LIMITED"
        assert exc_info.value.retryable is True


class TestLinkedInAdapter:
    @pytest.mark.asyncio
    async def test_post_id_from_restli_header(self):
        recorder = Recorder(
            httpx.Response(201, headers={"x-restli-id": "urn:li:share:777"})
        )
        adapter = LinkedInAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        result = await adapter.publish_post(
            AccountRef(platform_account_id="abc", access_token="li-token"),
            PostContent(text="Hiring"),
        )

        body = json.loads(recorder.requests[0].content)
        assert body["author"] == "urn:li:person:abc"
        assert recorder.requests[0].headers["X-Restli-Protocol-Version"] == "2.0.0"
        assert result.platform_post_id == "urn:li:share:777"


class TestWhatsAppAdapter:
    @pytest.mark.asyncio
    async def test_send_text_returns_wamid(self):
        recorder = Recorder(httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]}))
        adapter = WhatsAppAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        wamid = await adapter.send_text(ACCOUNT, "4915112345678", "Hi there")

        assert wamid == "wamid.ABC"
        body = json.loads(recorder.requests[0].content)
        assert body["messaging_product"] == "whatsapp"
        assert body["to"] == "4915112345678"
        assert body["text"]["body"] == "Hi there"

    @pytest.mark.asyncio
    async def test_window_closed_error_code(self):
        recorder = Recorder(
            httpx.Response(400, json={"error": {"code": 131047, "message": "Re-engagement message"}})
        )
        adapter = WhatsAppAdapter(client=recorder.client(), retry_policy=NO_RETRY_POLICY)

        with pytest.raises(PlatformError) as exc_info:
            await adapter.send_text(ACCOUNT, "4915112345678", "Hi")

        assert exc_info.value.code == "WHATSAPP_WINDOW_CLOSED"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_feed_publishing_not_supported(self):
        adapter = WhatsAppAdapter(client=Recorder().client())

        with pytest.raises(PlatformError) as exc_info:
            await adapter.publish_post(ACCOUNT, PostContent(text="Hi"))

        assert exc_info.value.code == "WHATSAPP_USE_TEMPLATE"

    @pytest.mark.asyncio
    async def test_refresh_not_supported(self):
        adapter = WhatsAppAdapter(client=Recorder().client())

        with pytest.raises(PlatformError) as exc_info:
            await adapter.refresh_token(ACCOUNT)

        assert exc_info.value.code == "REFRESH_NOT_SUPPORTED"


class TestRegistry:
    def test_get_adapter_by_name(self):
        assert isinstance(get_adapter("facebook"), FacebookAdapter)
        assert isinstance(get_adapter(SocialPlatform.whatsapp), WhatsAppAdapter)

    def test_unknown_platform(self):
        with pytest.raises(UnknownPlatformError):
            get_adapter("myspace")


class TestHelpers:
    @pytest.mark.parametrize(
        "status_code, expected",
        [
            (429, ("RATE_LIMITED", True)),
            (500, ("SERVER_ERROR", True)),
            (401, ("AUTH_ERROR", False)),
            (403, ("PERMISSION_DENIED", False)),
            (404, ("NOT_FOUND", False)),
            (400, ("VALIDATION_ERROR", False)),
        ],
    )
    def test_classify_status(self, status_code, expected):
        assert classify_status(status_code) == expected

    def test_parse_timestamp_formats(self):
        expected = datetime(2026, 10, 1, 10, 0)
        assert parse_timestamp("2026-10-01T10:00:00+0000") == expected
        assert parse_timestamp("2026-10-01T10:00:00Z") == expected
        assert parse_timestamp("2026-10-01T12:00:00+02:00") == expected

        epoch = int(expected.replace(tzinfo=timezone.utc).timestamp())
        assert parse_timestamp(epoch) == expected
        assert parse_timestamp(str(epoch * 1000)) == expected
