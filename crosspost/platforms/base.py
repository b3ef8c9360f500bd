"""Abstract base class for platform client adapters.

Each adapter wraps one platform's REST API behind the same capability
surface (publish / engagement / inbound items / token refresh). Adapters
make real HTTP calls through httpx; tests swap the transport, never the
adapter logic.

Failures always leave an adapter as a PlatformError carrying a normalized
``code``, a human ``message`` and a ``retryable`` flag.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional, TYPE_CHECKING

import httpx
from pydantic import BaseModel

from crosspost.config import PLATFORM_HTTP_TIMEOUT
from crosspost.db.models import MediaItem, SocialPlatform, InboxItemType
from crosspost.resilience.retry import PLATFORM_POLICY, RetryPolicy, RetryableError, call_with_retry

if TYPE_CHECKING:
    from crosspost.db.models import Post, SocialAccount


# =============================================================================
# Errors
# =============================================================================


class PlatformError(RetryableError):
    """Normalized platform failure."""

    def __init__(
        self,
        code: str,
        message: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        platform: Optional[SocialPlatform] = None,
        request_sent: bool = True,
    ):
        super().__init__(message, retriable=retryable, retry_after=retry_after)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.platform = platform
        # False when the connection failed before anything reached the platform
        self.request_sent = request_sent

    @property
    def retryable(self) -> bool:
        return self.retriable

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


def require_id(body: Any, platform: SocialPlatform, key: str = "id") -> str:
    """The id a create or publish call returned.

    Raises:
        PlatformError: INVALID_RESPONSE when the body carries no id
    """
    value = body.get(key) if isinstance(body, dict) else None
    if value is None or value == "":
        raise PlatformError(
            "INVALID_RESPONSE",
            f"{platform.display_name} response did not include {key!r}",
            platform=platform,
        )
    return str(value)


IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


def is_safe_to_resend(exc: Exception) -> bool:
    """Whether a failed non-idempotent request was certainly not applied."""
    if not isinstance(exc, PlatformError):
        return False
    return exc.code == "RATE_LIMITED" or not exc.request_sent


def classify_status(status_code: int) -> tuple[str, bool]:
    """Map an HTTP status to (normalized code, retryable)."""
    if status_code == 429:
        return "RATE_LIMITED", True
    if status_code >= 500:
        return "SERVER_ERROR", True
    if status_code == 401:
        return "AUTH_ERROR", False
    if status_code == 403:
        return "PERMISSION_DENIED", False
    if status_code == 404:
        return "NOT_FOUND", False
    return "VALIDATION_ERROR", False


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# =============================================================================
# Value objects
# =============================================================================


@dataclass
class AccountRef:
    """What an adapter needs to act as a connected account."""

    platform_account_id: str
    access_token: str
    metadata: dict[str, Any] = field(default_factory=dict)
    refresh_token: Optional[str] = None

    @classmethod
    def from_account(cls, account: "SocialAccount", include_refresh: bool = False) -> "AccountRef":
        """Build from a SocialAccount, decrypting its tokens.

        Raises:
            TokenUnavailableError: If a stored token cannot be decrypted
        """
        return cls(
            platform_account_id=account.platform_account_id,
            access_token=account.get_access_token(),
            metadata=dict(account.account_metadata or {}),
            refresh_token=account.get_refresh_token() if include_refresh else None,
        )


@dataclass
class PostContent:
    """Content to publish on one platform."""

    text: str = ""
    media: list[MediaItem] = field(default_factory=list)
    link_url: Optional[str] = None

    @classmethod
    def from_post(cls, post: "Post") -> "PostContent":
        return cls(
            text=post.content_text or "",
            media=post.media_items,
            link_url=post.link_url,
        )

    @property
    def images(self) -> list[MediaItem]:
        return [m for m in self.media if m.type == "image"]

    @property
    def videos(self) -> list[MediaItem]:
        return [m for m in self.media if m.type == "video"]


@dataclass
class PublishResult:
    """Successful publish on a platform."""

    platform_post_id: str
    platform_post_url: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


class EngagementMetrics(BaseModel):
    """Normalized post engagement counters."""

    impressions: int = 0
    reach: int = 0
    engagements: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    clicks: int = 0
    video_views: int = 0


@dataclass
class InboundItem:
    """Canonical inbound comment/mention/message.

    Produced by adapters when polling and by webhook parsers when pushed.
    """

    platform: SocialPlatform
    external_item_id: str
    author_name: str
    content: str
    timestamp: datetime
    item_type: InboxItemType = InboxItemType.comment
    author_username: Optional[str] = None
    author_id: Optional[str] = None
    author_profile_url: Optional[str] = None
    author_avatar_url: Optional[str] = None
    platform_post_id: Optional[str] = None
    thread_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenGrant:
    """Result of a token refresh."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


def parse_timestamp(value: Any) -> datetime:
    """Parse platform timestamps (ISO 8601, +0000 offsets, epoch s/ms) to naive UTC."""
    if value is None or value == "":
        return datetime.now(timezone.utc).replace(tzinfo=None)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        seconds = float(value)
        if seconds > 10**11:  # milliseconds
            seconds /= 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)

    text = str(value).replace("Z", "+00:00")
    # Graph API uses +0000 without a colon
    if len(text) > 5 and text[-5] in "+-" and text[-3] != ":":
        text = f"{text[:-2]}:{text[-2:]}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# =============================================================================
# Adapter base
# =============================================================================


class PlatformAdapter(ABC):
    """Abstract base for all platform adapters."""

    platform: SocialPlatform
    base_url: str
    # "bearer": Authorization header; "query": access_token query parameter
    auth_style: str = "bearer"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: RetryPolicy = PLATFORM_POLICY,
        timeout: float = PLATFORM_HTTP_TIMEOUT,
    ):
        self._client = client
        self.retry_policy = retry_policy
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Capability surface
    # ------------------------------------------------------------------

    @abstractmethod
    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        """Publish content; returns the platform's post id."""

    @abstractmethod
    async def fetch_engagement(
        self,
        account: AccountRef,
        platform_post_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> EngagementMetrics:
        """Engagement counters for a published post."""

    @abstractmethod
    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        """Comments/mentions/messages received since ``since``."""

    async def refresh_token(self, account: AccountRef) -> TokenGrant:
        """Exchange the refresh credential for a new access token."""
        raise PlatformError(
            "REFRESH_NOT_SUPPORTED",
            f"{self.platform.display_name} tokens cannot be refreshed; reconnect the account",
            platform=self.platform,
        )

    def validate_content(self, content: PostContent) -> None:
        """Reject content the platform will refuse, before any call is made."""
        limit = self.platform.max_text_length
        if limit is not None and len(content.text) > limit:
            raise PlatformError(
                "CONTENT_TOO_LONG",
                f"Content exceeds {self.platform.display_name}'s {limit} character limit",
                platform=self.platform,
            )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _auth(self, token: Optional[str]) -> tuple[dict[str, str], dict[str, Any]]:
        if token is None:
            return {}, {}
        if self.auth_style == "query":
            return {}, {"access_token": token}
        return {"Authorization": f"Bearer {token}"}, {}

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _error_details(self, body: Any) -> tuple[Optional[str], Optional[str], Optional[bool]]:
        """Platform-specific (code, message, retryable) from an error body.

        Subclasses override; None keeps the HTTP-status classification.
        """
        return None, None, None

    def _error_from_response(self, response: httpx.Response) -> PlatformError:
        code, retryable = classify_status(response.status_code)
        try:
            body = response.json()
        except ValueError:
            body = None

        detail_code, message, detail_retryable = self._error_details(body)
        if detail_code:
            code = detail_code
        if detail_retryable is not None:
            retryable = detail_retryable

        return PlatformError(
            code,
            message or f"{self.platform.display_name} API returned HTTP {response.status_code}",
            retryable=retryable,
            status_code=response.status_code,
            retry_after=parse_retry_after(response),
            platform=self.platform,
        )

    async def _send_once(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs
    ) -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise PlatformError(
                "NETWORK_ERROR",
                f"Could not connect to {self.platform.display_name}: {e}",
                retryable=True,
                platform=self.platform,
                request_sent=False,
            ) from e
        except httpx.TimeoutException as e:
            raise PlatformError(
                "NETWORK_TIMEOUT",
                f"{self.platform.display_name} request timed out",
                retryable=True,
                platform=self.platform,
            ) from e
        except httpx.TransportError as e:
            raise PlatformError(
                "NETWORK_ERROR",
                f"{self.platform.display_name} request failed: {e}",
                retryable=True,
                platform=self.platform,
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
        content: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None,
        idempotent: Optional[bool] = None,
    ) -> httpx.Response:
        """Send one request with auth, timeout and retry applied.

        Non-idempotent requests (POST unless ``idempotent`` says otherwise)
        are only resent after a rate limit or a failed connect; anything
        else is left to the dispatcher.
        """
        auth_headers, auth_params = self._auth(token)
        kwargs: dict[str, Any] = {
            "params": {**(params or {}), **auth_params} or None,
            "headers": {**auth_headers, **(headers or {})},
            "timeout": self.timeout,
        }
        if data is not None:
            kwargs["data"] = data
        if json is not None:
            kwargs["json"] = json
        if content is not None:
            kwargs["content"] = content
        url = self._url(path)

        if idempotent is None:
            idempotent = method.upper() in IDEMPOTENT_METHODS
        policy = self.retry_policy
        if not idempotent:
            policy = replace(policy, retry_if=is_safe_to_resend)

        async def attempt() -> httpx.Response:
            if self._client is not None:
                return await self._send_once(self._client, method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await self._send_once(client, method, url, **kwargs)

        return await call_with_retry(attempt, policy)

    async def _json(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        return self._parse_json(await self._request(method, path, **kwargs))

    def _parse_json(self, response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise PlatformError(
                "INVALID_RESPONSE",
                f"{self.platform.display_name} returned a non-JSON response",
                retryable=True,
                status_code=response.status_code,
                platform=self.platform,
            ) from e
        return body if isinstance(body, dict) else {"data": body}
