"""
Paginated page fetchers for Bluesky and Mastodon.

Each fetcher exposes ``fetch_page(identifier, cursor, kind)`` returning a
PageResult. An empty page comes back with ``next_cursor=None``. HTTP 404 (and
Bluesky's "not found" 400s) raise NotFoundError; any other HTTP or network
failure raises TransportError. Timeouts are left to the httpx transport.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union, runtime_checkable
from urllib.parse import parse_qs, urlparse

import httpx

from crossfeed.config import get_config
from crossfeed.core.normalizer import parse_bluesky_handle, parse_mastodon_handle
from crossfeed.exceptions import ConfigurationError, NotFoundError, TransportError
from crossfeed.logger import get_logger
from crossfeed.models import FeedKind, PageResult, Platform, Profile


@runtime_checkable
class PageFetcher(Protocol):
    """Paginated fetch capability for one platform."""

    platform: Platform

    async def fetch_page(
        self,
        identifier: str,
        cursor: Optional[str] = None,
        kind: FeedKind = FeedKind.TIMELINE,
        *,
        hide_replies: bool = False,
        hide_reposts: bool = False,
    ) -> PageResult: ...

    async def lookup_profile(self, identifier: str) -> Profile: ...


@dataclass
class FetchStats:
    """Statistics for page fetching operations."""

    pages_fetched: int = 0
    items_fetched: int = 0
    failed_fetches: int = 0
    errors_by_type: dict = field(default_factory=dict)

    def add_page(self, page: PageResult) -> None:
        self.pages_fetched += 1
        self.items_fetched += len(page.items)

    def add_error(self, error: Exception) -> None:
        self.failed_fetches += 1
        error_type = type(error).__name__
        self.errors_by_type[error_type] = self.errors_by_type.get(error_type, 0) + 1


class BaseClient:
    """Shared httpx plumbing and error mapping."""

    platform: Platform

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        config = get_config().fetcher

        headers = {"User-Agent": config.user_agent, "Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self.access_token = access_token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout_seconds or config.timeout_seconds,
            follow_redirects=config.follow_redirects,
        )
        self._headers = headers
        self.stats = FetchStats()
        self._logger = get_logger(__name__, platform=self.platform.value)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _is_not_found(self, response: httpx.Response) -> bool:
        return response.status_code == 404

    async def _get(
        self, url: str, params: Optional[dict[str, Any]] = None, identifier: str = ""
    ) -> httpx.Response:
        """GET a URL, mapping failures onto the error taxonomy.

        Raises:
            NotFoundError: Unknown account
            TransportError: Any other HTTP or network failure
        """
        clean = {}
        for key, value in (params or {}).items():
            if value is None:
                continue
            clean[key] = ("true" if value else "false") if isinstance(value, bool) else value

        try:
            response = await self._client.get(url, params=clean, headers=self._headers)
            if self._is_not_found(response):
                raise NotFoundError(self.platform.value, identifier or url)
            response.raise_for_status()
            return response

        except httpx.TimeoutException as e:
            error = TransportError(self.platform.value, f"Timeout: {e}")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            error = TransportError(
                self.platform.value,
                f"{self.platform.value} API error ({status}): {e.response.reason_phrase}",
                status_code=status,
            )
        except httpx.RequestError as e:
            error = TransportError(self.platform.value, f"Request error: {e}")
        except NotFoundError as e:
            self.stats.add_error(e)
            raise

        self.stats.add_error(error)
        self._logger.warning(f"Fetch failed for {url}: {error}")
        raise error

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(self.platform.value, f"Invalid JSON from {response.url}: {e}") from e


class BlueskyClient(BaseClient):
    """Bluesky AppView XRPC client."""

    platform = Platform.BLUESKY

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
    ) -> None:
        super().__init__(http_client=http_client, access_token=access_token)
        config = get_config().fetcher
        self.base_url = (base_url or config.bluesky_base_url).rstrip("/")
        self.page_size = config.bluesky_page_size
        self.likes_page_size = config.bluesky_likes_page_size
        self.search_page_size = get_config().search.bluesky_page_size

    def _is_not_found(self, response: httpx.Response) -> bool:
        if response.status_code == 404:
            return True
        if response.status_code == 400:
            try:
                message = str(response.json().get("message", ""))
            except (ValueError, AttributeError):
                return False
            return "not found" in message.lower()
        return False

    async def _xrpc(self, method: str, params: dict[str, Any], identifier: str = "") -> dict:
        response = await self._get(f"{self.base_url}/xrpc/{method}", params, identifier)
        data = self._json(response)
        return data if isinstance(data, dict) else {}

    async def fetch_page(
        self,
        identifier: str,
        cursor: Optional[str] = None,
        kind: Union[FeedKind, str] = FeedKind.TIMELINE,
        *,
        hide_replies: bool = False,
        hide_reposts: bool = False,
    ) -> PageResult:
        """Fetch one page.

        Args:
            identifier: Actor handle/DID, or the query for FeedKind.SEARCH
            cursor: Continuation cursor from the previous page
            kind: Stream to page through
            hide_replies: Ask the server to drop replies (timeline only)
            hide_reposts: Unsupported server-side; filtered by the core
        """
        kind = FeedKind(kind)

        if kind is FeedKind.SEARCH:
            data = await self._xrpc(
                "app.bsky.feed.searchPosts",
                {"q": identifier, "limit": self.search_page_size, "cursor": cursor},
            )
            items = [{"post": post} for post in data.get("posts") or []]
        elif kind is FeedKind.LIKES:
            actor = parse_bluesky_handle(identifier)
            data = await self._xrpc(
                "app.bsky.feed.getActorLikes",
                {"actor": actor, "limit": self.likes_page_size, "cursor": cursor},
                actor,
            )
            items = list(data.get("feed") or [])
        elif kind is FeedKind.BOOKMARKS:
            data = await self._xrpc(
                "app.bsky.bookmark.getBookmarks", {"limit": self.likes_page_size, "cursor": cursor}
            )
            items = [{"post": b["item"]} for b in data.get("bookmarks") or [] if b.get("item")]
        else:
            actor = parse_bluesky_handle(identifier)
            data = await self._xrpc(
                "app.bsky.feed.getAuthorFeed",
                {
                    "actor": actor,
                    "limit": self.page_size,
                    "cursor": cursor,
                    "filter": "posts_no_replies" if hide_replies else "posts_with_replies",
                },
                actor,
            )
            items = list(data.get("feed") or [])

        page = PageResult(items=items, next_cursor=data.get("cursor") if items else None)
        self.stats.add_page(page)
        self._logger.debug(f"Bluesky {kind.value} page for {identifier}: {len(items)} items")
        return page

    async def lookup_profile(self, identifier: str) -> Profile:
        actor = parse_bluesky_handle(identifier)
        data = await self._xrpc("app.bsky.actor.getProfile", {"actor": actor}, actor)
        if not data.get("did"):
            raise NotFoundError(self.platform.value, actor)
        return Profile(
            platform=self.platform.value,
            id=data["did"],
            handle=data.get("handle") or actor,
            display_name=data.get("displayName"),
            avatar=data.get("avatar"),
            description=data.get("description"),
            followers_count=data.get("followersCount"),
            follows_count=data.get("followsCount"),
            posts_count=data.get("postsCount"),
        )

    async def get_follows(self, identifier: str, max_pages: Optional[int] = None) -> set[str]:
        """DIDs of every account the actor follows."""
        actor = parse_bluesky_handle(identifier)
        follows: set[str] = set()
        cursor: Optional[str] = None
        pages = 0

        while True:
            data = await self._xrpc(
                "app.bsky.graph.getFollows", {"actor": actor, "limit": 100, "cursor": cursor}, actor
            )
            follows.update(f["did"] for f in data.get("follows") or [] if f.get("did"))
            pages += 1
            cursor = data.get("cursor")
            if not cursor or not data.get("follows") or (max_pages and pages >= max_pages):
                break

        self._logger.debug(f"{actor} follows {len(follows)} accounts")
        return follows


class MastodonClient(BaseClient):
    """Mastodon REST client.

    Public timelines and profiles are read from the account's own instance.
    Favourites, bookmarks and search need ``instance_url`` plus an access token
    for the signed-in user's home instance.
    """

    platform = Platform.MASTODON

    def __init__(
        self,
        instance_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
    ) -> None:
        super().__init__(http_client=http_client, access_token=access_token)
        self.instance_url = instance_url.rstrip("/") if instance_url else None
        self.page_size = get_config().fetcher.mastodon_page_size
        self._account_ids: dict[str, str] = {}

    def _home(self) -> str:
        if not self.instance_url:
            raise ConfigurationError("A Mastodon instance URL is required for authenticated endpoints")
        return self.instance_url

    @staticmethod
    def _next_max_id(response: httpx.Response, items: list[dict]) -> Optional[str]:
        """Continuation from the Link header, else the last status id."""
        if not items:
            return None
        next_link = response.links.get("next", {}).get("url")
        if next_link:
            max_ids = parse_qs(urlparse(next_link).query).get("max_id")
            if max_ids:
                return max_ids[0]
        last_id = items[-1].get("id")
        return str(last_id) if last_id is not None else None

    async def _lookup_account(self, handle: str) -> dict:
        username, instance = parse_mastodon_handle(handle)
        response = await self._get(
            f"https://{instance}/api/v1/accounts/lookup", {"acct": username}, handle
        )
        account = self._json(response)
        if not isinstance(account, dict) or not account.get("id"):
            raise NotFoundError(self.platform.value, handle)
        self._account_ids[handle.lower()] = str(account["id"])
        return account

    async def account_id(self, handle: str) -> str:
        cached = self._account_ids.get(handle.lower())
        if cached:
            return cached
        account = await self._lookup_account(handle)
        return str(account["id"])

    async def fetch_page(
        self,
        identifier: str,
        cursor: Optional[str] = None,
        kind: Union[FeedKind, str] = FeedKind.TIMELINE,
        *,
        hide_replies: bool = False,
        hide_reposts: bool = False,
    ) -> PageResult:
        """Fetch one page.

        Args:
            identifier: ``@user@instance`` handle, or the query for FeedKind.SEARCH
            cursor: ``max_id`` for timelines/favourites, result offset for search
            kind: Stream to page through
            hide_replies: Pass ``exclude_replies`` (timeline only)
            hide_reposts: Pass ``exclude_reblogs`` (timeline only)
        """
        kind = FeedKind(kind)

        if kind is FeedKind.SEARCH:
            offset = int(cursor or 0)
            response = await self._get(
                f"{self._home()}/api/v2/search",
                {
                    "q": identifier,
                    "type": "statuses",
                    "following": True,
                    "resolve": False,
                    "limit": self.page_size,
                    "offset": offset or None,
                },
            )
            data = self._json(response)
            items = list(data.get("statuses") or []) if isinstance(data, dict) else []
            next_cursor = str(offset + len(items)) if items else None
        else:
            if kind is FeedKind.TIMELINE:
                _, instance = parse_mastodon_handle(identifier)
                account_id = await self.account_id(identifier)
                url = f"https://{instance}/api/v1/accounts/{account_id}/statuses"
                params = {
                    "limit": self.page_size,
                    "max_id": cursor,
                    "exclude_replies": hide_replies or None,
                    "exclude_reblogs": hide_reposts or None,
                }
            else:
                endpoint = "favourites" if kind is FeedKind.LIKES else "bookmarks"
                url = f"{self._home()}/api/v1/{endpoint}"
                params = {"limit": self.page_size, "max_id": cursor}

            response = await self._get(url, params, identifier)
            data = self._json(response)
            items = list(data) if isinstance(data, list) else []
            next_cursor = self._next_max_id(response, items)

        page = PageResult(items=items, next_cursor=next_cursor)
        self.stats.add_page(page)
        self._logger.debug(f"Mastodon {kind.value} page for {identifier}: {len(items)} items")
        return page

    async def lookup_profile(self, identifier: str) -> Profile:
        account = await self._lookup_account(identifier)
        _, instance = parse_mastodon_handle(identifier)
        return Profile(
            platform=self.platform.value,
            id=str(account["id"]),
            handle=f"@{account.get('acct', '').split('@')[0]}@{instance}",
            display_name=account.get("display_name"),
            avatar=account.get("avatar"),
            description=account.get("note"),
            followers_count=account.get("followers_count"),
            follows_count=account.get("following_count"),
            posts_count=account.get("statuses_count"),
        )
