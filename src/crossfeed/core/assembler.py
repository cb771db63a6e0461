"""
Feed assembler: incremental multi-platform pagination and the derived view.

The loaded post set lives in a FeedState. Fetching mutates that state; the view
(filter -> sort -> cross-post dedupe -> thread roots) is a pure function of it
and is recomputed from scratch on every call.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from crossfeed.config import get_config
from crossfeed.core.deduplicator import CrosspostDeduplicator
from crossfeed.core.filter_engine import FilterEngine, sort_posts
from crossfeed.core.normalizer import PostNormalizer, parse_bluesky_handle, parse_mastodon_handle
from crossfeed.core.thread_builder import ThreadBuilder, is_thread_root, known_keys
from crossfeed.exceptions import CrossfeedError, NotFoundError, PlatformError
from crossfeed.logger import get_logger
from crossfeed.models import (
    CrosspostGroup,
    FeedFilters,
    FeedItem,
    FeedKind,
    PageResult,
    Platform,
    PostBase,
    Profile,
    SortBy,
    ThreadNode,
)

logger = get_logger(__name__)

UpdateCallback = Callable[["FeedState"], None]


@dataclass
class PlatformFeed:
    """Pagination state for one platform."""

    handle: Optional[str] = None
    profile: Optional[Profile] = None
    cursor: Optional[str] = None
    error: Optional[str] = None
    loading: bool = False

    @property
    def has_more(self) -> bool:
        return self.handle is not None and self.cursor is not None


@dataclass
class FeedState:
    """Loaded posts, per-platform cursors and the active filters."""

    posts: list[PostBase] = field(default_factory=list)
    platforms: dict[Platform, PlatformFeed] = field(default_factory=dict)
    filters: FeedFilters = field(default_factory=FeedFilters)

    def platform(self, platform: Union[Platform, str]) -> PlatformFeed:
        return self.platforms.setdefault(Platform(platform), PlatformFeed())

    def has_more(self, platform: Union[Platform, str]) -> bool:
        feed = self.platforms.get(Platform(platform))
        return feed is not None and feed.has_more

    @property
    def has_more_content(self) -> bool:
        return any(feed.has_more for feed in self.platforms.values())

    @property
    def errors(self) -> dict[Platform, str]:
        return {p: feed.error for p, feed in self.platforms.items() if feed.error}

    def update_filters(self, **changes) -> FeedFilters:
        """Apply a partial filter change."""
        self.filters = self.filters.merged(**changes)
        return self.filters


def merge_posts(existing: Sequence[PostBase], new: Iterable[PostBase]) -> list[PostBase]:
    """Add new posts not already present (by platform and uri), newest first."""
    seen = {post.key for post in existing}
    merged = list(existing)
    for post in new:
        if post.key not in seen:
            seen.add(post.key)
            merged.append(post)
    return sort_posts(merged, SortBy.NEWEST)


def get_feed(
    state: FeedState, deduplicator: Optional[CrosspostDeduplicator] = None
) -> list[FeedItem]:
    """Derive the render-ready feed from the loaded posts and filters.

    Pipeline: filter -> sort -> cross-post dedupe -> keep groups and the
    standalone posts whose parent is not among the standalone posts.
    """
    posts = FilterEngine(state.filters).apply(state.posts)

    if get_config().deduplicator.enabled:
        items = (deduplicator or CrosspostDeduplicator()).dedupe(posts)
    else:
        items = list(posts)

    standalone = [item for item in items if not isinstance(item, CrosspostGroup)]
    keys = known_keys(standalone)
    return [
        item for item in items
        if isinstance(item, CrosspostGroup) or is_thread_root(item, keys)
    ]


def render_threads(
    state: FeedState, items: Optional[Sequence[FeedItem]] = None
) -> list[Union[CrosspostGroup, ThreadNode]]:
    """Expand each standalone root into its reply tree over all loaded posts."""
    items = get_feed(state) if items is None else items
    builder = ThreadBuilder(state.posts)
    return [item if isinstance(item, CrosspostGroup) else builder.build(item) for item in items]


def flatten_feed(items: Iterable[FeedItem]) -> list[PostBase]:
    """Replace every cross-post group with its posts."""
    posts: list[PostBase] = []
    for item in items:
        if isinstance(item, CrosspostGroup):
            posts.extend(item.posts)
        else:
            posts.append(item)
    return posts


def export_view(state: FeedState) -> list[PostBase]:
    """Posts of the current filtered view, for exporters. Never fetches."""
    return flatten_feed(get_feed(state))


class FeedAssembler:
    """Fetches pages per platform and merges them into a FeedState."""

    def __init__(
        self,
        fetchers: Mapping[Platform, object],
        normalizer: Optional[PostNormalizer] = None,
    ) -> None:
        """Initialize assembler.

        Args:
            fetchers: Page fetcher per platform
            normalizer: Post normalizer
        """
        self.fetchers = dict(fetchers)
        self.normalizer = normalizer or PostNormalizer()

    @staticmethod
    def validate_handle(platform: Platform, handle: str) -> str:
        """Validate a handle before any network call.

        Raises:
            ConfigurationError: Malformed handle
        """
        if platform is Platform.MASTODON:
            username, instance = parse_mastodon_handle(handle)
            return f"@{username}@{instance}"
        return parse_bluesky_handle(handle)

    async def _fetch_and_merge(
        self, state: FeedState, platform: Platform, cursor: Optional[str]
    ) -> PageResult:
        feed = state.platform(platform)
        page = await self.fetchers[platform].fetch_page(
            feed.handle,
            cursor,
            FeedKind.TIMELINE,
            hide_replies=state.filters.hide_replies,
            hide_reposts=state.filters.hide_reposts,
        )
        new_posts = self.normalizer.normalize_many(page.items, platform)
        before = len(state.posts)
        state.posts = merge_posts(state.posts, new_posts)
        feed.cursor = page.next_cursor

        logger.debug(
            f"Merged {len(state.posts) - before}/{len(new_posts)} new {platform.value} posts "
            f"(total {len(state.posts)}, more={feed.cursor is not None})"
        )
        return page

    async def _load_first_page(
        self, state: FeedState, platform: Platform, handle: str
    ) -> Profile:
        feed = state.platform(platform)
        feed.loading = True
        try:
            feed.handle = self.validate_handle(platform, handle)
            feed.profile = await self.fetchers[platform].lookup_profile(feed.handle)
            await self._fetch_and_merge(state, platform, None)
            return feed.profile
        finally:
            feed.loading = False

    async def load_initial(
        self,
        handles: Mapping[Union[Platform, str], str],
        filters: Optional[FeedFilters] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> FeedState:
        """Fetch profile and first page for every given platform concurrently.

        A failure is recorded on that platform only; the others still load.
        """
        state = FeedState(filters=filters or FeedFilters())
        platforms = [Platform(p) for p, h in handles.items() if h]
        wanted = {Platform(p): h for p, h in handles.items() if h}

        results = await asyncio.gather(
            *(self._load_first_page(state, p, wanted[p]) for p in platforms),
            return_exceptions=True,
        )

        for platform, result in zip(platforms, results):
            feed = state.platform(platform)
            if isinstance(result, BaseException):
                feed.cursor = None
                feed.error = self._describe(result)
                if not isinstance(result, CrossfeedError):
                    logger.opt(exception=result).error(f"Unexpected error loading {platform.value}")
                else:
                    logger.warning(f"Initial load failed for {platform.value}: {feed.error}")

        if on_update:
            on_update(state)
        logger.info(
            f"Initial load: {len(state.posts)} posts from "
            f"{len(platforms) - len(state.errors)}/{len(platforms)} platform(s)"
        )
        return state

    async def load_more(
        self,
        state: FeedState,
        platform: Union[Platform, str],
        on_update: Optional[UpdateCallback] = None,
    ) -> FeedState:
        """Fetch the next page for one platform; no-op when exhausted.

        On failure the cursor is kept so the page can be retried.
        """
        platform = Platform(platform)
        feed = state.platform(platform)
        if not feed.has_more or feed.loading:
            return state

        feed.loading = True
        feed.error = None
        try:
            await self._fetch_and_merge(state, platform, feed.cursor)
        except CrossfeedError as e:
            feed.error = f"Failed to load more from {platform.value}: {self._describe(e)}"
            logger.warning(feed.error)
        except Exception as e:
            feed.error = f"Failed to load more from {platform.value}: {self._describe(e)}"
            logger.opt(exception=e).error(feed.error)
        finally:
            feed.loading = False

        if on_update:
            on_update(state)
        return state

    async def _load_all_for(
        self, state: FeedState, platform: Platform, on_update: Optional[UpdateCallback]
    ) -> int:
        feed = state.platform(platform)
        pages = 0
        feed.loading = True
        try:
            while feed.has_more:
                try:
                    await self._fetch_and_merge(state, platform, feed.cursor)
                except CrossfeedError as e:
                    feed.error = f"Failed during 'Load All' for {platform.value}: {self._describe(e)}"
                    feed.cursor = None
                    logger.warning(feed.error)
                    break
                pages += 1
                if on_update:
                    on_update(state)
        finally:
            feed.loading = False
        return pages

    async def load_all(
        self, state: FeedState, on_update: Optional[UpdateCallback] = None
    ) -> FeedState:
        """Page every platform to exhaustion, platforms in parallel.

        One platform failing stops only that platform's walk.
        """
        platforms = [p for p, feed in state.platforms.items() if feed.has_more and not feed.loading]
        for platform in platforms:
            state.platform(platform).error = None

        results = await asyncio.gather(
            *(self._load_all_for(state, p, on_update) for p in platforms),
            return_exceptions=True,
        )

        for platform, result in zip(platforms, results):
            if isinstance(result, BaseException):
                feed = state.platform(platform)
                feed.cursor = None
                feed.error = f"Failed during 'Load All' for {platform.value}: {self._describe(result)}"
                logger.opt(exception=result).error(feed.error)
            else:
                logger.info(f"Load all: {result} page(s) from {platform.value}")

        return state

    @staticmethod
    def _describe(error: BaseException) -> str:
        if isinstance(error, NotFoundError):
            return str(error)
        if isinstance(error, PlatformError):
            return error.message
        return str(error) or type(error).__name__
