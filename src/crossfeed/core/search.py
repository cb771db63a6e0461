"""
Streaming network search across platforms.

Each platform runs as its own producer task pushing events into a shared queue;
the consumer sees posts as soon as any platform's page arrives. Bluesky results
are restricted to authors the given handle follows, Mastodon relies on the
server-side ``following`` filter.
"""

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterable, AsyncIterator, Mapping, Optional, Union

from crossfeed.config import get_config
from crossfeed.core.normalizer import PostNormalizer
from crossfeed.core.ranker import RelevanceRanker
from crossfeed.exceptions import ConfigurationError, CrossfeedError, PartialDataWarning
from crossfeed.logger import get_logger
from crossfeed.models import FeedKind, Platform, PostBase, SearchSort

logger = get_logger(__name__)

CLOSE_MESSAGE = "Search stream complete."


@dataclass(frozen=True)
class PostEvent:
    post: PostBase
    event: str = "post"


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    platform: Optional[str] = None
    event: str = "error"


@dataclass(frozen=True)
class CloseEvent:
    message: str = CLOSE_MESSAGE
    event: str = "close"


SearchEvent = Union[PostEvent, ErrorEvent, CloseEvent]

_DONE = object()


@dataclass
class SearchResult:
    """Accumulated search results."""

    posts: list[PostBase] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[PartialDataWarning] = field(default_factory=list)
    complete: bool = False


class _SearchProducer:
    """Pages one platform's search results into a queue."""

    def __init__(
        self,
        platform: Platform,
        fetcher,
        query: str,
        queue: asyncio.Queue,
        page_limit: int,
        follows_of: Optional[str] = None,
    ) -> None:
        self.platform = platform
        self.fetcher = fetcher
        self.query = query
        self.queue = queue
        self.page_limit = page_limit
        self.follows_of = follows_of
        self.normalizer = PostNormalizer()
        self.emitted = 0
        self.logger = get_logger(__name__, platform=platform.value)

    async def _pages(self) -> None:
        follows = None
        if self.follows_of is not None:
            follows = await self.fetcher.get_follows(self.follows_of)

        cursor: Optional[str] = None
        for _ in range(self.page_limit):
            page = await self.fetcher.fetch_page(self.query, cursor, FeedKind.SEARCH)
            for raw in page.items:
                post = self.normalizer.normalize(raw, self.platform)
                if follows is not None and post.author.id not in follows:
                    continue
                await self.queue.put(PostEvent(post))
                self.emitted += 1

            cursor = page.next_cursor
            if not cursor:
                break

    async def run(self) -> None:
        try:
            await self._pages()
            self.logger.debug(f"{self.platform.value} search produced {self.emitted} posts")
        except CrossfeedError as e:
            self.logger.warning(f"{self.platform.value} search failed: {e}")
            await self.queue.put(ErrorEvent(str(e), self.platform.value))
        except Exception as e:
            self.logger.exception(f"Unexpected {self.platform.value} search failure")
            await self.queue.put(ErrorEvent(str(e) or type(e).__name__, self.platform.value))
        finally:
            await self.queue.put(_DONE)


async def stream_search(
    query: str,
    fetchers: Mapping[Platform, object],
    bluesky_handle: Optional[str] = None,
    page_limit: Optional[int] = None,
) -> AsyncIterator[SearchEvent]:
    """Search every available platform, yielding events as they arrive.

    Bluesky is searched only when ``bluesky_handle`` is given. The stream always
    ends with exactly one CloseEvent; closing the generator early cancels the
    producers.

    Raises:
        ConfigurationError: Empty query
    """
    if not query or not query.strip():
        raise ConfigurationError("Search query is required")

    page_limit = page_limit or get_config().search.page_limit
    queue: asyncio.Queue = asyncio.Queue()
    producers = []

    if bluesky_handle and Platform.BLUESKY in fetchers:
        producers.append(
            _SearchProducer(
                Platform.BLUESKY, fetchers[Platform.BLUESKY], query, queue, page_limit,
                follows_of=bluesky_handle,
            )
        )
    if Platform.MASTODON in fetchers:
        producers.append(
            _SearchProducer(Platform.MASTODON, fetchers[Platform.MASTODON], query, queue, page_limit)
        )

    logger.info(
        f"Searching {query!r} on {', '.join(p.platform.value for p in producers) or 'no platforms'}"
    )
    tasks = [asyncio.create_task(p.run()) for p in producers]

    try:
        remaining = len(tasks)
        while remaining:
            event = await queue.get()
            if event is _DONE:
                remaining -= 1
                continue
            yield event
        yield CloseEvent()
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def collect_search(
    events: AsyncIterable[SearchEvent],
    ranker: Optional[RelevanceRanker] = None,
    mode: Union[SearchSort, str] = SearchSort.BEST_MATCH,
    stop_on_error: bool = False,
) -> SearchResult:
    """Accumulate post events until close, then rank once over the full set.

    Args:
        events: Event stream, usually from stream_search
        ranker: Ranker for the final ordering
        mode: Search sort mode
        stop_on_error: Stop at the first error event instead of reading on to close

    Returns:
        SearchResult with ranked posts and recorded error messages
    """
    result = SearchResult()
    seen: set[tuple[str, str]] = set()

    async for event in events:
        if isinstance(event, PostEvent):
            if event.post.key not in seen:
                seen.add(event.post.key)
                result.posts.append(event.post)
        elif isinstance(event, ErrorEvent):
            result.errors.append(event.message)
            if stop_on_error:
                break
        else:
            result.complete = True
            break

    aclose = getattr(events, "aclose", None)
    if aclose is not None:
        await aclose()

    result.posts = (ranker or RelevanceRanker()).sort_results(result.posts, mode)
    logger.info(
        f"Search collected {len(result.posts)} posts "
        f"({len(result.errors)} error(s), complete={result.complete})"
    )
    return result
