"""
Affinity index: authors the user has liked or favourited, per platform.

The index is an approximate personalization signal. A build walks the user's
like (or bookmark) history page by page up to a page cap; running out of pages
or hitting a failing page yields a partial index plus a PartialDataWarning.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar, Union

from crossfeed.config import get_config
from crossfeed.core.normalizer import PostNormalizer
from crossfeed.exceptions import CrossfeedError, PartialDataWarning
from crossfeed.logger import get_logger
from crossfeed.models import FeedKind, Platform, PostBase

logger = get_logger(__name__)

T = TypeVar("T")


def author_identifier(post: PostBase) -> str:
    """Stable author identifier used by the index.

    Bluesky authors are keyed by DID; Mastodon authors by their host-qualified
    handle, which is the same whichever instance served the status.
    """
    if post.platform == Platform.BLUESKY and post.author.id:
        return post.author.id
    return post.author.handle.lower()


@dataclass
class AffinityIndex:
    """Set of preferred author identifiers for each platform."""

    by_platform: dict[Platform, frozenset[str]] = field(default_factory=dict)
    warnings: list[PartialDataWarning] = field(default_factory=list)

    def authors(self, platform: Union[Platform, str]) -> frozenset[str]:
        return self.by_platform.get(Platform(platform), frozenset())

    def contains(self, post: PostBase) -> bool:
        """Whether the post's author is preferred on the post's platform."""
        return author_identifier(post) in self.authors(post.platform)

    @property
    def is_partial(self) -> bool:
        return bool(self.warnings)

    @property
    def size(self) -> int:
        return sum(len(authors) for authors in self.by_platform.values())

    def merged(self, other: "AffinityIndex") -> "AffinityIndex":
        """Combine two indexes; other's platforms replace this one's."""
        return AffinityIndex(
            by_platform={**self.by_platform, **other.by_platform},
            warnings=[*self.warnings, *other.warnings],
        )


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its absolute expiry time (seconds since epoch)."""

    value: T
    expires_at: float


class AffinityCache:
    """Process-wide key -> CacheEntry store with time-based expiry.

    There is no locking: concurrent writers simply overwrite each other.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = get_config().affinity.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}

    @staticmethod
    def key_for(platform: Union[Platform, str], handle: str) -> str:
        return f"affinity-{Platform(platform).value}-{handle.lower()}"

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self.clock():
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> CacheEntry[Any]:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = CacheEntry(value=value, expires_at=self.clock() + ttl)
        self._entries[key] = entry
        return entry

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class AffinityIndexBuilder:
    """Walks like/bookmark history on each platform."""

    def __init__(
        self,
        fetchers: Mapping[Platform, Any],
        max_pages: Optional[int] = None,
        source: Optional[Union[FeedKind, str]] = None,
    ) -> None:
        """Initialize builder.

        Args:
            fetchers: Page fetcher per platform
            max_pages: Max history pages per platform and build
            source: FeedKind.LIKES or FeedKind.BOOKMARKS
        """
        config = get_config().affinity

        self.fetchers = dict(fetchers)
        self.max_pages = max_pages or config.max_pages
        self.source = FeedKind(source or config.source)
        if self.source not in (FeedKind.LIKES, FeedKind.BOOKMARKS):
            raise ValueError(f"Unsupported affinity source: {self.source.value}")
        self.normalizer = PostNormalizer()

    async def walk(
        self, platform: Platform, identifier: str
    ) -> tuple[set[str], Optional[PartialDataWarning]]:
        """Collect author identifiers for one platform.

        Returns:
            Tuple of (authors, warning); warning is None for a complete walk
        """
        fetcher = self.fetchers[platform]
        authors: set[str] = set()
        cursor: Optional[str] = None
        pages = 0

        try:
            while pages < self.max_pages:
                page = await fetcher.fetch_page(identifier, cursor, self.source)
                pages += 1
                if not page.items:
                    return authors, None

                for raw in page.items:
                    authors.add(author_identifier(self.normalizer.normalize(raw, platform)))
                logger.debug(f"{platform.value} affinity: {len(authors)} authors after {pages} page(s)")

                cursor = page.next_cursor
                if cursor is None:
                    return authors, None
        except CrossfeedError as e:
            logger.warning(f"Affinity walk for {platform.value} stopped: {e}")
            return authors, PartialDataWarning(platform.value, f"fetch failed: {e}", pages)

        logger.info(f"Affinity walk for {platform.value} hit the {self.max_pages}-page cap")
        return authors, PartialDataWarning(platform.value, "page limit reached", pages)

    async def build(self, identifiers: Mapping[Platform, str]) -> AffinityIndex:
        """Build one author set per platform, platforms walked concurrently.

        Args:
            identifiers: User handle per platform; platforms without a fetcher
                are skipped

        Returns:
            AffinityIndex, possibly partial
        """
        platforms = [Platform(p) for p in identifiers if Platform(p) in self.fetchers]
        results = await asyncio.gather(
            *(self.walk(p, identifiers[p]) for p in platforms)
        )

        index = AffinityIndex()
        for platform, (authors, warning) in zip(platforms, results):
            index.by_platform[platform] = frozenset(authors)
            if warning is not None:
                index.warnings.append(warning)

        logger.info(
            "Affinity index built: "
            + ", ".join(f"{p.value}={len(a)}" for p, a in index.by_platform.items())
        )
        return index
