"""
Facade for network search.

Provides streaming search plus a collected, ranked result.
"""

from typing import TYPE_CHECKING, AsyncIterator, Mapping, Optional, Union

from crossfeed.config import get_config
from crossfeed.core.affinity import AffinityIndex
from crossfeed.core.search import SearchResult, collect_search, stream_search
from crossfeed.logger import get_logger
from crossfeed.models import Platform, SearchSort

if TYPE_CHECKING:
    from crossfeed.core.search import SearchEvent
    from crossfeed.core.services.affinity_service import AffinityService


class SearchService:
    """Facade for searching posts from followed accounts."""

    def __init__(
        self,
        fetchers: Mapping[Platform, object],
        affinity_service: Optional["AffinityService"] = None,
    ):
        """Initialize search service.

        Args:
            fetchers: Page fetcher per platform
            affinity_service: Source of the best match affinity index
        """
        from crossfeed.core.services.affinity_service import AffinityService

        self._fetchers = dict(fetchers)
        self._affinity = affinity_service or AffinityService(self._fetchers)
        self._logger = get_logger(__name__)

    def stream(
        self,
        query: str,
        bluesky_handle: Optional[str] = None,
        page_limit: Optional[int] = None,
    ) -> AsyncIterator["SearchEvent"]:
        return stream_search(query, self._fetchers, bluesky_handle, page_limit)

    async def search(
        self,
        query: str,
        bluesky_handle: Optional[str] = None,
        mastodon_handle: Optional[str] = None,
        mode: Union[SearchSort, str, None] = None,
        page_limit: Optional[int] = None,
    ) -> SearchResult:
        """Run a search to completion and rank the results.

        Args:
            query: Search query
            bluesky_handle: Restrict Bluesky results to accounts this handle follows
            mastodon_handle: Signed-in Mastodon handle (affinity cache key)
            mode: best_match, likes or newest (configured default if None)
            page_limit: Pages per platform

        Returns:
            SearchResult with ranked posts and any partial affinity warnings
        """
        from crossfeed.core.factories import create_ranker

        mode = SearchSort(mode or get_config().search.default_sort)

        affinity = AffinityIndex()
        if mode is SearchSort.BEST_MATCH:
            identifiers = {Platform.BLUESKY: bluesky_handle, Platform.MASTODON: mastodon_handle}
            affinity = await self._affinity.get_index(identifiers)
            for warning in affinity.warnings:
                self._logger.info(f"Affinity data is partial: {warning}")

        result = await collect_search(
            self.stream(query, bluesky_handle, page_limit),
            ranker=create_ranker(affinity),
            mode=mode,
        )
        result.warnings = list(affinity.warnings)
        return result


def create_search_service(
    fetchers: Mapping[Platform, object],
    affinity_service: Optional["AffinityService"] = None,
) -> SearchService:
    """Create a SearchService instance."""
    return SearchService(fetchers, affinity_service=affinity_service)
