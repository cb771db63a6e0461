"""
Facade for cached affinity index builds.
"""

from typing import Mapping, Optional, Union

from crossfeed.core.affinity import AffinityCache, AffinityIndex
from crossfeed.logger import get_logger
from crossfeed.models import Platform

# Process-wide cache shared by every AffinityService without an explicit cache
_shared_cache: Optional[AffinityCache] = None


def get_affinity_cache() -> AffinityCache:
    """Get the process-wide affinity cache."""
    global _shared_cache
    if _shared_cache is None:
        from crossfeed.core.factories import create_affinity_cache

        _shared_cache = create_affinity_cache()
    return _shared_cache


class AffinityService:
    """Facade for building affinity indexes with TTL caching.

    Each platform's author set is cached separately under
    ``affinity-{platform}-{handle}``.
    """

    def __init__(
        self,
        fetchers: Mapping[Platform, object],
        cache: Optional[AffinityCache] = None,
    ):
        """Initialize affinity service.

        Args:
            fetchers: Page fetcher per platform
            cache: Index cache (process-wide cache if None)
        """
        from crossfeed.core.factories import create_affinity_builder

        self._builder = create_affinity_builder(fetchers)
        self._cache = cache if cache is not None else get_affinity_cache()
        self._logger = get_logger(__name__)

    @property
    def cache(self) -> AffinityCache:
        return self._cache

    async def get_index(
        self,
        identifiers: Mapping[Union[Platform, str], str],
        refresh: bool = False,
    ) -> AffinityIndex:
        """Get the affinity index, building only platforms not cached.

        Args:
            identifiers: User handle per platform
            refresh: Ignore cached entries

        Returns:
            AffinityIndex over all requested platforms
        """
        wanted = {Platform(p): h for p, h in identifiers.items() if h}
        index = AffinityIndex()
        missing: dict[Platform, str] = {}

        for platform, handle in wanted.items():
            cached = None if refresh else self._cache.get(self._cache.key_for(platform, handle))
            if cached is None:
                missing[platform] = handle
            else:
                index = index.merged(cached)

        if not missing:
            self._logger.debug(f"Affinity index served from cache ({index.size} authors)")
            return index

        built = await self._builder.build(missing)
        for platform, handle in missing.items():
            part = AffinityIndex(
                by_platform={platform: built.authors(platform)},
                warnings=[w for w in built.warnings if w.platform == platform.value],
            )
            self._cache.set(self._cache.key_for(platform, handle), part)
            index = index.merged(part)

        return index

    def invalidate(self, platform: Union[Platform, str, None] = None, handle: Optional[str] = None) -> None:
        """Drop one cached index, or all of them."""
        if platform is None or handle is None:
            self._cache.invalidate()
        else:
            self._cache.invalidate(self._cache.key_for(platform, handle))


def create_affinity_service(
    fetchers: Mapping[Platform, object],
    cache: Optional[AffinityCache] = None,
) -> AffinityService:
    """Create an AffinityService instance."""
    return AffinityService(fetchers, cache=cache)
