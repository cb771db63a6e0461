"""Core business logic modules for crossfeed.

IMPORTANT: Module Boundary Rules
=================================

External code (CLI scripts, web handlers, etc.) MUST ONLY use Service Facades.
Direct import of core module classes from this package is FORBIDDEN.

CORRECT - Use Service Facades:
    from crossfeed.core import FeedService, SearchService

    feed = FeedService(fetchers)
    state = await feed.load(handles)

WRONG - Engine classes (FORBIDDEN):
    from crossfeed.core import FeedAssembler  # VIOLATION

Available Services:
    - FeedService: Multi-platform feed loading, view and export
    - SearchService: Streaming network search with best match ranking
    - AffinityService: Cached affinity index builds
"""

# Service Facades (ONLY public interface for external code)
from crossfeed.core.services import (
    AffinityService,
    FeedService,
    SearchService,
    create_affinity_service,
    create_feed_service,
    create_search_service,
    get_affinity_cache,
)

# Result and state types (allowed for type hints and return values)
from crossfeed.core.assembler import FeedState, PlatformFeed
from crossfeed.core.affinity import AffinityIndex
from crossfeed.core.filter_engine import FilterResult
from crossfeed.core.fetcher import FetchStats, PageFetcher
from crossfeed.core.search import CloseEvent, ErrorEvent, PostEvent, SearchResult

# Client construction (allowed, services need fetchers)
from crossfeed.core.factories import create_fetchers

__all__ = [
    # Service Facades (USE THESE)
    "FeedService",
    "SearchService",
    "AffinityService",
    # Service factory functions
    "create_feed_service",
    "create_search_service",
    "create_affinity_service",
    "get_affinity_cache",
    "create_fetchers",
    # Result types (for type hints)
    "FeedState",
    "PlatformFeed",
    "AffinityIndex",
    "FilterResult",
    "FetchStats",
    "PageFetcher",
    "PostEvent",
    "ErrorEvent",
    "CloseEvent",
    "SearchResult",
]


# Module boundary enforcement
_forbidden_imports = {
    "FeedAssembler": "Use FeedService instead",
    "CrosspostDeduplicator": "Use FeedService instead",
    "FilterEngine": "Use FeedService instead",
    "ThreadBuilder": "Use FeedService.threads instead",
    "AffinityIndexBuilder": "Use AffinityService instead",
    "RelevanceRanker": "Use SearchService instead",
}


def __getattr__(name: str):
    """Intercept forbidden imports and provide helpful error messages."""
    if name in _forbidden_imports:
        raise ImportError(
            f"Direct import of '{name}' is forbidden. "
            f"{_forbidden_imports[name]}. "
            f"Use Service Facades from crossfeed.core.services instead."
        )
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
