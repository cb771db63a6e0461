"""
Facade services for core modules.

External code (CLI scripts, web handlers, etc.) should ONLY interact with these
services, not with the assembler, deduplicator or ranker directly.

Example:
    from crossfeed.core.factories import create_fetchers
    from crossfeed.core.services import FeedService

    feed = FeedService(create_fetchers())
    state = await feed.load({"bluesky": "alice.bsky.social"})
    items = feed.view(state)
"""

from crossfeed.core.services.affinity_service import (
    AffinityService,
    create_affinity_service,
    get_affinity_cache,
)
from crossfeed.core.services.feed_service import FeedService, create_feed_service
from crossfeed.core.services.search_service import SearchService, create_search_service

__all__ = [
    # Services
    "FeedService",
    "SearchService",
    "AffinityService",
    # Factory functions
    "create_feed_service",
    "create_search_service",
    "create_affinity_service",
    "get_affinity_cache",
]
