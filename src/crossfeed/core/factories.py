"""
Factory functions for creating core components with proper dependency injection.

Every factory reads its defaults from the config system and accepts explicit
overrides, so services and tests build components the same way.

Usage:
    from crossfeed.core.factories import (
        create_fetchers,
        create_deduplicator,
        create_assembler,
        create_affinity_builder,
        create_affinity_cache,
        create_ranker,
    )

    fetchers = create_fetchers(mastodon_instance_url="https://mastodon.social")
    assembler = create_assembler(fetchers)
"""

from datetime import timedelta
from typing import Mapping, Optional, Union

import httpx

from crossfeed.config import RankingConfig, get_config
from crossfeed.core.affinity import AffinityCache, AffinityIndex, AffinityIndexBuilder
from crossfeed.core.assembler import FeedAssembler
from crossfeed.core.deduplicator import CrosspostDeduplicator
from crossfeed.core.fetcher import BaseClient, BlueskyClient, MastodonClient
from crossfeed.core.normalizer import PostNormalizer, create_normalizer
from crossfeed.core.ranker import RelevanceRanker
from crossfeed.models import FeedKind, Platform


def create_fetchers(
    mastodon_instance_url: Optional[str] = None,
    mastodon_token: Optional[str] = None,
    bluesky_token: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict[Platform, BaseClient]:
    """Create one fetcher per platform.

    Args:
        mastodon_instance_url: Home instance for authenticated Mastodon calls
        mastodon_token: Mastodon OAuth access token
        bluesky_token: Bluesky session access token
        http_client: Shared httpx client (owned by the caller)

    Returns:
        Mapping of platform to fetcher
    """
    return {
        Platform.BLUESKY: BlueskyClient(http_client=http_client, access_token=bluesky_token),
        Platform.MASTODON: MastodonClient(
            instance_url=mastodon_instance_url,
            http_client=http_client,
            access_token=mastodon_token,
        ),
    }


def create_deduplicator(
    threshold: Optional[float] = None,
    time_window_hours: Optional[float] = None,
) -> CrosspostDeduplicator:
    """Create a configured CrosspostDeduplicator instance.

    Args:
        threshold: Override similarity threshold
        time_window_hours: Override pairing window

    Returns:
        Configured CrosspostDeduplicator instance
    """
    window = timedelta(hours=time_window_hours) if time_window_hours is not None else None
    return CrosspostDeduplicator(threshold=threshold, time_window=window)


def create_assembler(
    fetchers: Mapping[Platform, object],
    normalizer: Optional[PostNormalizer] = None,
) -> FeedAssembler:
    """Create a FeedAssembler over the given fetchers."""
    return FeedAssembler(fetchers, normalizer=normalizer or create_normalizer())


def create_affinity_builder(
    fetchers: Mapping[Platform, object],
    max_pages: Optional[int] = None,
    source: Optional[Union[FeedKind, str]] = None,
) -> AffinityIndexBuilder:
    """Create a configured AffinityIndexBuilder instance.

    Args:
        fetchers: Page fetcher per platform
        max_pages: Override history page cap
        source: Override history source (likes or bookmarks)

    Returns:
        Configured AffinityIndexBuilder instance
    """
    config = get_config()
    return AffinityIndexBuilder(
        fetchers,
        max_pages=max_pages or config.affinity.max_pages,
        source=source or config.affinity.source,
    )


def create_affinity_cache(ttl_seconds: Optional[int] = None) -> AffinityCache:
    return AffinityCache(ttl_seconds=ttl_seconds)


def create_ranker(
    affinity: Optional[AffinityIndex] = None,
    affinity_bonus: Optional[int] = None,
) -> RelevanceRanker:
    """Create a configured RelevanceRanker instance.

    Args:
        affinity: Affinity index for the bonus term
        affinity_bonus: Override the configured bonus

    Returns:
        Configured RelevanceRanker instance
    """
    config = get_config().ranking
    if affinity_bonus is not None:
        config = RankingConfig(
            affinity_bonus=affinity_bonus,
            like_weight=config.like_weight,
            repost_weight=config.repost_weight,
        )
    return RelevanceRanker(affinity=affinity, config=config)
