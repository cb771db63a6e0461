"""Unit tests for the affinity index builder, cache and service."""

import asyncio

import pytest

from crossfeed.core.affinity import AffinityCache, AffinityIndex, AffinityIndexBuilder, author_identifier
from crossfeed.core.factories import create_affinity_builder
from crossfeed.core.normalizer import normalize
from crossfeed.core.services import AffinityService
from crossfeed.exceptions import PartialDataWarning, TransportError
from crossfeed.models import FeedKind, Platform


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _liked_pages(bsky_item, pages):
    """One page per liked author."""
    return [[bsky_item(f"l{i}", "liked", did=f"did:plc:author{i}", handle=f"author{i}.bsky.social")] for i in range(pages)]


class TestAuthorIdentifier:
    """Tests for author_identifier."""

    def test_bluesky_uses_did(self, bsky_item):
        post = normalize(bsky_item("a", did="did:plc:xyz", handle="x.bsky.social"), "bluesky")

        assert author_identifier(post) == "did:plc:xyz"

    def test_mastodon_uses_qualified_handle(self, masto_status):
        post = normalize(masto_status("1", "x", username="Carol", host="example.social"), "mastodon")

        assert author_identifier(post) == "@carol@example.social"


class TestAffinityIndexBuilder:
    """Tests for AffinityIndexBuilder."""

    def test_complete_walk(self, fake_fetcher, bsky_item):
        """Test a walk that runs out of pages is complete."""
        fetchers = {Platform.BLUESKY: fake_fetcher("bluesky", {"likes": _liked_pages(bsky_item, 3)})}
        index = asyncio.run(AffinityIndexBuilder(fetchers, max_pages=15).build({"bluesky": "me.bsky.social"}))

        assert index.authors("bluesky") == {"did:plc:author0", "did:plc:author1", "did:plc:author2"}
        assert index.warnings == []
        assert not index.is_partial

    def test_page_cap(self, fake_fetcher, bsky_item):
        """Test reaching the page cap yields a partial index and a warning."""
        fetchers = {Platform.BLUESKY: fake_fetcher("bluesky", {"likes": _liked_pages(bsky_item, 20)})}
        index = asyncio.run(AffinityIndexBuilder(fetchers, max_pages=15).build({"bluesky": "me.bsky.social"}))

        assert len(index.authors("bluesky")) == 15
        assert index.warnings == [PartialDataWarning("bluesky", "page limit reached", 15)]
        assert len(fetchers[Platform.BLUESKY].calls) == 15

    def test_failed_page(self, fake_fetcher, bsky_item, masto_status):
        """Test a failing page keeps what was collected; the other platform is unaffected."""
        fetchers = {
            Platform.BLUESKY: fake_fetcher(
                "bluesky",
                {"likes": _liked_pages(bsky_item, 5)},
                fail_at=2,
                error=TransportError("bluesky", "HTTP 500"),
            ),
            Platform.MASTODON: fake_fetcher(
                "mastodon", {"likes": [[masto_status("1", "fav", username="dan", host="x.social")]]}
            ),
        }
        index = asyncio.run(
            AffinityIndexBuilder(fetchers).build({"bluesky": "me.bsky.social", "mastodon": "@me@x.social"})
        )

        assert len(index.authors("bluesky")) == 2
        assert index.authors("mastodon") == {"@dan@x.social"}
        assert len(index.warnings) == 1
        warning = index.warnings[0]
        assert warning.platform == "bluesky"
        assert warning.pages_fetched == 2
        assert warning.reason.startswith("fetch failed")

    def test_stops_at_empty_page(self, fake_fetcher):
        fetchers = {Platform.BLUESKY: fake_fetcher("bluesky", {"likes": []})}
        index = asyncio.run(AffinityIndexBuilder(fetchers).build({"bluesky": "me.bsky.social"}))

        assert index.authors("bluesky") == frozenset()
        assert not index.is_partial

    def test_bookmarks_source(self, fake_fetcher, bsky_item):
        fetchers = {Platform.BLUESKY: fake_fetcher("bluesky", {"bookmarks": _liked_pages(bsky_item, 1)})}
        builder = AffinityIndexBuilder(fetchers, source="bookmarks")

        index = asyncio.run(builder.build({"bluesky": "me.bsky.social"}))

        assert index.size == 1
        assert fetchers[Platform.BLUESKY].calls[0][2] == FeedKind.BOOKMARKS

    def test_invalid_source(self, fake_fetcher):
        with pytest.raises(ValueError):
            AffinityIndexBuilder({}, source="timeline")

    def test_platform_without_fetcher_skipped(self, fake_fetcher):
        index = asyncio.run(AffinityIndexBuilder({}).build({"bluesky": "me.bsky.social"}))

        assert index.by_platform == {}

    def test_factory_defaults(self):
        builder = create_affinity_builder({})

        assert builder.max_pages == 15
        assert builder.source == FeedKind.LIKES


class TestAffinityIndex:
    """Tests for AffinityIndex."""

    def test_contains_is_platform_scoped(self, bsky_item, masto_status):
        post = normalize(masto_status("1", "x", username="eve", host="a.social"), "mastodon")
        index = AffinityIndex(by_platform={Platform.BLUESKY: frozenset({"@eve@a.social"})})

        assert not index.contains(post)

    def test_merged(self):
        a = AffinityIndex(by_platform={Platform.BLUESKY: frozenset({"x"})})
        b = AffinityIndex(
            by_platform={Platform.MASTODON: frozenset({"y"})},
            warnings=[PartialDataWarning("mastodon", "page limit reached", 15)],
        )

        merged = a.merged(b)

        assert merged.size == 2
        assert merged.is_partial


class TestAffinityCache:
    """Tests for AffinityCache."""

    def test_key_format(self):
        assert AffinityCache.key_for("bluesky", "Me.bsky.social") == "affinity-bluesky-me.bsky.social"

    def test_expiry(self):
        """Test entries expire after their TTL and are evicted on read."""
        clock = FakeClock()
        cache = AffinityCache(ttl_seconds=3600, clock=clock)
        cache.set("k", "value")

        clock.now += 3599
        assert cache.get("k") == "value"

        clock.now += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_default_ttl_from_config(self):
        assert AffinityCache().ttl_seconds == 3600

    def test_last_writer_wins(self):
        cache = AffinityCache(clock=FakeClock())
        cache.set("k", 1)
        cache.set("k", 2)

        assert cache.get("k") == 2

    def test_invalidate(self):
        cache = AffinityCache(clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2

        cache.invalidate()
        assert len(cache) == 0


class TestAffinityService:
    """Tests for AffinityService caching."""

    def test_cached_between_calls(self, fake_fetcher, bsky_item):
        """Test a second request within the TTL does not refetch."""
        fetcher = fake_fetcher("bluesky", {"likes": _liked_pages(bsky_item, 2)})
        clock = FakeClock()
        service = AffinityService({Platform.BLUESKY: fetcher}, cache=AffinityCache(ttl_seconds=60, clock=clock))

        first = asyncio.run(service.get_index({"bluesky": "me.bsky.social"}))
        second = asyncio.run(service.get_index({"bluesky": "me.bsky.social"}))

        assert first.authors("bluesky") == second.authors("bluesky")
        assert len(fetcher.calls) == 2

        clock.now += 61
        asyncio.run(service.get_index({"bluesky": "me.bsky.social"}))
        assert len(fetcher.calls) == 4

    def test_refresh(self, fake_fetcher, bsky_item):
        fetcher = fake_fetcher("bluesky", {"likes": _liked_pages(bsky_item, 1)})
        service = AffinityService({Platform.BLUESKY: fetcher}, cache=AffinityCache(clock=FakeClock()))

        asyncio.run(service.get_index({"bluesky": "me.bsky.social"}))
        asyncio.run(service.get_index({"bluesky": "me.bsky.social"}, refresh=True))

        assert len(fetcher.calls) == 2

    def test_partial_warning_cached_with_platform(self, fake_fetcher, bsky_item, masto_status):
        fetchers = {
            Platform.BLUESKY: fake_fetcher("bluesky", {"likes": _liked_pages(bsky_item, 3)}),
            Platform.MASTODON: fake_fetcher("mastodon", {"likes": [[masto_status("1", "fav")]]}),
        }
        cache = AffinityCache(clock=FakeClock())
        service = AffinityService(fetchers, cache=cache)
        service._builder.max_pages = 2

        index = asyncio.run(service.get_index({"bluesky": "me.bsky.social", "mastodon": "@me@x.social"}))

        assert [w.platform for w in index.warnings] == ["bluesky"]
        assert cache.get(cache.key_for("mastodon", "@me@x.social")).warnings == []
