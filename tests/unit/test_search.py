"""Unit tests for streaming network search."""

import asyncio

import pytest

from crossfeed.core.affinity import AffinityCache, AffinityIndex
from crossfeed.core.ranker import RelevanceRanker
from crossfeed.core.search import CloseEvent, ErrorEvent, PostEvent, collect_search, stream_search
from crossfeed.core.services import AffinityService, SearchService
from crossfeed.exceptions import ConfigurationError, TransportError
from crossfeed.models import Platform, SearchSort


def _drain(agen):
    async def run():
        return [event async for event in agen]

    return asyncio.run(run())


async def _events(*events):
    for event in events:
        yield event


@pytest.fixture
def search_fetchers(fake_fetcher, bsky_item, masto_status):
    """Bluesky search results from a followed and an unfollowed author, plus Mastodon results."""
    bsky_pages = [
        [
            bsky_item("s1", "rust is great", did="did:plc:friend", handle="friend.bsky.social", likes=3),
            bsky_item("s2", "rust tips", did="did:plc:stranger", handle="stranger.bsky.social", likes=50),
        ],
        [bsky_item("s3", "more rust", "2024-01-02T00:00:00Z", did="did:plc:friend", handle="friend.bsky.social")],
    ]
    masto_pages = [[masto_status("1", "rust on mastodon", likes=1)]]
    return {
        Platform.BLUESKY: fake_fetcher("bluesky", {"search": bsky_pages}, follows={"did:plc:friend"}),
        Platform.MASTODON: fake_fetcher("mastodon", {"search": masto_pages}),
    }


class TestStreamSearch:
    """Tests for stream_search."""

    def test_events_end_with_single_close(self, search_fetchers):
        """Test posts from followed authors stream in, followed by one close event."""
        events = _drain(stream_search("rust", search_fetchers, bluesky_handle="me.bsky.social"))

        posts = [e.post for e in events if isinstance(e, PostEvent)]
        assert {p.text for p in posts} == {"rust is great", "more rust", "rust on mastodon"}
        assert isinstance(events[-1], CloseEvent)
        assert sum(isinstance(e, CloseEvent) for e in events) == 1
        assert events[-1].message == "Search stream complete."

    def test_bluesky_skipped_without_handle(self, search_fetchers):
        events = _drain(stream_search("rust", search_fetchers))

        assert {e.post.platform for e in events if isinstance(e, PostEvent)} == {"mastodon"}
        assert search_fetchers[Platform.BLUESKY].calls == []

    def test_page_limit(self, fake_fetcher, masto_status):
        """Test each platform stops after the page limit."""
        pages = [[masto_status(str(i), f"rust {i}")] for i in range(10)]
        fetchers = {Platform.MASTODON: fake_fetcher("mastodon", {"search": pages})}

        events = _drain(stream_search("rust", fetchers, page_limit=5))

        assert sum(isinstance(e, PostEvent) for e in events) == 5
        assert len(fetchers[Platform.MASTODON].calls) == 5

    def test_platform_error_isolated(self, fake_fetcher, bsky_item, masto_status):
        """Test a failing platform emits an error while the other still delivers."""
        fetchers = {
            Platform.BLUESKY: fake_fetcher(
                "bluesky", {"search": [[bsky_item("s1", "x")]]}, fail_at=0, error=TransportError("bluesky", "HTTP 503")
            ),
            Platform.MASTODON: fake_fetcher("mastodon", {"search": [[masto_status("1", "rust")]]}),
        }

        events = _drain(stream_search("rust", fetchers, bluesky_handle="me.bsky.social"))

        errors = [e for e in events if isinstance(e, ErrorEvent)]
        assert [(e.platform, e.message) for e in errors] == [("bluesky", "HTTP 503")]
        assert sum(isinstance(e, PostEvent) for e in events) == 1
        assert isinstance(events[-1], CloseEvent)

    def test_empty_query_rejected(self, search_fetchers):
        with pytest.raises(ConfigurationError):
            _drain(stream_search("  ", search_fetchers))

    def test_no_platforms(self):
        assert [type(e) for e in _drain(stream_search("rust", {}))] == [CloseEvent]

    def test_early_close_cancels_producers(self, fake_fetcher, masto_status):
        """Test closing the stream after the first event stops the producers."""
        pages = [[masto_status(str(i), f"rust {i}")] for i in range(5)]
        fetchers = {Platform.MASTODON: fake_fetcher("mastodon", {"search": pages})}

        async def run():
            stream = stream_search("rust", fetchers)
            first = await stream.__anext__()
            await stream.aclose()
            return first

        first = asyncio.run(run())

        assert isinstance(first, PostEvent)


class TestCollectSearch:
    """Tests for collect_search."""

    def test_ranks_once_after_close(self, search_fetchers):
        """Test best match ordering puts liked authors first."""
        affinity = AffinityIndex(by_platform={Platform.MASTODON: frozenset({"@alice@mastodon.social"})})

        async def run():
            return await collect_search(
                stream_search("rust", search_fetchers, bluesky_handle="me.bsky.social"),
                ranker=RelevanceRanker(affinity),
            )

        result = asyncio.run(run())

        assert result.complete
        assert result.errors == []
        assert [p.text for p in result.posts] == ["rust on mastodon", "rust is great", "more rust"]

    def test_error_does_not_end_collection(self, bsky_item):
        """Test an error event is recorded and posts after it are still collected."""
        from crossfeed.core.normalizer import normalize

        a = normalize(bsky_item("a", "x"), "bluesky")
        b = normalize(bsky_item("b", "y"), "bluesky")
        events = _events(PostEvent(a), ErrorEvent("HTTP 500", "mastodon"), PostEvent(b), CloseEvent())

        result = asyncio.run(collect_search(events, mode=SearchSort.NEWEST))

        assert {p.uri for p in result.posts} == {a.uri, b.uri}
        assert result.errors == ["HTTP 500"]
        assert result.complete

    def test_stop_on_error(self, bsky_item):
        from crossfeed.core.normalizer import normalize

        a = normalize(bsky_item("a", "x"), "bluesky")
        b = normalize(bsky_item("b", "y"), "bluesky")
        events = _events(PostEvent(a), ErrorEvent("HTTP 500", "mastodon"), PostEvent(b), CloseEvent())

        result = asyncio.run(collect_search(events, stop_on_error=True))

        assert result.posts == [a]
        assert result.errors == ["HTTP 500"]
        assert not result.complete

    def test_continue_after_error(self, bsky_item):
        from crossfeed.core.normalizer import normalize

        a = normalize(bsky_item("a", "x"), "bluesky")
        b = normalize(bsky_item("b", "y"), "bluesky")
        events = _events(PostEvent(a), ErrorEvent("HTTP 500", "mastodon"), PostEvent(b), PostEvent(b), CloseEvent())

        result = asyncio.run(collect_search(events, mode=SearchSort.NEWEST))

        assert len(result.posts) == 2
        assert result.complete


class TestSearchService:
    """Tests for SearchService."""

    def test_search_best_match(self, fake_fetcher, bsky_item):
        """Test the affinity index built from likes boosts a followed author."""
        fetcher = fake_fetcher(
            "bluesky",
            {
                "search": [
                    [
                        bsky_item("s1", "rust a", did="did:plc:liked", likes=0),
                        bsky_item("s2", "rust b", did="did:plc:other", likes=30),
                    ]
                ],
                "likes": [[bsky_item("l1", "old", did="did:plc:liked")]],
            },
            follows={"did:plc:liked", "did:plc:other"},
        )
        fetchers = {Platform.BLUESKY: fetcher}
        affinity = AffinityService(fetchers, cache=AffinityCache())
        service = SearchService(fetchers, affinity_service=affinity)

        result = asyncio.run(service.search("rust", bluesky_handle="me.bsky.social", mode="best_match"))

        assert [p.text for p in result.posts] == ["rust a", "rust b"]

    def test_search_likes_mode_skips_affinity(self, fake_fetcher, bsky_item):
        fetcher = fake_fetcher(
            "bluesky",
            {"search": [[bsky_item("s1", "rust a", likes=1), bsky_item("s2", "rust b", likes=5)]]},
            follows={"did:plc:alice"},
        )
        service = SearchService({Platform.BLUESKY: fetcher}, affinity_service=AffinityService({}, cache=AffinityCache()))

        result = asyncio.run(service.search("rust", bluesky_handle="me.bsky.social", mode="likes"))

        assert [p.text for p in result.posts] == ["rust b", "rust a"]
        assert all(call[2].value == "search" for call in fetcher.calls)

    def test_search_keeps_other_platform_on_failure(self, fake_fetcher, bsky_item, masto_status):
        """Test a Bluesky failure is reported while Mastodon results are still returned."""
        fetchers = {
            Platform.BLUESKY: fake_fetcher(
                "bluesky", {"search": [[bsky_item("s1", "x")]]}, fail_at=0, error=TransportError("bluesky", "HTTP 503")
            ),
            Platform.MASTODON: fake_fetcher("mastodon", {"search": [[masto_status("1", "rust on mastodon")]]}),
        }
        service = SearchService(fetchers, affinity_service=AffinityService(fetchers, cache=AffinityCache()))

        result = asyncio.run(service.search("rust", bluesky_handle="me.bsky.social", mode="newest"))

        assert [p.text for p in result.posts] == ["rust on mastodon"]
        assert result.errors == ["HTTP 503"]
        assert result.complete

    def test_search_reports_partial_affinity(self, fake_fetcher, bsky_item):
        """Test a likes walk that stops early surfaces a warning on the result."""
        fetcher = fake_fetcher(
            "bluesky",
            {
                "search": [[bsky_item("s1", "rust a", did="did:plc:liked")]],
                "likes": [
                    [bsky_item("l1", "old", did="did:plc:liked")],
                    [bsky_item("l2", "older", did="did:plc:other")],
                ],
            },
            fail_at=1,
            error=TransportError("bluesky", "HTTP 500"),
            follows={"did:plc:liked"},
        )
        fetchers = {Platform.BLUESKY: fetcher}
        service = SearchService(fetchers, affinity_service=AffinityService(fetchers, cache=AffinityCache()))

        result = asyncio.run(service.search("rust", bluesky_handle="me.bsky.social", mode="best_match"))

        assert [p.text for p in result.posts] == ["rust a"]
        assert result.errors == []
        assert [(w.platform, w.reason, w.pages_fetched) for w in result.warnings] == [
            ("bluesky", "fetch failed: HTTP 500", 1)
        ]
