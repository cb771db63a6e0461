"""Unit tests for feed analytics."""

from crossfeed.analytics import compute_analytics
from crossfeed.core.normalizer import normalize


class TestComputeAnalytics:
    """Tests for compute_analytics."""

    def test_summary(self, bsky_item, masto_status):
        """Test totals, averages, top post and hour buckets over original posts."""
        first = normalize(bsky_item("a", "x", "2024-01-01T10:15:00Z", likes=5, reposts=1), "bluesky")
        second = normalize(bsky_item("b", "y", "2024-01-01T22:00:00Z", likes=5, reposts=3), "bluesky")
        offset = normalize(masto_status("1", "z", "2024-01-02T10:30:00+02:00", likes=2), "mastodon")
        repost = normalize(bsky_item("c", "w", likes=100, reposted_by="bob.bsky.social"), "bluesky")

        analytics = compute_analytics([first, second, offset, repost])

        assert analytics.total_posts == 3
        assert analytics.total_likes == 12
        assert analytics.total_reposts == 4
        assert analytics.avg_likes == 4.0
        assert analytics.avg_reposts == 1.3
        assert analytics.top_post is first
        assert analytics.posts_by_hour[10] == 1
        assert analytics.posts_by_hour[22] == 1
        assert analytics.posts_by_hour[8] == 1
        assert sum(analytics.posts_by_hour) == 3

    def test_no_posts(self):
        assert compute_analytics([]) is None

    def test_only_reposts(self, bsky_item):
        repost = normalize(bsky_item("c", "w", reposted_by="bob.bsky.social"), "bluesky")

        assert compute_analytics([repost]) is None

    def test_to_dict(self, bsky_item):
        post = normalize(bsky_item("a", "x", "2024-01-01T03:00:00Z", likes=1), "bluesky")

        data = compute_analytics([post]).to_dict()

        assert data["top_post"] == post.uri
        assert data["posts_by_hour"][3] == 1
        assert len(data["posts_by_hour"]) == 24
