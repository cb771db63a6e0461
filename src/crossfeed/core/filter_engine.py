"""
Filter engine applying feed filters and sort orders to posts.
"""

from typing import Callable, Optional, Sequence

from crossfeed.core.normalizer import has_media
from crossfeed.logger import get_logger
from crossfeed.models import FeedFilters, Platform, PostBase, SortBy

logger = get_logger(__name__)


class FilterResult:
    """Result of filtering a post."""

    def __init__(self, passed: bool, excluded_by: Optional[str] = None) -> None:
        """Initialize filter result.

        Args:
            passed: Whether the post passed all filters
            excluded_by: Name of the filter that excluded the post
        """
        self.passed = passed
        self.excluded_by = excluded_by

    def __repr__(self) -> str:
        return f"<FilterResult(passed={self.passed}, excluded_by={self.excluded_by})>"


def _newest_key(post: PostBase):
    return post.created_timestamp


_SORT_KEYS: dict[SortBy, tuple[Callable[[PostBase], object], bool]] = {
    SortBy.NEWEST: (_newest_key, True),
    SortBy.OLDEST: (_newest_key, False),
    SortBy.LIKES: (lambda p: p.like_count, True),
    SortBy.REPOSTS: (lambda p: p.repost_count, True),
    SortBy.ENGAGEMENT: (lambda p: p.like_count + p.repost_count, True),
}


def sort_posts(posts: Sequence[PostBase], sort_by: SortBy = SortBy.NEWEST) -> list[PostBase]:
    """Sort posts; the sort is stable so ties keep input order."""
    key, reverse = _SORT_KEYS[SortBy(sort_by)]
    return sorted(posts, key=key, reverse=reverse)


class FilterEngine:
    """Applies one FeedFilters configuration to posts."""

    def __init__(self, filters: Optional[FeedFilters] = None) -> None:
        self.filters = filters or FeedFilters()
        self._search_lower = self.filters.search_term.lower()

    def _is_reply(self, post: PostBase) -> bool:
        if post.reply_parent_uri:
            return True
        # Mastodon only: a leading @-mention also counts as a reply
        return post.platform == Platform.MASTODON and post.text.lstrip().startswith("@")

    def filter_post(self, post: PostBase) -> FilterResult:
        """Check a post against every enabled filter.

        Args:
            post: Post to check

        Returns:
            FilterResult naming the first filter that excluded the post
        """
        filters = self.filters

        if filters.hide_replies and self._is_reply(post):
            return FilterResult(False, "hide_replies")
        if filters.hide_reposts and post.is_repost:
            return FilterResult(False, "hide_reposts")
        if self._search_lower and self._search_lower not in post.text.lower():
            return FilterResult(False, "search_term")
        if filters.has_media and not has_media(post):
            return FilterResult(False, "has_media")
        if filters.min_likes > 0 and post.like_count < filters.min_likes:
            return FilterResult(False, "min_likes")

        return FilterResult(True)

    def matches(self, post: PostBase) -> bool:
        return self.filter_post(post).passed

    def filter_posts(self, posts: Sequence[PostBase]) -> list[PostBase]:
        """Keep posts that pass all filters, preserving order."""
        passed = [post for post in posts if self.matches(post)]

        logger.debug(
            f"Filtered {len(posts)} posts: {len(passed)} passed, "
            f"{len(posts) - len(passed)} excluded"
        )
        return passed

    def sort(self, posts: Sequence[PostBase]) -> list[PostBase]:
        return sort_posts(posts, self.filters.sort_by)

    def apply(self, posts: Sequence[PostBase]) -> list[PostBase]:
        """Filter then sort."""
        return self.sort(self.filter_posts(posts))


def create_filter_engine(filters: Optional[FeedFilters] = None) -> FilterEngine:
    """Factory function to create a FilterEngine.

    Args:
        filters: Filter configuration (defaults to no filtering, newest first)

    Returns:
        Configured FilterEngine instance
    """
    return FilterEngine(filters)
