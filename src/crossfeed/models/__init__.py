"""Data models for crossfeed."""

from crossfeed.models.feed import (
    FeedFilters,
    FeedKind,
    PageResult,
    Profile,
    SearchSort,
    SortBy,
)
from crossfeed.models.post import (
    Author,
    BlueskyPost,
    CanonicalPost,
    CrosspostGroup,
    FeedItem,
    MastodonPost,
    Platform,
    PostBase,
    RepostAuthor,
    ThreadNode,
    parse_timestamp,
)

__all__ = [
    "Platform",
    "Author",
    "RepostAuthor",
    "PostBase",
    "BlueskyPost",
    "MastodonPost",
    "CanonicalPost",
    "CrosspostGroup",
    "FeedItem",
    "ThreadNode",
    "parse_timestamp",
    "FeedFilters",
    "FeedKind",
    "PageResult",
    "Profile",
    "SearchSort",
    "SortBy",
]
