"""
Feed configuration and pagination models.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SortBy(str, Enum):
    """Feed sort orders."""

    NEWEST = "newest"
    OLDEST = "oldest"
    LIKES = "likes"
    REPOSTS = "reposts"
    ENGAGEMENT = "engagement"


class SearchSort(str, Enum):
    """Search result orders."""

    BEST_MATCH = "best_match"
    LIKES = "likes"
    NEWEST = "newest"


class FeedKind(str, Enum):
    """Upstream streams a fetcher can page through."""

    TIMELINE = "timeline"
    LIKES = "likes"
    BOOKMARKS = "bookmarks"
    SEARCH = "search"


class FeedFilters(BaseModel):
    """Filter and sort options applied to the loaded posts."""

    model_config = ConfigDict(frozen=True)

    search_term: str = Field("", description="Case-insensitive substring of the text")
    sort_by: SortBy = Field(SortBy.NEWEST, description="Sort order")
    has_media: bool = Field(False, description="Only posts with an image attachment")
    hide_replies: bool = Field(False, description="Exclude replies")
    hide_reposts: bool = Field(False, description="Exclude reshares")
    min_likes: int = Field(0, ge=0, description="Minimum like count")

    def merged(self, **changes: Any) -> "FeedFilters":
        """Return a validated copy with some options changed."""
        return type(self).model_validate({**self.model_dump(), **changes})


class PageResult(BaseModel):
    """One upstream page: raw records plus the continuation cursor."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self.next_cursor is None


class Profile(BaseModel):
    """Account summary returned by a profile lookup."""

    platform: str
    id: str
    handle: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    description: Optional[str] = None
    followers_count: Optional[int] = None
    follows_count: Optional[int] = None
    posts_count: Optional[int] = None
