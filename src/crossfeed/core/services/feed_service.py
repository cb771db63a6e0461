"""
Facade for feed loading, viewing and export.

Provides unified interface over the assembler, deduplicator and exporters.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Mapping, Optional, Union

from crossfeed.analytics import FeedAnalytics, compute_analytics
from crossfeed.core.assembler import FeedState, flatten_feed, get_feed, render_threads
from crossfeed.export import ExportFormat, export_filename, export_posts
from crossfeed.logger import get_logger
from crossfeed.models import FeedFilters, Platform, PostBase

if TYPE_CHECKING:
    from crossfeed.core.assembler import UpdateCallback
    from crossfeed.core.deduplicator import CrosspostDeduplicator
    from crossfeed.models import FeedItem


class FeedService:
    """Facade for a unified multi-platform feed.

    Fetching mutates a FeedState; every view is recomputed from that state.
    """

    def __init__(
        self,
        fetchers: Mapping[Platform, object],
        deduplicator: Optional["CrosspostDeduplicator"] = None,
    ):
        """Initialize feed service.

        Args:
            fetchers: Page fetcher per platform
            deduplicator: Cross-post deduplicator (configured default if None)
        """
        from crossfeed.core.factories import create_assembler, create_deduplicator

        self._assembler = create_assembler(fetchers)
        self._deduplicator = deduplicator or create_deduplicator()
        self._logger = get_logger(__name__)

    async def load(
        self,
        handles: Mapping[Union[Platform, str], str],
        filters: Optional[FeedFilters] = None,
        on_update: Optional["UpdateCallback"] = None,
    ) -> FeedState:
        """Load profiles and first pages for the given handles.

        Args:
            handles: Handle per platform; empty handles are skipped
            filters: Initial filters
            on_update: Called with the state after merging

        Returns:
            New FeedState, with per-platform errors recorded
        """
        return await self._assembler.load_initial(handles, filters, on_update)

    async def load_more(
        self,
        state: FeedState,
        platform: Union[Platform, str],
        on_update: Optional["UpdateCallback"] = None,
    ) -> FeedState:
        return await self._assembler.load_more(state, platform, on_update)

    async def load_all(
        self, state: FeedState, on_update: Optional["UpdateCallback"] = None
    ) -> FeedState:
        return await self._assembler.load_all(state, on_update)

    def view(self, state: FeedState) -> list["FeedItem"]:
        """Current render-ready feed items."""
        return get_feed(state, self._deduplicator)

    def threads(self, state: FeedState):
        """Current feed with each standalone root expanded into its thread."""
        return render_threads(state, self.view(state))

    def visible_posts(self, state: FeedState) -> list[PostBase]:
        return flatten_feed(self.view(state))

    def export(
        self,
        state: FeedState,
        handle: str,
        fmt: Union[ExportFormat, str],
        now: Optional[datetime] = None,
    ) -> tuple[str, str]:
        """Serialize the current view.

        Returns:
            Tuple of (filename, content)
        """
        posts = self.visible_posts(state)
        return export_filename(handle, fmt, now), export_posts(posts, handle, fmt, now)

    def analytics(self, state: FeedState) -> Optional[FeedAnalytics]:
        return compute_analytics(self.visible_posts(state))


def create_feed_service(fetchers: Mapping[Platform, object]) -> FeedService:
    """Create a FeedService instance.

    Args:
        fetchers: Page fetcher per platform

    Returns:
        Configured FeedService
    """
    return FeedService(fetchers)
