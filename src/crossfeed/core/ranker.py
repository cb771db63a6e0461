"""
Relevance ranking for best match ordering.

score = affinity bonus (author liked before) + likes + 2 x reposts, with the
weights taken from RankingConfig. The bonus dominates engagement counts.
"""

from typing import Optional, Sequence, Union

from crossfeed.config import RankingConfig, get_config
from crossfeed.core.affinity import AffinityIndex
from crossfeed.logger import get_logger
from crossfeed.models import PostBase, SearchSort

logger = get_logger(__name__)


class RelevanceRanker:
    """Scores and orders posts for best match mode."""

    def __init__(
        self,
        affinity: Optional[AffinityIndex] = None,
        config: Optional[RankingConfig] = None,
    ) -> None:
        self.affinity = affinity or AffinityIndex()
        self.config = config or get_config().ranking

    def score(self, post: PostBase) -> int:
        bonus = self.config.affinity_bonus if self.affinity.contains(post) else 0
        return (
            bonus
            + self.config.like_weight * post.like_count
            + self.config.repost_weight * post.repost_count
        )

    def rank(self, posts: Sequence[PostBase]) -> list[PostBase]:
        """Order by score descending, ties by recency descending."""
        return sorted(posts, key=lambda p: (self.score(p), p.created_timestamp), reverse=True)

    def sort_results(
        self, posts: Sequence[PostBase], mode: Union[SearchSort, str] = SearchSort.BEST_MATCH
    ) -> list[PostBase]:
        """Order search results.

        Args:
            posts: Accumulated results
            mode: best_match, likes or newest; every mode falls back to recency

        Returns:
            Sorted copy of posts
        """
        mode = SearchSort(mode)
        if mode is SearchSort.BEST_MATCH:
            ranked = self.rank(posts)
        elif mode is SearchSort.LIKES:
            ranked = sorted(posts, key=lambda p: (p.like_count, p.created_timestamp), reverse=True)
        else:
            ranked = sorted(posts, key=lambda p: p.created_timestamp, reverse=True)

        logger.debug(f"Ranked {len(ranked)} posts by {mode.value}")
        return ranked
