"""
Cross-post deduplicator.

Finds posts published on both networks and groups them. Matching is greedy and
pairwise over the already-sorted post sequence, so it costs O(n^2) per batch;
larger batches should bucket candidates by time window first.
"""

from datetime import timedelta
from typing import Callable, Optional, Sequence

import jellyfish

from crossfeed.config import get_config
from crossfeed.logger import get_logger
from crossfeed.models import CrosspostGroup, FeedItem, PostBase

logger = get_logger(__name__)

SimilarityFunc = Callable[[str, str], float]


def text_similarity(a: str, b: str) -> float:
    """Jaro-Winkler similarity of two texts in [0, 1].

    Empty texts never match anything, including each other.
    """
    if not a or not b:
        return 0.0
    return jellyfish.jaro_winkler_similarity(a, b)


class CrosspostDeduplicator:
    """Groups matching posts from different platforms."""

    def __init__(
        self,
        threshold: Optional[float] = None,
        time_window: Optional[timedelta] = None,
        similarity: SimilarityFunc = text_similarity,
    ) -> None:
        """Initialize deduplicator.

        Args:
            threshold: Minimum similarity for a pair (inclusive)
            time_window: Max distance between creation times (exclusive)
            similarity: Text similarity function
        """
        config = get_config().deduplicator

        self.threshold = config.similarity_threshold if threshold is None else threshold
        self.time_window = time_window or timedelta(hours=config.time_window_hours)
        self.similarity = similarity
        self.stats = {"comparisons": 0, "groups": 0, "standalone": 0}

    def _is_candidate(self, post: PostBase, other: PostBase) -> bool:
        if other.uri == post.uri or other.platform == post.platform:
            return False
        delta = abs(post.created_timestamp - other.created_timestamp)
        return delta < self.time_window

    def find_best_match(
        self, post: PostBase, candidates: Sequence[PostBase], processed: set[tuple[str, str]]
    ) -> tuple[Optional[PostBase], float]:
        """Return the highest scoring unprocessed candidate for a post.

        Ties keep the first candidate encountered.
        """
        best: Optional[PostBase] = None
        best_score = 0.0

        for other in candidates:
            if other.key in processed or not self._is_candidate(post, other):
                continue
            self.stats["comparisons"] += 1
            score = self.similarity(post.text, other.text)
            if score > best_score:
                best, best_score = other, score

        return best, best_score

    def dedupe(self, posts: Sequence[PostBase]) -> list[FeedItem]:
        """Collapse cross-posted pairs into groups.

        Args:
            posts: Posts in display order

        Returns:
            Feed items in the same order; a group takes the position of the
            earlier of its two posts
        """
        self.reset_stats()
        items: list[FeedItem] = []
        processed: set[tuple[str, str]] = set()

        for post in posts:
            if post.key in processed:
                continue

            match, score = self.find_best_match(post, posts, processed)
            if match is not None and score >= self.threshold:
                pair = sorted([post, match], key=lambda p: p.platform)
                items.append(CrosspostGroup(id=post.uri, posts=pair, similarity=min(score, 1.0)))
                processed.update(p.key for p in pair)
                self.stats["groups"] += 1
            else:
                items.append(post)
                processed.add(post.key)
                self.stats["standalone"] += 1

        logger.debug(
            f"Deduplicated {len(posts)} posts into {len(items)} items "
            f"({self.stats['groups']} cross-post groups, {self.stats['comparisons']} comparisons)"
        )
        return items

    def reset_stats(self) -> None:
        self.stats = {"comparisons": 0, "groups": 0, "standalone": 0}
