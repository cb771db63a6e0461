"""
Summary statistics over a feed's original posts (reposts excluded).
"""

from dataclasses import dataclass, field
from datetime import timezone
from typing import Optional, Sequence

from crossfeed.models import PostBase


@dataclass
class FeedAnalytics:
    total_posts: int
    total_likes: int
    total_reposts: int
    avg_likes: float
    avg_reposts: float
    top_post: PostBase
    posts_by_hour: list[int] = field(default_factory=lambda: [0] * 24)

    def to_dict(self) -> dict:
        return {
            "total_posts": self.total_posts,
            "total_likes": self.total_likes,
            "total_reposts": self.total_reposts,
            "avg_likes": self.avg_likes,
            "avg_reposts": self.avg_reposts,
            "top_post": self.top_post.uri,
            "posts_by_hour": list(self.posts_by_hour),
        }


def compute_analytics(posts: Sequence[PostBase]) -> Optional[FeedAnalytics]:
    """Compute statistics, or None when there are no original posts.

    Hours are bucketed in UTC. The top post is the first one with the most likes.
    """
    originals = [post for post in posts if not post.is_repost]
    if not originals:
        return None

    total_likes = sum(post.like_count for post in originals)
    total_reposts = sum(post.repost_count for post in originals)

    by_hour = [0] * 24
    for post in originals:
        by_hour[post.created_timestamp.astimezone(timezone.utc).hour] += 1

    return FeedAnalytics(
        total_posts=len(originals),
        total_likes=total_likes,
        total_reposts=total_reposts,
        avg_likes=round(total_likes / len(originals), 1),
        avg_reposts=round(total_reposts / len(originals), 1),
        top_post=max(originals, key=lambda p: p.like_count),
        posts_by_hour=by_hour,
    )
