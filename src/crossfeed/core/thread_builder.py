"""
Reply thread reconstruction.

Rebuilds parent -> children nesting from a flat post set. Nothing is cached:
every call works on the post set it is given, so a newly loaded parent
re-parents its orphaned replies on the next recomputation.
"""

from collections import defaultdict
from typing import Iterable, Optional, Sequence

from crossfeed.core.normalizer import native_id
from crossfeed.logger import get_logger
from crossfeed.models import PostBase, ThreadNode

logger = get_logger(__name__)

PostRef = tuple[str, str]


def reference_keys(post: PostBase) -> set[PostRef]:
    """Keys a reply may use to point at this post."""
    keys = {(post.platform, post.uri)}
    ident = native_id(post)
    if ident:
        keys.add((post.platform, ident))
    return keys


def parent_key(post: PostBase) -> Optional[PostRef]:
    """Key of the post this one replies to, if any."""
    if not post.reply_parent_uri:
        return None
    return (post.platform, post.reply_parent_uri)


def known_keys(posts: Iterable[PostBase]) -> set[PostRef]:
    keys: set[PostRef] = set()
    for post in posts:
        keys |= reference_keys(post)
    return keys


def is_thread_root(post: PostBase, known: set[PostRef]) -> bool:
    """A post is a root when it has no parent or its parent is not loaded."""
    parent = parent_key(post)
    return parent is None or parent not in known


def thread_roots(posts: Sequence[PostBase], known: Optional[Iterable[PostBase]] = None) -> list[PostBase]:
    """Posts that belong at the top level.

    Args:
        posts: Candidate posts, order preserved
        known: Post set parents are resolved against (defaults to posts)
    """
    keys = known_keys(posts if known is None else known)
    return [post for post in posts if is_thread_root(post, keys)]


class ThreadBuilder:
    """Builds reply trees over one post set."""

    def __init__(self, all_posts: Sequence[PostBase]) -> None:
        self.all_posts = list(all_posts)
        self._order = {post.key: i for i, post in enumerate(self.all_posts)}
        self._children: dict[PostRef, list[PostBase]] = defaultdict(list)
        for post in self.all_posts:
            parent = parent_key(post)
            if parent is not None:
                self._children[parent].append(post)

    def replies_to(self, post: PostBase) -> list[PostBase]:
        """Direct replies of a post, in input order."""
        replies: list[PostBase] = []
        seen: set[PostRef] = set()
        for key in reference_keys(post):
            for child in self._children.get(key, []):
                if child.key not in seen:
                    seen.add(child.key)
                    replies.append(child)
        replies.sort(key=lambda p: self._order.get(p.key, 0))
        return replies

    def build(self, root: PostBase) -> ThreadNode:
        """Build the reply tree below root, to any depth.

        A post is expanded at most once, so malformed reply cycles terminate.
        """
        tree = ThreadNode(post=root)
        expanded = {root.key}
        stack = [tree]

        while stack:
            node = stack.pop()
            for reply in self.replies_to(node.post):
                if reply.key in expanded:
                    logger.warning(f"Reply cycle detected at {reply.uri}")
                    continue
                expanded.add(reply.key)
                child = ThreadNode(post=reply)
                node.replies.append(child)
                stack.append(child)

        return tree


def build_thread(root: PostBase, all_posts: Sequence[PostBase]) -> ThreadNode:
    """Build the reply tree of root over all_posts."""
    return ThreadBuilder(all_posts).build(root)


def build_threads(roots: Sequence[PostBase], all_posts: Sequence[PostBase]) -> list[ThreadNode]:
    """Build trees for several roots sharing one index."""
    builder = ThreadBuilder(all_posts)
    return [builder.build(root) for root in roots]
