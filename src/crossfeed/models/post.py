"""
Canonical post model shared by both platforms.

A post is a tagged variant: ``BlueskyPost`` or ``MastodonPost``, discriminated
by ``platform``. Instances are frozen once the normalizer creates them.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Supported networks. Values sort alphabetically (bluesky < mastodon)."""

    BLUESKY = "bluesky"
    MASTODON = "mastodon"

    def __str__(self) -> str:
        return self.value


_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an upstream ISO-8601 timestamp into an aware datetime.

    Unparseable or missing values map to the epoch so that sorting stays total.
    """
    if not value:
        return _EPOCH
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Author(BaseModel):
    """Post author."""

    model_config = ConfigDict(frozen=True)

    handle: str = Field(..., description="Handle; @user@host on Mastodon")
    display_name: Optional[str] = Field(None, description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar URL")
    id: Optional[str] = Field(None, description="Platform account id (DID or account id)")


class RepostAuthor(BaseModel):
    """Account that reshared a post."""

    model_config = ConfigDict(frozen=True)

    handle: str
    display_name: Optional[str] = None


class PostBase(BaseModel):
    """Fields common to both platform variants."""

    model_config = ConfigDict(frozen=True)

    uri: str = Field(..., description="Platform-unique identifier")
    text: str = Field("", description="Plain text content")
    author: Author
    created_at: str = Field(..., description="ISO-8601 creation timestamp")
    reply_count: int = Field(0, ge=0)
    repost_count: int = Field(0, ge=0)
    like_count: int = Field(0, ge=0)
    reply_parent_uri: Optional[str] = Field(None, description="Parent uri when the post is a reply")
    is_repost: bool = False
    repost_author: Optional[RepostAuthor] = None
    embeds: Any = Field(None, description="Platform embed payload")
    raw: dict[str, Any] = Field(default_factory=dict, description="Original upstream record")

    @property
    def created_timestamp(self) -> datetime:
        """Creation time as an aware datetime."""
        return parse_timestamp(self.created_at)

    @property
    def key(self) -> tuple[str, str]:
        """Identity within the aggregate post set."""
        return (self.platform, self.uri)

    @property
    def engagement(self) -> int:
        return self.like_count + self.repost_count

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(uri='{self.uri}', author='{self.author.handle}')>"


class BlueskyPost(PostBase):
    """Post from the centralized network."""

    platform: Literal["bluesky"] = "bluesky"


class MastodonPost(PostBase):
    """Post from the federated network."""

    platform: Literal["mastodon"] = "mastodon"


CanonicalPost = Annotated[Union[BlueskyPost, MastodonPost], Field(discriminator="platform")]


class CrosspostGroup(BaseModel):
    """The same content posted on both networks."""

    model_config = ConfigDict(frozen=True)

    type: Literal["crosspost"] = "crosspost"
    id: str = Field(..., description="Uri of the post that opened the group")
    posts: list[CanonicalPost] = Field(..., min_length=2, max_length=2)
    similarity: float = Field(..., ge=0.0, le=1.0)

    def __repr__(self) -> str:
        return f"<CrosspostGroup(id='{self.id}', similarity={self.similarity:.3f})>"


FeedItem = Union[BlueskyPost, MastodonPost, CrosspostGroup]


class ThreadNode(BaseModel):
    """A post and its direct replies, recursively."""

    post: CanonicalPost
    replies: list["ThreadNode"] = Field(default_factory=list)

    def iter_posts(self):
        """Yield every post in the subtree, depth first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node.post
            stack.extend(reversed(node.replies))

    @property
    def size(self) -> int:
        return sum(1 for _ in self.iter_posts())


ThreadNode.model_rebuild()
