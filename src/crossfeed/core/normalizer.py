"""
Post normalizer mapping platform records onto the canonical post model.

Handles repost unwrapping, reply references, HTML stripping and handle
qualification. Normalization is total: missing optional fields become None or 0.
"""

import re
from typing import Any, Optional, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from crossfeed.exceptions import ConfigurationError
from crossfeed.logger import get_logger
from crossfeed.models import (
    Author,
    BlueskyPost,
    MastodonPost,
    Platform,
    PostBase,
    RepostAuthor,
)

logger = get_logger(__name__)

BSKY_REASON_REPOST = "app.bsky.feed.defs#reasonRepost"
BSKY_EMBED_IMAGES = "app.bsky.embed.images#view"
BSKY_EMBED_RECORD_WITH_MEDIA = "app.bsky.embed.recordWithMedia#view"

_HANDLE_PART_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


def _count(value: Any) -> int:
    """Coerce an upstream counter to a non-negative int."""
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _pick(record: dict, *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among keys."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


class PostNormalizer:
    """Maps Bluesky feed items and Mastodon statuses to canonical posts."""

    def normalize(self, raw_post: dict, platform: Union[Platform, str]) -> PostBase:
        """Normalize one upstream record.

        Args:
            raw_post: Bluesky feed-view item (or bare post view) or Mastodon status
            platform: Platform the record came from

        Returns:
            BlueskyPost or MastodonPost
        """
        platform = Platform(platform)
        if platform is Platform.BLUESKY:
            return self._normalize_bluesky(raw_post)
        return self._normalize_mastodon(raw_post)

    def normalize_many(self, raw_posts: list[dict], platform: Union[Platform, str]) -> list[PostBase]:
        """Normalize a page of records."""
        return [self.normalize(raw, platform) for raw in raw_posts]

    # ---- Bluesky ----------------------------------------------------------

    def _normalize_bluesky(self, raw_post: dict) -> BlueskyPost:
        item = raw_post if "post" in raw_post else {"post": raw_post}
        post = item.get("post") or {}
        record = post.get("record") or {}
        author = post.get("author") or {}

        reason = item.get("reason") or {}
        is_repost = reason.get("$type") == BSKY_REASON_REPOST
        repost_author = None
        if is_repost:
            by = reason.get("by") or {}
            repost_author = RepostAuthor(
                handle=by.get("handle") or by.get("did") or "",
                display_name=by.get("displayName"),
            )

        reply = record.get("reply") or {}
        parent = reply.get("parent") or {}

        return BlueskyPost(
            uri=post.get("uri") or "",
            text=record.get("text") or "",
            author=Author(
                handle=author.get("handle") or author.get("did") or "",
                display_name=author.get("displayName"),
                avatar=author.get("avatar"),
                id=author.get("did"),
            ),
            created_at=record.get("createdAt") or post.get("indexedAt") or "",
            reply_count=_count(post.get("replyCount")),
            repost_count=_count(post.get("repostCount")),
            like_count=_count(post.get("likeCount")),
            reply_parent_uri=parent.get("uri"),
            is_repost=is_repost,
            repost_author=repost_author,
            embeds=post.get("embed"),
            raw=item,
        )

    # ---- Mastodon ---------------------------------------------------------

    def _normalize_mastodon(self, raw_post: dict) -> MastodonPost:
        reblog = raw_post.get("reblog")
        target = reblog or raw_post
        account = target.get("account") or {}

        repost_author = None
        if reblog:
            wrapper_account = raw_post.get("account") or {}
            repost_author = RepostAuthor(
                handle=self.qualify_handle(wrapper_account),
                display_name=_pick(wrapper_account, "display_name", "displayName"),
            )

        status_id = target.get("id")
        parent_id = _pick(target, "in_reply_to_id", "inReplyToId")

        return MastodonPost(
            uri=target.get("uri") or target.get("url") or str(status_id or ""),
            text=self.strip_html(target.get("content") or ""),
            author=Author(
                handle=self.qualify_handle(account),
                display_name=_pick(account, "display_name", "displayName"),
                avatar=account.get("avatar"),
                id=str(account["id"]) if account.get("id") is not None else None,
            ),
            created_at=_pick(target, "created_at", "createdAt", default=""),
            reply_count=_count(_pick(target, "replies_count", "repliesCount")),
            repost_count=_count(_pick(target, "reblogs_count", "reblogsCount")),
            like_count=_count(_pick(target, "favourites_count", "favouritesCount")),
            reply_parent_uri=str(parent_id) if parent_id is not None else None,
            is_repost=reblog is not None,
            repost_author=repost_author,
            embeds=_pick(target, "media_attachments", "mediaAttachments", default=[]),
            raw=raw_post,
        )

    @staticmethod
    def qualify_handle(account: dict) -> str:
        """Build ``@localpart@hostname`` from the account's profile URL.

        The ``acct`` field is host-less for local accounts, so the host always
        comes from the profile URL.
        """
        acct = account.get("acct") or account.get("username") or ""
        localpart = acct.split("@")[0]
        hostname = urlparse(account.get("url") or "").hostname
        if not hostname and "@" in acct:
            hostname = acct.split("@", 1)[1]
        if not hostname:
            return f"@{localpart}" if localpart else ""
        return f"@{localpart}@{hostname}"

    @staticmethod
    def strip_html(html: str) -> str:
        """Reduce Mastodon rich text to plain text.

        Line breaks become newlines and paragraphs are separated by a blank line.
        """
        if not html:
            return ""
        if "<" not in html and "&" not in html:
            return html.strip()

        soup = BeautifulSoup(html, "html.parser")
        for br in soup.find_all("br"):
            br.replace_with("\n")
        for paragraph in soup.find_all("p"):
            paragraph.append("\n\n")

        return soup.get_text().strip()


_default_normalizer = PostNormalizer()


def normalize(raw_post: dict, platform: Union[Platform, str]) -> PostBase:
    """Normalize one upstream record with the shared normalizer."""
    return _default_normalizer.normalize(raw_post, platform)


def native_id(post: PostBase) -> Optional[str]:
    """Identifier replies use to point at this post.

    Bluesky replies reference the parent's uri; Mastodon replies reference the
    parent's status id.
    """
    if post.platform == Platform.MASTODON:
        target = post.raw.get("reblog") or post.raw
        status_id = target.get("id")
        return str(status_id) if status_id is not None else None
    return post.uri


def has_media(post: PostBase) -> bool:
    """Whether the post carries at least one image attachment."""
    embeds = post.embeds
    if post.platform == Platform.BLUESKY:
        if not isinstance(embeds, dict):
            return False
        embed_type = embeds.get("$type")
        if embed_type == BSKY_EMBED_IMAGES:
            return True
        if embed_type == BSKY_EMBED_RECORD_WITH_MEDIA:
            media = embeds.get("media") or {}
            return media.get("$type") == BSKY_EMBED_IMAGES
        return False

    if not isinstance(embeds, list):
        return False
    return any(isinstance(att, dict) and att.get("type") == "image" for att in embeds)


def parse_mastodon_handle(handle: str) -> tuple[str, str]:
    """Split ``@user@instance.tld`` into (user, instance).

    Raises:
        ConfigurationError: If the handle is not host-qualified
    """
    if not handle or not handle.strip():
        raise ConfigurationError("Mastodon handle is required")

    value = handle.strip()
    if value.startswith("@"):
        value = value[1:]

    parts = value.split("@")
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(
            f"Invalid Mastodon handle {handle!r}. Must be in the format @user@instance.tld"
        )

    username, instance = parts
    if not _HANDLE_PART_RE.match(username) or not _HANDLE_PART_RE.match(instance) or "." not in instance:
        raise ConfigurationError(
            f"Invalid Mastodon handle {handle!r}. Must be in the format @user@instance.tld"
        )

    return username, instance.lower()


def parse_bluesky_handle(handle: str) -> str:
    """Normalize a Bluesky handle or DID.

    Raises:
        ConfigurationError: If the handle is empty or malformed
    """
    if not handle or not handle.strip():
        raise ConfigurationError("Bluesky handle is required")

    value = handle.strip().lstrip("@")
    if value.startswith("did:"):
        return value
    if " " in value or "/" in value or "." not in value:
        raise ConfigurationError(f"Invalid Bluesky handle {handle!r}. Expected e.g. alice.bsky.social")
    return value.lower()


def create_normalizer() -> PostNormalizer:
    """Create a PostNormalizer instance."""
    return PostNormalizer()
