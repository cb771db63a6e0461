"""Shared fixtures: upstream record builders and an in-memory page fetcher."""

from typing import Optional

import pytest

from crossfeed.config import set_config
from crossfeed.exceptions import NotFoundError
from crossfeed.models import FeedKind, PageResult, Platform, Profile

REASON_REPOST = "app.bsky.feed.defs#reasonRepost"


def build_bsky_item(
    rkey: str,
    text: str = "",
    created_at: str = "2024-01-01T00:00:00.000Z",
    did: str = "did:plc:alice",
    handle: str = "alice.bsky.social",
    likes: int = 0,
    reposts: int = 0,
    replies: int = 0,
    parent_uri: Optional[str] = None,
    reposted_by: Optional[str] = None,
    embed: Optional[dict] = None,
) -> dict:
    """Bluesky feed-view item as returned by getAuthorFeed."""
    record = {"$type": "app.bsky.feed.post", "text": text, "createdAt": created_at}
    if parent_uri:
        record["reply"] = {"root": {"uri": parent_uri}, "parent": {"uri": parent_uri}}

    post = {
        "uri": f"at://{did}/app.bsky.feed.post/{rkey}",
        "cid": f"cid-{rkey}",
        "author": {"did": did, "handle": handle, "displayName": handle.split(".")[0].title()},
        "record": record,
        "replyCount": replies,
        "repostCount": reposts,
        "likeCount": likes,
        "indexedAt": created_at,
    }
    if embed is not None:
        post["embed"] = embed

    item = {"post": post}
    if reposted_by:
        item["reason"] = {
            "$type": REASON_REPOST,
            "by": {"did": f"did:plc:{reposted_by.split('.')[0]}", "handle": reposted_by},
        }
    return item


def build_masto_account(username: str = "alice", host: str = "mastodon.social", account_id: str = "1") -> dict:
    return {
        "id": account_id,
        "username": username,
        "acct": username,
        "display_name": username.title(),
        "url": f"https://{host}/@{username}",
        "avatar": f"https://{host}/avatars/{username}.png",
    }


def build_masto_status(
    status_id: str,
    text: str = "",
    created_at: str = "2024-01-01T00:00:00.000Z",
    username: str = "alice",
    host: str = "mastodon.social",
    likes: int = 0,
    reblogs: int = 0,
    replies: int = 0,
    in_reply_to_id: Optional[str] = None,
    media: Optional[list] = None,
    account_id: str = "1",
) -> dict:
    """Mastodon status entity."""
    return {
        "id": status_id,
        "uri": f"https://{host}/users/{username}/statuses/{status_id}",
        "url": f"https://{host}/@{username}/{status_id}",
        "created_at": created_at,
        "content": f"<p>{text}</p>" if text else "",
        "in_reply_to_id": in_reply_to_id,
        "replies_count": replies,
        "reblogs_count": reblogs,
        "favourites_count": likes,
        "media_attachments": media or [],
        "reblog": None,
        "account": build_masto_account(username, host, account_id),
    }


def build_masto_reblog(status_id: str, original: dict, booster: str = "bob", host: str = "fosstodon.org") -> dict:
    """Reblog wrapper around an original status."""
    return {
        "id": status_id,
        "uri": f"https://{host}/users/{booster}/statuses/{status_id}/activity",
        "url": None,
        "created_at": "2024-01-02T00:00:00.000Z",
        "content": "",
        "in_reply_to_id": None,
        "replies_count": 0,
        "reblogs_count": 0,
        "favourites_count": 0,
        "media_attachments": [],
        "reblog": original,
        "account": build_masto_account(booster, host, account_id="99"),
    }


class FakeFetcher:
    """In-memory page fetcher.

    Pages are served by index: cursor ``None`` is page 0, cursor ``"n"`` is
    page n. The last page has no next cursor.
    """

    def __init__(
        self,
        platform: Platform,
        pages: Optional[dict] = None,
        fail_at: Optional[int] = None,
        error: Optional[Exception] = None,
        follows: Optional[set] = None,
        missing: bool = False,
    ):
        self.platform = Platform(platform)
        self.pages = {FeedKind(k): v for k, v in (pages or {}).items()}
        self.fail_at = fail_at
        self.error = error
        self.follows = set(follows or ())
        self.missing = missing
        self.calls = []

    async def fetch_page(self, identifier, cursor=None, kind=FeedKind.TIMELINE, *, hide_replies=False, hide_reposts=False):
        kind = FeedKind(kind)
        index = int(cursor) if cursor else 0
        self.calls.append((identifier, cursor, kind))

        if self.fail_at is not None and index == self.fail_at:
            raise self.error

        pages = self.pages.get(kind, [])
        if index >= len(pages):
            return PageResult(items=[], next_cursor=None)

        next_cursor = str(index + 1) if index + 1 < len(pages) else None
        return PageResult(items=pages[index], next_cursor=next_cursor)

    async def lookup_profile(self, identifier):
        if self.missing:
            raise NotFoundError(self.platform.value, identifier)
        return Profile(platform=self.platform.value, id=f"id-{identifier}", handle=identifier)

    async def get_follows(self, identifier, max_pages=None):
        return set(self.follows)


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts from default configuration."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def bsky_item():
    return build_bsky_item


@pytest.fixture
def masto_status():
    return build_masto_status


@pytest.fixture
def masto_reblog():
    return build_masto_reblog


@pytest.fixture
def fake_fetcher():
    return FakeFetcher
