"""
Export of the current feed view.

Every exporter is a pure function from posts to a string; writing the file is
left to the caller. Callers pass ``export_view(state)`` so exports match exactly
what the filtered view shows.
"""

import csv
import io
import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence, Union

from crossfeed.logger import get_logger
from crossfeed.models import Platform, PostBase

logger = get_logger(__name__)

CSV_COLUMNS = [
    "uri",
    "platform",
    "author_handle",
    "text",
    "likes",
    "reposts",
    "replies",
    "createdAt",
    "is_repost",
    "repost_author_handle",
]

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    MARKDOWN = "md"
    URLS = "txt"


def _iso_now(now: Optional[datetime] = None) -> str:
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def post_url(post: PostBase) -> str:
    """Web link to the post on its platform."""
    if post.platform == Platform.MASTODON:
        target = post.raw.get("reblog") or post.raw
        return target.get("url") or post.uri

    rkey = post.uri.rstrip("/").rsplit("/", 1)[-1]
    return f"https://bsky.app/profile/{post.author.handle}/post/{rkey}"


def export_json(posts: Sequence[PostBase], handle: str, now: Optional[datetime] = None) -> str:
    """Raw platform records wrapped with export metadata."""
    return json.dumps(
        {
            "user": handle,
            "exportDate": _iso_now(now),
            "postCount": len(posts),
            "posts": [post.raw for post in posts],
        },
        indent=2,
        ensure_ascii=False,
    )


def export_csv(posts: Sequence[PostBase]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)

    for post in posts:
        writer.writerow(
            [
                post.uri,
                post.platform,
                post.author.handle,
                post.text,
                post.like_count,
                post.repost_count,
                post.reply_count,
                post.created_at,
                "true" if post.is_repost else "false",
                post.repost_author.handle if post.repost_author else "",
            ]
        )

    return buffer.getvalue()


def export_markdown(posts: Sequence[PostBase], handle: str, now: Optional[datetime] = None) -> str:
    lines = [f"# Posts by {handle}", "", f"Exported {_iso_now(now)}, {len(posts)} posts", ""]

    for post in posts:
        lines.append(f"## {post.author.display_name or post.author.handle} ({post.author.handle})")
        lines.append("")
        lines.append(f"*{post.platform}, {post.created_at}*")
        if post.is_repost and post.repost_author:
            lines.append(f"*Reposted by {post.repost_author.handle}*")
        lines.append("")
        if post.text:
            lines.extend(f"> {line}" if line else ">" for line in post.text.splitlines())
            lines.append("")
        lines.append(
            f"Likes: {post.like_count} | Reposts: {post.repost_count} | "
            f"Replies: {post.reply_count} | [Link]({post_url(post)})"
        )
        lines.append("")
        lines.append("---")
        lines.append("")

    return "\n".join(lines)


def export_urls(posts: Sequence[PostBase]) -> str:
    """One post link per line."""
    return "\n".join(post_url(post) for post in posts)


def export_filename(
    handle: str, fmt: Union[ExportFormat, str], now: Optional[datetime] = None
) -> str:
    """``posts-{handle}-{epoch millis}.{ext}`` with the handle made filesystem safe."""
    safe = _UNSAFE_FILENAME_RE.sub("_", handle.strip().lstrip("@")) or "feed"
    millis = int((now or datetime.now(timezone.utc)).timestamp() * 1000)
    return f"posts-{safe}-{millis}.{ExportFormat(fmt).value}"


def export_posts(
    posts: Sequence[PostBase],
    handle: str,
    fmt: Union[ExportFormat, str],
    now: Optional[datetime] = None,
) -> str:
    """Serialize posts in the given format.

    Raises:
        ValueError: Unknown format
    """
    fmt = ExportFormat(fmt)

    if fmt is ExportFormat.JSON:
        content = export_json(posts, handle, now)
    elif fmt is ExportFormat.CSV:
        content = export_csv(posts)
    elif fmt is ExportFormat.MARKDOWN:
        content = export_markdown(posts, handle, now)
    else:
        content = export_urls(posts)

    logger.info(f"Exported {len(posts)} posts as {fmt.name.lower()}")
    return content
