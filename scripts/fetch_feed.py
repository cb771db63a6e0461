#!/usr/bin/env python3
"""
Load a unified Bluesky + Mastodon feed and print or export it.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import httpx

from crossfeed.config import get_config
from crossfeed.core import FeedService, create_fetchers
from crossfeed.logger import setup_logger
from crossfeed.models import CrosspostGroup, FeedFilters


def _print_items(items) -> None:
    for item in items:
        if isinstance(item, CrosspostGroup):
            first = item.posts[0]
            platforms = "+".join(p.platform for p in item.posts)
            print(f"[{platforms}] {first.author.handle}: {first.text[:100]!r} (similarity {item.similarity:.2f})")
        else:
            marker = " (repost)" if item.is_repost else ""
            print(f"[{item.platform}] {item.author.handle}{marker}: {item.text[:100]!r} ({item.like_count} likes)")


async def run(args) -> int:
    handles = {"bluesky": args.bluesky, "mastodon": args.mastodon}
    filters = FeedFilters(
        search_term=args.search,
        sort_by=args.sort,
        has_media=args.media,
        hide_replies=args.hide_replies,
        hide_reposts=args.hide_reposts,
        min_likes=args.min_likes,
    )

    config = get_config().fetcher
    async with httpx.AsyncClient(
        timeout=config.timeout_seconds,
        follow_redirects=config.follow_redirects,
        headers={"User-Agent": config.user_agent},
    ) as http_client:
        service = FeedService(create_fetchers(http_client=http_client))
        state = await service.load(handles, filters)
        if args.all:
            await service.load_all(state)

    for platform, error in state.errors.items():
        print(f"! {platform.value}: {error}", file=sys.stderr)

    if args.export:
        handle = args.bluesky or args.mastodon
        filename, content = service.export(state, handle, args.export)
        Path(filename).write_text(content, encoding="utf-8")
        print(f"Wrote {filename}")
    else:
        items = service.view(state)
        _print_items(items)
        print(f"\n{len(items)} items from {len(state.posts)} loaded posts")

    return 0 if state.posts or not state.errors else 1


def main() -> None:
    """Load and display a unified feed."""
    import argparse

    parser = argparse.ArgumentParser(description="Load a unified Bluesky + Mastodon feed")
    parser.add_argument("--bluesky", help="Bluesky handle or DID (e.g. alice.bsky.social)")
    parser.add_argument("--mastodon", help="Mastodon handle (e.g. @alice@mastodon.social)")
    parser.add_argument("--all", action="store_true", help="Page through the full history")
    parser.add_argument("--search", default="", help="Only posts containing this text")
    parser.add_argument(
        "--sort", default="newest", choices=["newest", "oldest", "likes", "reposts", "engagement"]
    )
    parser.add_argument("--media", action="store_true", help="Only posts with images")
    parser.add_argument("--hide-replies", action="store_true")
    parser.add_argument("--hide-reposts", action="store_true")
    parser.add_argument("--min-likes", type=int, default=0)
    parser.add_argument("--export", choices=["json", "csv", "md", "txt"], help="Export format")
    parser.add_argument("--log-level", default=None, help="Override log level")
    args = parser.parse_args()

    if not args.bluesky and not args.mastodon:
        parser.error("at least one of --bluesky or --mastodon is required")

    setup_logger(level=args.log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
