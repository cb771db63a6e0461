#!/usr/bin/env python3
"""
Search posts from followed accounts on Bluesky and Mastodon.

Events are printed as they stream in; with --ranked the full result set is
collected and ordered once at the end.
"""

import asyncio
import os
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import httpx

from crossfeed.config import get_config
from crossfeed.core import CloseEvent, ErrorEvent, SearchService, create_fetchers
from crossfeed.logger import setup_logger
from crossfeed.models import Platform


async def run(args) -> int:
    config = get_config().fetcher
    async with httpx.AsyncClient(
        timeout=config.timeout_seconds,
        follow_redirects=config.follow_redirects,
        headers={"User-Agent": config.user_agent},
    ) as http_client:
        fetchers = create_fetchers(
            mastodon_instance_url=args.instance,
            mastodon_token=os.environ.get("MASTODON_ACCESS_TOKEN"),
            bluesky_token=os.environ.get("BLUESKY_ACCESS_TOKEN"),
            http_client=http_client,
        )
        if not args.instance:
            fetchers.pop(Platform.MASTODON, None)
        service = SearchService(fetchers)

        if args.ranked:
            result = await service.search(
                args.query,
                bluesky_handle=args.bluesky,
                mastodon_handle=args.mastodon,
                mode=args.sort,
            )
            for post in result.posts:
                print(f"[{post.platform}] {post.author.handle}: {post.text[:100]!r} ({post.like_count} likes)")
            for warning in result.warnings:
                print(f"i Best match ranked with partial liking history: {warning}")
            for error in result.errors:
                print(f"! {error}", file=sys.stderr)
            return 1 if result.errors and not result.posts else 0

        errors = 0
        async for event in service.stream(args.query, bluesky_handle=args.bluesky):
            if isinstance(event, ErrorEvent):
                errors += 1
                print(f"! {event.platform}: {event.message}", file=sys.stderr)
            elif isinstance(event, CloseEvent):
                print(event.message)
            else:
                post = event.post
                print(f"[{post.platform}] {post.author.handle}: {post.text[:100]!r}")
        return 1 if errors else 0


def main() -> None:
    """Run a network search."""
    import argparse

    parser = argparse.ArgumentParser(description="Search posts from followed accounts")
    parser.add_argument("query", help="Search query")
    parser.add_argument("--bluesky", help="Your Bluesky handle (results limited to your follows)")
    parser.add_argument("--mastodon", help="Your Mastodon handle")
    parser.add_argument("--instance", help="Your Mastodon home instance URL")
    parser.add_argument("--ranked", action="store_true", help="Collect and rank before printing")
    parser.add_argument("--sort", default=None, choices=["best_match", "likes", "newest"])
    parser.add_argument("--log-level", default=None, help="Override log level")
    args = parser.parse_args()

    setup_logger(level=args.log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
