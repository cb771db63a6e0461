"""
crossfeed - Unified Bluesky and Mastodon feeds.

This package merges the centralized Bluesky network and the federated Mastodon
network into one feed, with cross-post grouping, thread reconstruction,
filtering, and affinity-ranked network search.
"""

__version__ = "0.1.0"
