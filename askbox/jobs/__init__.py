"""Background jobs."""

from .feed_poller import FeedPoller, build_sources, get_feed_poller

__all__ = ["FeedPoller", "build_sources", "get_feed_poller"]
