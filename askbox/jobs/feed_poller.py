"""
Feed Poller: periodically fetch mentions and replies from every configured source.

Runs as a background asyncio task inside the web process. A failing source
records its error in the feed stats; the other sources still run.
"""

import asyncio
import logging
from datetime import datetime, timezone
from functools import lru_cache

import httpx

from ..core.config import Settings, get_settings
from ..services.feeds import (
    FeedSource,
    NotificationFeed,
    RedditSource,
    TwitterSource,
)
from ..services.slack_client import get_http_client

logger = logging.getLogger(__name__)


def build_sources(settings: Settings, http_client: httpx.AsyncClient) -> list[FeedSource]:
    return [
        RedditSource(
            settings.reddit_client_id,
            settings.reddit_client_secret,
            settings.reddit_usernames,
            http_client,
        ),
        TwitterSource(
            settings.twitter_bearer_token,
            settings.twitter_usernames,
            http_client,
        ),
    ]


class FeedPoller:
    def __init__(self, feed: NotificationFeed, sources: list[FeedSource], interval_seconds: int = 300):
        self.feed = feed
        self.sources = sources
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def poll_once(self) -> dict:
        """
        Fetch every configured source once and merge the results.

        Returns a summary dict with per-source counts and errors.
        """
        started_at = datetime.now(timezone.utc)
        results = {"started_at": started_at.isoformat(), "fetched": {}, "new": 0, "errors": {}}

        fetched = []
        for source in self.sources:
            if not source.configured:
                continue
            try:
                items = await source.fetch()
            except Exception as e:
                logger.exception(f"Feed source {source.name} failed: {e}")
                self.feed.errors[source.name] = str(e)
                results["errors"][source.name] = str(e)
                continue

            self.feed.errors[source.name] = None
            results["fetched"][source.name] = len(items)
            fetched.extend(items)

        results["new"] = self.feed.merge(fetched)
        logger.info(
            f"Feed poll finished: {results['new']} new, "
            f"{len(results['errors'])} source error(s), {len(self.feed)} held"
        )
        return results

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                # Keep the loop alive; the next tick may succeed
                logger.exception(f"Feed poll crashed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            logger.info(f"Starting feed poller (every {self.interval_seconds}s)")
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


@lru_cache
def get_feed_poller() -> FeedPoller:
    """Process-wide poller and the feed it fills."""
    settings = get_settings()
    return FeedPoller(
        NotificationFeed(max_items=settings.feeds_max_items),
        build_sources(settings, get_http_client()),
        interval_seconds=settings.feeds_poll_interval_seconds,
    )
