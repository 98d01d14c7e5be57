"""
Tests for the feed subsystem.

These tests verify:
1. Merging de-duplicates by id and keeps newest first, capped
2. Reddit and Twitter mentions and replies are normalized
3. One failing source doesn't stop the others
"""

from datetime import datetime, timedelta, timezone

import httpx

from askbox.jobs.feed_poller import FeedPoller
from askbox.services.feeds import (
    FeedNotification,
    NotificationFeed,
    RedditSource,
    TwitterSource,
)

BASE_TIME = datetime(2024, 3, 1, tzinfo=timezone.utc)


def notification(n: int, source: str = "Reddit", type: str = "mention") -> FeedNotification:
    return FeedNotification(
        id=f"{source.lower()}_{n}",
        source=source,
        account="askbox",
        type=type,
        title=f"Item {n}",
        timestamp=BASE_TIME + timedelta(minutes=n),
    )


# =============================================================================
# TEST: NOTIFICATION FEED
# =============================================================================


class TestNotificationFeed:
    def test_merge_deduplicates(self):
        feed = NotificationFeed()

        assert feed.merge([notification(1), notification(2)]) == 2
        assert feed.merge([notification(2), notification(3)]) == 1
        assert len(feed) == 3

    def test_newest_first(self):
        feed = NotificationFeed()
        feed.merge([notification(1), notification(3)])
        feed.merge([notification(2)])

        assert [n.id for n in feed.filter()] == ["reddit_3", "reddit_2", "reddit_1"]

    def test_capped_at_max_items(self):
        feed = NotificationFeed(max_items=3)
        feed.merge([notification(n) for n in range(5)])

        assert [n.id for n in feed.filter()] == ["reddit_4", "reddit_3", "reddit_2"]

    def test_filter_and_page(self):
        feed = NotificationFeed()
        feed.merge([notification(1), notification(2, source="Twitter"), notification(3, type="reply")])

        assert [n.id for n in feed.filter(source="Twitter")] == ["twitter_2"]
        assert [n.id for n in feed.filter(type="reply")] == ["reddit_3"]
        assert [n.id for n in feed.page(feed.filter(), limit=1, offset=1)] == ["twitter_2"]

    def test_stats(self):
        feed = NotificationFeed()
        feed.merge([notification(1), notification(2, source="Twitter")])
        feed.errors["twitter"] = "boom"

        stats = feed.stats()

        assert stats.total == 2
        assert stats.by_source == {"Reddit": 1, "Twitter": 1}
        assert stats.by_type == {"mention": 2}
        assert stats.last_fetch is not None
        assert stats.errors == {"twitter": "boom"}


# =============================================================================
# TEST: SOURCES
# =============================================================================


def reddit_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/v1/access_token":
        return httpx.Response(200, json={"access_token": "reddit-token", "expires_in": 3600})
    assert request.headers["authorization"] == "bearer reddit-token"

    if path == "/user/askbox/mentioned.json":
        return httpx.Response(200, json={"data": {"children": [{"data": {
            "id": "abc",
            "subreddit": "python",
            "body": "hey u/askbox",
            "author": "someone",
            "permalink": "/r/python/comments/abc",
            "created_utc": 1709251200,
        }}]}})
    if path == "/user/askbox/comments.json":
        return httpx.Response(200, json={"data": {"children": [
            {"data": {"id": "c1", "link_id": "t3_post1", "subreddit": "learnpython"}},
            {"data": {"id": "c2", "link_id": "t3_post2", "subreddit": "django"}},
        ]}})
    if path == "/api/morechildren.json":
        if request.url.params["children"] == "c2":
            return httpx.Response(500)
        assert request.url.params["link_id"] == "t3_post1"
        return httpx.Response(200, json={"json": {"data": {"things": [
            {"kind": "t1", "data": {
                "id": "r1",
                "author": "helper",
                "body": "try a generator",
                "permalink": "/r/learnpython/comments/post1/_/r1",
                "created_utc": 1709254800,
            }},
            {"kind": "t1", "data": {"id": "r2", "author": "askbox", "body": "thanks", "created_utc": 1709258400}},
            {"kind": "more", "data": {"id": "m1"}},
        ]}}})
    return httpx.Response(404)


def twitter_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.startswith("/2/users/by/username/"):
        return httpx.Response(200, json={"data": {"id": "42"}})
    if path == "/2/users/42/mentions":
        return httpx.Response(200, json={
            "data": [{"id": "900", "author_id": "7", "text": "@askbox nice", "created_at": "2024-03-01T00:00:00.000Z"}],
            "includes": {"users": [{"id": "7", "username": "fan"}]},
        })
    if path == "/2/users/42/tweets":
        return httpx.Response(200, json={"data": [
            {"id": "500", "conversation_id": "500"},
            {"id": "501", "conversation_id": "500"},
            {"id": "600", "conversation_id": "600"},
        ]})
    if path == "/2/tweets/search/recent":
        query = request.url.params["query"]
        assert query.endswith("-from:askbox")
        if query.startswith("conversation_id:600"):
            return httpx.Response(429)
        return httpx.Response(200, json={
            "data": [{"id": "950", "author_id": "8", "text": "agreed", "created_at": "2024-03-01T02:00:00.000Z"}],
            "includes": {"users": [{"id": "8", "username": "critic"}]},
        })
    return httpx.Response(404)


class TestSources:
    async def test_reddit_mentions(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(reddit_handler)) as client:
            source = RedditSource("id", "secret", ["askbox"], client)
            items = await source.fetch()

        (item,) = [n for n in items if n.type == "mention"]
        assert item.id == "reddit_mention_abc"
        assert item.title == "Mention in r/python"
        assert item.content == "hey u/askbox"
        assert item.url == "https://reddit.com/r/python/comments/abc"
        assert item.timestamp == datetime(2024, 3, 1, tzinfo=timezone.utc)

    async def test_reddit_replies_skip_own_comments_and_failed_threads(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(reddit_handler)) as client:
            source = RedditSource("id", "secret", ["askbox"], client)
            items = await source.fetch()

        (reply,) = [n for n in items if n.type == "reply"]
        assert reply.id == "reddit_reply_r1"
        assert reply.title == "Reply to your comment in r/learnpython"
        assert reply.author == "helper"
        assert reply.content == "try a generator"
        assert reply.url == "https://reddit.com/r/learnpython/comments/post1/_/r1"
        assert reply.timestamp == datetime(2024, 3, 1, 1, tzinfo=timezone.utc)

    async def test_twitter_mentions(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(twitter_handler)) as client:
            source = TwitterSource("bearer", ["askbox"], client)
            items = await source.fetch()

        (item,) = [n for n in items if n.type == "mention"]
        assert item.id == "twitter_askbox_mention_900"
        assert item.author == "fan"
        assert item.url == "https://twitter.com/fan/status/900"

    async def test_twitter_replies_from_recent_conversations(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(twitter_handler)) as client:
            source = TwitterSource("bearer", ["askbox"], client)
            items = await source.fetch()

        (reply,) = [n for n in items if n.type == "reply"]
        assert reply.id == "twitter_askbox_reply_950"
        assert reply.title == "Reply from @critic"
        assert reply.url == "https://twitter.com/critic/status/950"
        assert reply.timestamp == datetime(2024, 3, 1, 2, tzinfo=timezone.utc)

    async def test_unconfigured_source_fetches_nothing(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(twitter_handler)) as client:
            assert await TwitterSource(None, ["askbox"], client).fetch() == []
            assert await RedditSource("id", None, ["askbox"], client).fetch() == []


# =============================================================================
# TEST: POLLER
# =============================================================================


class StaticSource:
    def __init__(self, name: str, items=None, error: Exception | None = None):
        self.name = name
        self.configured = True
        self._items = items or []
        self._error = error

    async def fetch(self):
        if self._error:
            raise self._error
        return self._items


class TestFeedPoller:
    async def test_failing_source_does_not_stop_others(self):
        feed = NotificationFeed()
        poller = FeedPoller(feed, [
            StaticSource("reddit", error=httpx.ConnectError("down")),
            StaticSource("twitter", items=[notification(1, source="Twitter")]),
        ])

        result = await poller.poll_once()

        assert result["new"] == 1
        assert "reddit" in result["errors"]
        assert feed.errors["reddit"] == "down"
        assert feed.errors["twitter"] is None
        assert len(feed) == 1

    async def test_malformed_payload_does_not_stop_others(self):
        feed = NotificationFeed()
        poller = FeedPoller(feed, [
            StaticSource("reddit", error=TypeError("unsupported type for timestamp")),
            StaticSource("twitter", items=[notification(1, source="Twitter")]),
        ])

        result = await poller.poll_once()

        assert result["new"] == 1
        assert feed.errors["reddit"] == "unsupported type for timestamp"
        assert [n.id for n in feed.filter()] == ["twitter_1"]

    async def test_start_and_stop(self):
        poller = FeedPoller(NotificationFeed(), [StaticSource("x", items=[notification(1)])], interval_seconds=3600)

        poller.start()
        await poller.stop()

        assert poller._task is None
