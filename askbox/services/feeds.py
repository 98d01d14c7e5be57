"""
Feed notifications: mentions and replies pulled from external sites.

Provides:
- FeedNotification: normalized item from any source
- NotificationFeed: in-memory, de-duplicated, newest-first store
- RedditSource / TwitterSource: the pollable sources (mentions and replies)
"""

import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

USER_AGENT = "Askbox/1.0 (feed poller)"


# =============================================================================
# MODELS
# =============================================================================


class FeedNotification(BaseModel):
    """Normalized notification from any source."""

    id: str = Field(..., description="Globally unique, source-prefixed id")
    source: str
    account: str | None = None
    type: str = Field(..., description="mention, reply, ...")
    title: str
    content: str = ""
    author: str | None = None
    url: str | None = None
    timestamp: datetime


class FeedStats(BaseModel):
    total: int
    by_source: dict[str, int]
    by_type: dict[str, int]
    last_fetch: datetime | None
    errors: dict[str, str | None]


class NotificationFeed:
    """
    Newest-first notification store with de-duplication by id.

    Holds at most max_items; the oldest are dropped.
    """

    def __init__(self, max_items: int = 1000):
        self._max_items = max_items
        self._items: list[FeedNotification] = []
        self.last_fetch: datetime | None = None
        self.errors: dict[str, str | None] = {}

    def __len__(self) -> int:
        return len(self._items)

    def merge(self, incoming: list[FeedNotification]) -> int:
        """Add notifications not already held. Returns how many were new."""
        known = {item.id for item in self._items}
        new_items = []
        for item in incoming:
            if item.id not in known:
                known.add(item.id)
                new_items.append(item)

        self._items = sorted(
            new_items + self._items,
            key=lambda n: n.timestamp,
            reverse=True,
        )[: self._max_items]
        self.last_fetch = datetime.now(timezone.utc)
        return len(new_items)

    def filter(
        self,
        source: str | None = None,
        type: str | None = None,
        account: str | None = None,
    ) -> list[FeedNotification]:
        items = self._items
        if source:
            items = [n for n in items if n.source == source]
        if type:
            items = [n for n in items if n.type == type]
        if account:
            items = [n for n in items if n.account == account]
        return items

    def page(self, items: list[FeedNotification], limit: int = 50, offset: int = 0) -> list[FeedNotification]:
        return items[offset: offset + limit]

    def stats(self) -> FeedStats:
        return FeedStats(
            total=len(self._items),
            by_source=dict(Counter(n.source for n in self._items)),
            by_type=dict(Counter(n.type for n in self._items)),
            last_fetch=self.last_fetch,
            errors=dict(self.errors),
        )


# =============================================================================
# SOURCES
# =============================================================================


class FeedSource(Protocol):
    name: str

    @property
    def configured(self) -> bool: ...

    async def fetch(self) -> list[FeedNotification]: ...


def _reddit_time(created_utc: float | None) -> datetime:
    return datetime.fromtimestamp(created_utc or 0, tz=timezone.utc)


class RedditSource:
    """
    Mentions of, and replies to, Reddit users via application-only OAuth.

    Reddit has no replies endpoint: replies are found by expanding the
    children of each of the user's recent comments.
    """

    name = "reddit"
    auth_url = "https://www.reddit.com/api/v1/access_token"
    api_base = "https://oauth.reddit.com"
    max_comments_checked = 20

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        usernames: list[str],
        http_client: httpx.AsyncClient,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._usernames = usernames
        self._http = http_client
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret and self._usernames)

    async def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        response = await self._http.post(
            self.auth_url,
            data={"grant_type": "client_credentials"},
            auth=(self._client_id, self._client_secret),
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        data = response.json()

        self._access_token = data["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.time() + data.get("expires_in", 3600) - 60
        return self._access_token

    async def _get(self, token: str, path: str, params: dict[str, Any]) -> dict:
        response = await self._http.get(
            f"{self.api_base}{path}",
            params=params,
            headers={"Authorization": f"bearer {token}", "User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        return response.json()

    async def fetch(self) -> list[FeedNotification]:
        if not self.configured:
            return []

        token = await self._get_access_token()
        notifications = []
        for username in self._usernames:
            notifications.extend(await self._mentions(token, username))
            notifications.extend(await self._replies(token, username))
        return notifications

    async def _mentions(self, token: str, username: str) -> list[FeedNotification]:
        body = await self._get(token, f"/user/{username}/mentioned.json", {"limit": 50})
        return [
            self._parse_mention(username, child.get("data", {}))
            for child in body.get("data", {}).get("children", [])
        ]

    async def _replies(self, token: str, username: str) -> list[FeedNotification]:
        body = await self._get(token, f"/user/{username}/comments.json", {"limit": 100})
        comments = [c.get("data", {}) for c in body.get("data", {}).get("children", [])]

        replies = []
        for comment in comments[: self.max_comments_checked]:
            link_id = comment.get("link_id") or ""
            try:
                expanded = await self._get(token, "/api/morechildren.json", {
                    "link_id": f"t3_{link_id.split('_')[-1]}",
                    "children": comment["id"],
                    "api_type": "json",
                })
            except httpx.HTTPError as e:
                # One unreadable thread shouldn't hide the rest
                logger.warning(f"Skipping replies to Reddit comment {comment.get('id')}: {e}")
                continue

            for thing in expanded.get("json", {}).get("data", {}).get("things", []):
                data = thing.get("data", {})
                if thing.get("kind") != "t1" or data.get("author") == username:
                    continue
                replies.append(FeedNotification(
                    id=f"reddit_reply_{data['id']}",
                    source="Reddit",
                    account=username,
                    type="reply",
                    title=f"Reply to your comment in r/{comment.get('subreddit', '?')}",
                    content=data.get("body") or "",
                    author=data.get("author"),
                    url=f"https://reddit.com{data.get('permalink', '')}",
                    timestamp=_reddit_time(data.get("created_utc")),
                ))
        return replies

    @staticmethod
    def _parse_mention(username: str, data: dict[str, Any]) -> FeedNotification:
        return FeedNotification(
            id=f"reddit_mention_{data['id']}",
            source="Reddit",
            account=username,
            type="mention",
            title=data.get("title") or f"Mention in r/{data.get('subreddit', '?')}",
            content=data.get("body") or data.get("selftext") or "",
            author=data.get("author"),
            url=f"https://reddit.com{data.get('permalink', '')}",
            timestamp=_reddit_time(data.get("created_utc")),
        )


class TwitterSource:
    """
    Mentions of, and replies to, Twitter/X accounts via the v2 API.

    Replies come from a recent-search on the conversations started by the
    account's latest tweets, excluding the account's own tweets.
    """

    name = "twitter"
    api_base = "https://api.twitter.com/2"
    max_conversations_checked = 5

    def __init__(self, bearer_token: str | None, usernames: list[str], http_client: httpx.AsyncClient):
        self._bearer_token = bearer_token
        self._usernames = usernames
        self._http = http_client
        self._user_ids: dict[str, str] = {}

    @property
    def configured(self) -> bool:
        return bool(self._bearer_token and self._usernames)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict:
        response = await self._http.get(
            f"{self.api_base}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self._bearer_token}"},
        )
        response.raise_for_status()
        return response.json()

    async def _user_id(self, username: str) -> str:
        if username not in self._user_ids:
            body = await self._get(f"/users/by/username/{username}")
            self._user_ids[username] = body["data"]["id"]
        return self._user_ids[username]

    async def fetch(self) -> list[FeedNotification]:
        if not self.configured:
            return []

        notifications = []
        for username in self._usernames:
            user_id = await self._user_id(username)
            notifications.extend(await self._mentions(user_id, username))
            notifications.extend(await self._replies(user_id, username))
        return notifications

    async def _mentions(self, user_id: str, username: str) -> list[FeedNotification]:
        body = await self._get(f"/users/{user_id}/mentions", {
            "max_results": 50,
            "tweet.fields": "created_at,author_id,text",
            "expansions": "author_id",
            "user.fields": "username,name",
        })
        return self._parse_tweets(body, username, "mention", "Mention")

    async def _replies(self, user_id: str, username: str) -> list[FeedNotification]:
        body = await self._get(f"/users/{user_id}/tweets", {
            "max_results": 10,
            "tweet.fields": "created_at,conversation_id",
        })
        conversation_ids = list(dict.fromkeys(
            t["conversation_id"] for t in body.get("data", []) if t.get("conversation_id")
        ))

        replies = []
        for conversation_id in conversation_ids[: self.max_conversations_checked]:
            try:
                found = await self._get("/tweets/search/recent", {
                    "query": f"conversation_id:{conversation_id} -from:{username}",
                    "max_results": 10,
                    "tweet.fields": "created_at,author_id,text,in_reply_to_user_id",
                    "expansions": "author_id",
                    "user.fields": "username,name",
                })
            except httpx.HTTPError as e:
                logger.warning(f"Skipping Twitter conversation {conversation_id}: {e}")
                continue
            replies.extend(self._parse_tweets(found, username, "reply", "Reply"))
        return replies

    @staticmethod
    def _parse_tweets(body: dict, username: str, kind: str, label: str) -> list[FeedNotification]:
        users = {u["id"]: u for u in body.get("includes", {}).get("users", [])}

        notifications = []
        for tweet in body.get("data", []):
            author = users.get(tweet.get("author_id"), {}).get("username", "unknown")
            notifications.append(FeedNotification(
                id=f"twitter_{username}_{kind}_{tweet['id']}",
                source="Twitter",
                account=username,
                type=kind,
                title=f"{label} from @{author}",
                content=tweet.get("text", ""),
                author=author,
                url=f"https://twitter.com/{author}/status/{tweet['id']}",
                timestamp=datetime.fromisoformat(tweet["created_at"].replace("Z", "+00:00")),
            ))
        return notifications
