"""Read-only endpoints over the aggregated feed notifications."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..jobs.feed_poller import FeedPoller, get_feed_poller
from ..services.feeds import FeedNotification, FeedStats

router = APIRouter(prefix="/api", tags=["feeds"])

PollerDep = Annotated[FeedPoller, Depends(get_feed_poller)]


class NotificationPage(BaseModel):
    items: list[FeedNotification]
    total: int
    limit: int
    offset: int


@router.get("/notifications", response_model=NotificationPage)
async def list_notifications(
    poller: PollerDep,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    source: str | None = None,
    type: str | None = None,
    account: str | None = None,
) -> NotificationPage:
    """Newest-first notifications, optionally filtered."""
    items = poller.feed.filter(source=source, type=type, account=account)
    return NotificationPage(
        items=poller.feed.page(items, limit=limit, offset=offset),
        total=len(items),
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=FeedStats)
async def feed_stats(poller: PollerDep) -> FeedStats:
    return poller.feed.stats()
