"""Reaction routing: map Slack reaction events onto tracked responses.

Provides:
- ReactionEvent: normalized reaction_added / reaction_removed event
- reaction_direction: emoji name -> vote direction
- ReactionRouter: (workspace, channel, message ts) -> response id
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Question, Response, VoteDirection

logger = logging.getLogger(__name__)


UPVOTE_REACTIONS = frozenset({"+1", "thumbsup", "thumbsup_all", "\U0001F44D", "thumbs_up"})
DOWNVOTE_REACTIONS = frozenset({"-1", "thumbsdown", "thumbsdown_all", "\U0001F44E", "thumbs_down"})


def normalize_reaction(name: str) -> str:
    """Strip Slack's skin tone suffix: '+1::skin-tone-3' -> '+1'."""
    return name.split("::", 1)[0].strip()


def reaction_direction(name: str) -> VoteDirection | None:
    """Vote direction for a reaction name, or None if it isn't a vote."""
    base = normalize_reaction(name)
    if base in UPVOTE_REACTIONS:
        return VoteDirection.UPVOTE
    if base in DOWNVOTE_REACTIONS:
        return VoteDirection.DOWNVOTE
    return None


class ReactionEvent(BaseModel):
    """Normalized reaction event from the Events API."""

    kind: Literal["reaction_added", "reaction_removed"]
    team_id: str = Field(..., description="Workspace the event came from")
    user_id: str = Field(..., description="User who reacted")
    reaction: str = Field(..., description="Raw reaction name")
    channel_id: str
    message_ts: str

    @property
    def direction(self) -> VoteDirection | None:
        return reaction_direction(self.reaction)

    @classmethod
    def from_envelope(cls, envelope: dict[str, Any]) -> "ReactionEvent | None":
        """Build from an event_callback envelope; None if it isn't a message reaction."""
        event = envelope.get("event", {})
        item = event.get("item", {})
        if event.get("type") not in ("reaction_added", "reaction_removed"):
            return None
        if item.get("type") != "message":
            return None

        team_id = envelope.get("team_id") or event.get("team")
        if not (team_id and event.get("user") and item.get("channel") and item.get("ts")):
            return None

        return cls(
            kind=event.get("type"),
            team_id=team_id,
            user_id=event["user"],
            reaction=event.get("reaction", ""),
            channel_id=item["channel"],
            message_ts=item["ts"],
        )


class ReactionRouter:
    """Finds the response a reaction was left on."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def resolve_response(self, team_id: str, channel_id: str, message_ts: str) -> str | None:
        """
        Response id for the message, or None for untracked messages.

        The parent question must belong to the same workspace; timestamps are
        only unique within a channel, and channel ids are only unique within
        a workspace.
        """
        result = await self._session.execute(
            select(Response.id)
            .join(Question, Response.question_id == Question.id)
            .where(Question.team_id == team_id)
            .where(Question.channel_id == channel_id)
            .where(Response.message_ts == message_ts)
            .limit(1)
        )
        return result.scalar_one_or_none()
