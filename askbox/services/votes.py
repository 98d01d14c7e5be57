"""
Vote Ledger: one current vote per (response, voter).

A voter switching direction replaces their vote rather than adding a second
one. Scores are always derived from the rows, never stored.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Vote, VoteDirection

logger = logging.getLogger(__name__)


@dataclass
class VoteTally:
    """Who currently votes which way on a response."""
    upvoters: set[str] = field(default_factory=set)
    downvoters: set[str] = field(default_factory=set)

    @property
    def score(self) -> int:
        return len(self.upvoters) - len(self.downvoters)


def format_score(score: int) -> str:
    """Display form of a score: '+3', '0', '-2'."""
    return f"+{score}" if score > 0 else str(score)


class VoteLedger:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add_vote(self, response_id: str, voter_id: str, direction: VoteDirection) -> None:
        """Record a vote, replacing any earlier vote by the same voter."""
        await self._session.execute(
            delete(Vote)
            .where(Vote.response_id == response_id)
            .where(Vote.voter_id == voter_id)
        )
        self._session.add(Vote(response_id=response_id, voter_id=voter_id, direction=direction))
        await self._session.commit()

        logger.debug(f"{direction.value} by {voter_id} on response {response_id}")

    async def remove_vote(self, response_id: str, voter_id: str) -> None:
        """Remove a voter's vote. Removing a vote that isn't there is fine."""
        await self._session.execute(
            delete(Vote)
            .where(Vote.response_id == response_id)
            .where(Vote.voter_id == voter_id)
        )
        await self._session.commit()

        logger.debug(f"Vote by {voter_id} removed from response {response_id}")

    async def get_votes(self, response_id: str) -> VoteTally:
        result = await self._session.execute(
            select(Vote.voter_id, Vote.direction).where(Vote.response_id == response_id)
        )

        tally = VoteTally()
        for voter_id, direction in result.all():
            if direction == VoteDirection.UPVOTE:
                tally.upvoters.add(voter_id)
            else:
                tally.downvoters.add(voter_id)
        return tally

    async def score(self, response_id: str) -> int:
        return (await self.get_votes(response_id)).score
