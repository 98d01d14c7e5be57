"""
Voting-Close Resolver.

A question goes Open -> Closed exactly once, at the request of whoever asked
it. Closing picks the response with the highest score (earliest response wins
ties) and announces it in the question's thread.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotQuestionOwnerError, QuestionNotFoundError, VotingClosedError
from .questions import QuestionRegistry, ResponseRegistry
from .slack_blocks import SlackBlocks
from .slack_client import SlackClient
from .votes import VoteLedger

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    NO_RESPONSES = "no_responses"
    NO_POSITIVE = "no_positive"
    WINNER = "winner"


@dataclass
class ScoredResponse:
    response_id: str
    text: str
    score: int


@dataclass
class VotingOutcome:
    kind: OutcomeKind
    winner: ScoredResponse | None = None

    @property
    def announcement(self) -> str:
        if self.kind is OutcomeKind.NO_RESPONSES:
            return SlackBlocks.no_responses_announcement()
        if self.kind is OutcomeKind.NO_POSITIVE:
            return SlackBlocks.no_positive_announcement()
        return SlackBlocks.winner_announcement(self.winner.text, self.winner.score)


def select_winner(responses: Sequence[ScoredResponse]) -> VotingOutcome:
    """
    Pick the winner from responses given in creation order.

    Only a strictly higher score displaces the current best, so the earliest
    response wins a tie. A negative best score has no winner.
    """
    best: ScoredResponse | None = None
    for candidate in responses:
        if best is None or candidate.score > best.score:
            best = candidate

    if best is None:
        return VotingOutcome(OutcomeKind.NO_RESPONSES)
    if best.score < 0:
        return VotingOutcome(OutcomeKind.NO_POSITIVE)
    return VotingOutcome(OutcomeKind.WINNER, winner=best)


class VotingCloseResolver:
    def __init__(self, session: AsyncSession, slack: SlackClient):
        self._questions = QuestionRegistry(session)
        self._responses = ResponseRegistry(session)
        self._ledger = VoteLedger(session)
        self._slack = slack

    async def close(self, question_id: str, requester_id: str) -> VotingOutcome:
        """
        Close voting on a question and announce the result.

        Raises:
            QuestionNotFoundError: no such question
            NotQuestionOwnerError: requester didn't ask the question
            VotingClosedError: voting was already closed
        """
        question = await self._questions.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id)
        if question.user_id != requester_id:
            raise NotQuestionOwnerError(question_id)
        if question.voting_closed:
            raise VotingClosedError(question_id)

        # Only the request that flips the flag gets to announce
        if not await self._questions.close_voting(question_id):
            raise VotingClosedError(question_id)

        await self._slack.update_message(
            channel=question.channel_id,
            ts=question.message_ts,
            text=f"Anonymous question (voting closed): {question.text}",
            blocks=SlackBlocks.question_closed(question.text),
        )

        outcome = select_winner(await self._score_responses(question_id))

        await self._slack.post_message(
            channel=question.channel_id,
            text=outcome.announcement,
            thread_ts=question.message_ts,
        )

        logger.info(f"Question {question_id} closed by {requester_id}: {outcome.kind.value}")
        return outcome

    async def _score_responses(self, question_id: str) -> list[ScoredResponse]:
        scored = []
        for response_id in await self._responses.list_response_ids(question_id):
            response = await self._responses.get_response(response_id)
            if response is None:
                continue
            scored.append(ScoredResponse(
                response_id=response_id,
                text=response.text,
                score=await self._ledger.score(response_id),
            ))
        return scored
