"""Question and Response registries."""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Question, Response, new_id

logger = logging.getLogger(__name__)


class QuestionRegistry:
    """Durable record of posted questions."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create_question(
        self,
        team_id: str,
        text: str,
        channel_id: str,
        message_ts: str,
        user_id: str,
        question_id: str | None = None,
    ) -> str:
        """Record a posted question. The id may be chosen up front so it can go in the buttons."""
        question = Question(
            id=question_id or new_id("q"),
            team_id=team_id,
            text=text,
            channel_id=channel_id,
            message_ts=message_ts,
            user_id=user_id,
            voting_closed=False,
        )
        self._session.add(question)
        await self._session.commit()

        logger.info(f"Question {question.id} created in {channel_id} for workspace {team_id}")
        return question.id

    async def get_question(self, question_id: str) -> Question | None:
        result = await self._session.execute(
            select(Question)
            .where(Question.id == question_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def close_voting(self, question_id: str) -> bool:
        """
        Mark voting closed.

        The update only matches an open question, so calling this twice is a
        no-op. Returns True only for the call that performed the transition.
        """
        result = await self._session.execute(
            update(Question)
            .where(Question.id == question_id)
            .where(Question.voting_closed.is_(False))
            .values(voting_closed=True)
        )
        await self._session.commit()

        changed = (result.rowcount or 0) > 0
        if changed:
            logger.info(f"Voting closed for question {question_id}")
        return changed

    async def delete_question(self, question_id: str) -> bool:
        """Delete a question along with its responses and their votes."""
        result = await self._session.execute(
            select(Question)
            .where(Question.id == question_id)
            .options(selectinload(Question.responses).selectinload(Response.votes))
        )
        question = result.scalar_one_or_none()
        if question is None:
            return False

        await self._session.delete(question)
        await self._session.commit()
        logger.info(f"Question {question_id} deleted")
        return True


class ResponseRegistry:
    """
    Durable record of responses.

    Does not check whether the parent question is still open; callers do that.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create_response(self, question_id: str, text: str, message_ts: str) -> str:
        response = Response(question_id=question_id, text=text, message_ts=message_ts)
        self._session.add(response)
        await self._session.commit()

        logger.info(f"Response {response.id} created for question {question_id}")
        return response.id

    async def get_response(self, response_id: str) -> Response | None:
        result = await self._session.execute(
            select(Response)
            .where(Response.id == response_id)
            .options(selectinload(Response.question))
        )
        return result.scalar_one_or_none()

    async def list_response_ids(self, question_id: str) -> list[str]:
        """Response ids for a question, oldest first."""
        result = await self._session.execute(
            select(Response.id)
            .where(Response.question_id == question_id)
            .order_by(Response.created_at, Response.id)
        )
        return list(result.scalars().all())
