"""Score Publisher: re-render a response message with its current points."""

import logging
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from .questions import ResponseRegistry
from .slack_blocks import render_response_text
from .slack_client import SlackClient
from .votes import VoteLedger

logger = logging.getLogger(__name__)


class PublishFailure(str, Enum):
    MESSAGE_DELETED = "message_deleted"
    PERMISSION_DENIED = "permission_denied"
    OTHER = "other"


_DELETED_ERRORS = {"message_not_found", "channel_not_found", "thread_not_found"}
_PERMISSION_ERRORS = {
    "cant_update_message",
    "not_in_channel",
    "is_archived",
    "missing_scope",
    "not_authed",
    "invalid_auth",
    "account_inactive",
    "token_revoked",
    "no_permission",
}


def classify_failure(error: str | None) -> PublishFailure:
    if error in _DELETED_ERRORS:
        return PublishFailure.MESSAGE_DELETED
    if error in _PERMISSION_ERRORS:
        return PublishFailure.PERMISSION_DENIED
    return PublishFailure.OTHER


class ScorePublisher:
    """
    Pushes a response's current score to Slack.

    Publishing is best effort: a failed update is logged and reported as
    False, it never raises and never touches the votes.
    """

    def __init__(self, session: AsyncSession, slack: SlackClient):
        self._responses = ResponseRegistry(session)
        self._ledger = VoteLedger(session)
        self._slack = slack

    async def publish(self, response_id: str) -> bool:
        response = await self._responses.get_response(response_id)
        if response is None:
            logger.warning(f"Cannot publish score for unknown response {response_id}")
            return False

        score = await self._ledger.score(response_id)
        result = await self._slack.update_message(
            channel=response.question.channel_id,
            ts=response.message_ts,
            text=render_response_text(response.text, score),
        )

        if not result.ok:
            reason = classify_failure(result.error)
            logger.error(
                f"Failed to update score for response {response_id}: "
                f"{reason.value} (slack error: {result.error})"
            )
            return False

        logger.debug(f"Response {response_id} now shows {score} points")
        return True
