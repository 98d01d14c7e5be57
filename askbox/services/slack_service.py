"""
Slack Service: slash command, interactions and Events API handling.

Handles:
- /ask-question command (post an anonymous question)
- Respond button (open the response modal)
- Close Voting button (close and announce the winner)
- Response modal submission (post an anonymous threaded reply)
- reaction_added / reaction_removed events (voting)
- app_uninstalled / tokens_revoked events (forget the workspace's token)
"""

import logging
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..models import new_id
from .errors import NotConfiguredError, NotQuestionOwnerError, QuestionNotFoundError, VotingClosedError
from .questions import QuestionRegistry, ResponseRegistry
from .reactions import ReactionEvent, ReactionRouter
from .score_publisher import ScorePublisher
from .slack_blocks import (
    CLOSE_VOTING_ACTION_ID,
    RESPOND_ACTION_ID,
    RESPONSE_BLOCK_ID,
    RESPONSE_INPUT_ACTION_ID,
    RESPONSE_MODAL_CALLBACK_ID,
    VOTE_REACTIONS,
    SlackBlocks,
    SlackModals,
    question_fallback_text,
    render_response_text,
)
from .slack_client import SlackClient
from .token_store import TokenStore
from .votes import VoteLedger
from .voting_close import VotingCloseResolver

logger = logging.getLogger(__name__)

NOT_CONFIGURED_TEXT = ":warning: Askbox is not set up for this workspace yet. Please install the app first."
QUESTION_NOT_FOUND_TEXT = ":grey_question: That question could not be found."
VOTING_CLOSED_TEXT = ":lock: Voting is closed for this question."
NOT_OWNER_TEXT = ":no_entry: Only the person who asked this question can close voting."
ALREADY_CLOSED_TEXT = ":lock: Voting has already been closed for this question."


def ephemeral(text: str) -> dict[str, Any]:
    return {"response_type": "ephemeral", "text": text}


class _SlackHandlerBase:
    def __init__(
        self,
        session: AsyncSession,
        token_store: TokenStore,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.session = session
        self.token_store = token_store
        self._http_client = http_client

    async def _slack_for(self, team_id: str | None) -> SlackClient:
        """
        Slack client authorized for the workspace.

        Raises:
            NotConfiguredError: the workspace has no usable bot token
        """
        token = await self.token_store.get_token(team_id) if team_id else None
        if not token:
            raise NotConfiguredError(team_id or "<unknown>")
        return SlackClient(token, http_client=self._http_client)


# =============================================================================
# SLASH COMMAND
# =============================================================================


class SlackCommandHandler(_SlackHandlerBase):
    """Handles the question slash command."""

    def usage(self) -> dict:
        command = get_settings().question_command
        return ephemeral(
            f"Usage: `{command} <your question>`\n"
            f"Example: `{command} What should we name the new service?`"
        )

    async def handle(self, form: dict[str, str]) -> dict[str, Any]:
        """
        Post the question and record it.

        Returns the Slack response payload (always ephemeral).
        """
        text = (form.get("text") or "").strip()
        team_id = form.get("team_id", "")
        channel_id = form.get("channel_id", "")
        user_id = form.get("user_id", "")

        if not text:
            return self.usage()

        try:
            slack = await self._slack_for(team_id)
        except NotConfiguredError as e:
            logger.warning(str(e))
            return ephemeral(NOT_CONFIGURED_TEXT)

        question_id = new_id("q")
        result = await slack.post_message(
            channel=channel_id,
            text=question_fallback_text(text),
            blocks=SlackBlocks.question(question_id, text),
        )
        if not result.ok:
            return ephemeral(
                f":x: Couldn't post your question ({result.error}). "
                "Make sure Askbox has been added to this channel."
            )

        await QuestionRegistry(self.session).create_question(
            team_id=team_id,
            text=text,
            channel_id=result.data.get("channel", channel_id),
            message_ts=result.ts,
            user_id=user_id,
            question_id=question_id,
        )

        return ephemeral(":white_check_mark: Your question was posted anonymously.")


# =============================================================================
# INTERACTIONS
# =============================================================================


class SlackInteractionHandler(_SlackHandlerBase):
    """Handles button clicks and modal submissions."""

    async def handle(self, payload: dict) -> dict | None:
        """Route an interaction payload. Returns a response body, if any."""
        try:
            return await self._route(payload)
        except NotConfiguredError as e:
            logger.warning(str(e))
            if payload.get("type") == "view_submission":
                return {"response_action": "errors", "errors": {RESPONSE_BLOCK_ID: "Askbox is not set up for this workspace."}}
            return None

    async def _route(self, payload: dict) -> dict | None:
        interaction_type = payload.get("type")

        if interaction_type == "block_actions":
            for action in payload.get("actions", []):
                action_id = action.get("action_id")
                question_id = action.get("value", "")

                if action_id == RESPOND_ACTION_ID:
                    await self._handle_respond(payload, question_id)
                elif action_id == CLOSE_VOTING_ACTION_ID:
                    await self._handle_close_voting(payload, question_id)
            return None

        if interaction_type == "view_submission":
            view = payload.get("view", {})
            if view.get("callback_id") == RESPONSE_MODAL_CALLBACK_ID:
                return await self._handle_response_submission(payload)

        return None

    async def _notify(self, slack: SlackClient, payload: dict, text: str) -> None:
        channel_id = payload.get("channel", {}).get("id")
        user_id = payload.get("user", {}).get("id")
        if channel_id and user_id:
            await slack.post_ephemeral(channel_id, user_id, text)

    async def _handle_respond(self, payload: dict, question_id: str) -> None:
        """Open the response modal for an open question."""
        team_id = payload.get("team", {}).get("id")
        slack = await self._slack_for(team_id)

        question = await QuestionRegistry(self.session).get_question(question_id)
        if question is None or question.team_id != team_id:
            await self._notify(slack, payload, QUESTION_NOT_FOUND_TEXT)
            return
        if question.voting_closed:
            await self._notify(slack, payload, VOTING_CLOSED_TEXT)
            return

        trigger_id = payload.get("trigger_id")
        if trigger_id:
            await slack.open_view(trigger_id, SlackModals.response(question.id, question.text))

    async def _handle_close_voting(self, payload: dict, question_id: str) -> None:
        team_id = payload.get("team", {}).get("id")
        user_id = payload.get("user", {}).get("id", "")
        slack = await self._slack_for(team_id)

        question = await QuestionRegistry(self.session).get_question(question_id)
        if question is None or question.team_id != team_id:
            await self._notify(slack, payload, QUESTION_NOT_FOUND_TEXT)
            return

        try:
            await VotingCloseResolver(self.session, slack).close(question_id, user_id)
        except NotQuestionOwnerError:
            await self._notify(slack, payload, NOT_OWNER_TEXT)
        except VotingClosedError:
            await self._notify(slack, payload, ALREADY_CLOSED_TEXT)
        except QuestionNotFoundError:
            await self._notify(slack, payload, QUESTION_NOT_FOUND_TEXT)

    async def _handle_response_submission(self, payload: dict) -> dict | None:
        """
        Post an anonymous response as a threaded reply.

        Returns None to close the modal, or a modal error payload.
        """
        view = payload.get("view", {})
        question_id = view.get("private_metadata", "")
        values = view.get("state", {}).get("values", {})
        text = (
            values.get(RESPONSE_BLOCK_ID, {}).get(RESPONSE_INPUT_ACTION_ID, {}).get("value") or ""
        ).strip()

        if not text:
            return None

        team_id = payload.get("team", {}).get("id")
        slack = await self._slack_for(team_id)

        question = await QuestionRegistry(self.session).get_question(question_id)
        if question is None or question.team_id != team_id:
            logger.warning(f"Response submitted for unknown question {question_id}")
            return None
        if question.voting_closed:
            return {"response_action": "errors", "errors": {RESPONSE_BLOCK_ID: "Voting is closed for this question."}}

        result = await slack.post_message(
            channel=question.channel_id,
            text=render_response_text(text, 0),
            thread_ts=question.message_ts,
        )
        if not result.ok:
            return None

        await ResponseRegistry(self.session).create_response(question.id, text, result.ts)

        for name in VOTE_REACTIONS:
            await slack.add_reaction(question.channel_id, result.ts, name)

        return None


# =============================================================================
# EVENTS API
# =============================================================================


class SlackEventHandler(_SlackHandlerBase):
    """Handles event_callback envelopes from the Events API."""

    async def dispatch(self, envelope: dict) -> None:
        event = envelope.get("event", {})
        event_type = event.get("type")
        team_id = envelope.get("team_id")
        logger.debug(f"Slack event {event_type} from workspace {team_id}")

        if event_type in ("reaction_added", "reaction_removed"):
            await self.handle_reaction(envelope)
        elif event_type == "app_uninstalled":
            await self.token_store.delete_installation(team_id)
        elif event_type == "tokens_revoked":
            if event.get("tokens", {}).get("bot"):
                await self.token_store.delete_installation(team_id)

    async def handle_reaction(self, envelope: dict) -> bool:
        """
        Apply a vote reaction. Returns True if the ledger changed.

        Reactions on untracked messages, non-vote emoji and the bot's own
        reactions are ignored.
        """
        reaction = ReactionEvent.from_envelope(envelope)
        if reaction is None:
            return False

        direction = reaction.direction
        if direction is None:
            return False

        credential = await self.token_store.get_credential(reaction.team_id)
        if credential is None:
            logger.warning(f"Ignoring reaction from unconfigured workspace {reaction.team_id}")
            return False

        if reaction.user_id in _bot_user_ids(envelope, credential.bot_user_id):
            return False

        response_id = await ReactionRouter(self.session).resolve_response(
            reaction.team_id, reaction.channel_id, reaction.message_ts
        )
        if response_id is None:
            return False

        ledger = VoteLedger(self.session)
        if reaction.kind == "reaction_added":
            await ledger.add_vote(response_id, reaction.user_id, direction)
        else:
            await ledger.remove_vote(response_id, reaction.user_id)

        slack = SlackClient(credential.bot_token, http_client=self._http_client)
        await ScorePublisher(self.session, slack).publish(response_id)
        return True


def _bot_user_ids(envelope: dict, stored_bot_user_id: str | None) -> set[str]:
    ids = {
        auth.get("user_id")
        for auth in envelope.get("authorizations", [])
        if auth.get("is_bot") and auth.get("user_id")
    }
    if stored_bot_user_id:
        ids.add(stored_bot_user_id)
    return ids
