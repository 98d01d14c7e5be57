"""Business logic services for Askbox."""

from .errors import (
    AskboxError,
    NotConfiguredError,
    NotQuestionOwnerError,
    QuestionNotFoundError,
    VotingClosedError,
)
from .questions import QuestionRegistry, ResponseRegistry
from .reactions import ReactionEvent, ReactionRouter, reaction_direction
from .score_publisher import ScorePublisher
from .slack_client import SlackClient, SlackResult
from .slack_service import SlackCommandHandler, SlackEventHandler, SlackInteractionHandler
from .token_store import Credential, TokenStore, get_token_store
from .votes import VoteLedger, VoteTally, format_score
from .voting_close import OutcomeKind, VotingCloseResolver, VotingOutcome, select_winner

__all__ = [
    # Errors
    "AskboxError",
    "NotConfiguredError",
    "QuestionNotFoundError",
    "NotQuestionOwnerError",
    "VotingClosedError",
    # Storage
    "TokenStore",
    "Credential",
    "get_token_store",
    "QuestionRegistry",
    "ResponseRegistry",
    "VoteLedger",
    "VoteTally",
    "format_score",
    # Voting
    "ReactionEvent",
    "ReactionRouter",
    "reaction_direction",
    "ScorePublisher",
    "VotingCloseResolver",
    "VotingOutcome",
    "OutcomeKind",
    "select_winner",
    # Slack
    "SlackClient",
    "SlackResult",
    "SlackCommandHandler",
    "SlackInteractionHandler",
    "SlackEventHandler",
]
